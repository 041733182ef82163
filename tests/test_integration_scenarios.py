"""
Integration Test Scenarios for the Group Shipment Settlement Core

These tests walk through real-world operations scenarios end to end via the
SettlementProcessor, feeding each response back in as the next request the
way the dashboard does.

Run with: python -m pytest tests/test_integration_scenarios.py -v

IMPORTANT: This file has a companion business summary document:
    docs/test_scenarios_business_summary.md

When adding or modifying tests, please update the business summary document
to keep them in sync. The summary provides plain-English explanations of
each test scenario for business stakeholders.
"""


import pytest

from parcel_engine import InvalidTransition, SettlementProcessor


@pytest.fixture
def processor():
    return SettlementProcessor()


def route(**fields):
    return {"pickupCity": "Bangalore", "deliveryCity": "Mumbai", **fields}


class TestRegularDeliveryCommission:
    """Agent keeps 20% of a regular delivery."""

    def test_final_price_1200_pays_240(self, processor):
        result = processor.process_from_dict("parcel_commission", {
            "parcel": {"id": 1, "basePrice": 1000, "totalAmount": 1180, "finalPrice": 1200},
        })
        # Settled price wins over the quote and the GST total
        assert result["amount"] == 1200.0
        assert result["agent_share"] == 240.0

    def test_quote_used_when_no_settled_price(self, processor):
        result = processor.process_from_dict("parcel_commission", {"parcel": {"id": 1, "basePrice": 450}})
        assert result["agent_share"] == 90.0


class TestGroupSplit:
    """10% platform, 70% company, 10% pickup agent, 10% delivery agent."""

    def test_three_parcels_500_300_200(self, processor):
        result = processor.process_from_dict("group_commission", {
            "group": {"id": 1, "status": "COMPLETED"},
            "parcels": [{"finalPrice": 500}, {"totalAmount": 300}, {"basePrice": 200}],
        })
        assert result["total_group_value"] == 1000.0
        assert result["platform_share"] == 100.0
        assert result["company_share"] == 700.0
        assert result["pickup_agent_share"] == 100.0
        assert result["delivery_agent_share"] == 100.0

    def test_odd_cents_go_to_company(self, processor):
        result = processor.process_from_dict("group_commission", {
            "group": {"id": 1, "status": "OPEN"},
            "parcels": [{"finalPrice": "333.33"}],
        })
        shares = (result["platform_share"] + result["company_share"]
                  + result["pickup_agent_share"] + result["delivery_agent_share"])
        assert result["company_share"] == 233.34
        assert round(shares, 2) == 333.33


class TestGroupJourney:
    """A group from its last member joining to final delivery."""

    def test_full_group_from_open_to_completed(self, processor):
        group = {
            "id": 1, "groupCode": "GRP-BLR-BOM-001", "status": "OPEN",
            "sourceCity": "Bangalore", "targetCity": "Mumbai",
            "targetMembers": 2, "currentMembers": 1, "discountPercentage": 20,
        }
        first = route(id=1, status="CONFIRMED", basePrice=1000, finalPrice=800, groupShipmentId=1)

        joined = processor.process_from_dict("transition", {
            "group": group, "event": "join", "parcel": route(id=2, status="PENDING", basePrice=1000),
        })
        assert joined["status"] == "FULL"
        second = joined["parcels"][0]
        assert second["finalPrice"] == "800.00"

        picking = processor.process_from_dict("transition", {
            "group": joined["group"], "event": "assign_pickup_agent", "agentId": 10, "parcels": [first, second],
        })
        assert picking["status"] == "PICKUP_IN_PROGRESS"
        assert {p["status"] for p in picking["parcels"]} == {"ASSIGNED"}

        picked = processor.process_from_dict("transition", {
            "group": picking["group"], "event": "complete_pickup", "parcels": picking["parcels"],
        })
        assert picked["group"]["pickupAgentEarnings"] == "160.00"

        delivering = processor.process_from_dict("transition", {
            "group": picked["group"], "event": "assign_delivery_agent", "agentId": 20,
            "parcels": picked["parcels"],
        })
        assert delivering["status"] == "DELIVERY_IN_PROGRESS"

        done = processor.process_from_dict("transition", {
            "group": delivering["group"], "event": "complete_delivery", "parcels": delivering["parcels"],
        })
        assert done["status"] == "COMPLETED"
        assert done["group"]["deliveryAgentEarnings"] == "160.00"
        assert {p["status"] for p in done["parcels"]} == {"DELIVERED"}

        split = processor.process_from_dict("group_commission", {"group": done["group"]})
        assert split["realized"]["pickup_agent_earnings"] == 160.0
        assert split["realized"]["delivery_agent_earnings"] == 160.0

    def test_delivery_agent_cannot_start_before_pickup_done(self, processor):
        with pytest.raises(InvalidTransition):
            processor.process_from_dict("transition", {
                "group": {"id": 1, "status": "PICKUP_IN_PROGRESS", "targetMembers": 3, "currentMembers": 3,
                          "pickupAgentId": 10},
                "event": "assign_delivery_agent",
                "agentId": 20,
            })


class TestEarlyClose:
    """A group may close early once half its target has joined."""

    def test_two_of_five_cannot_close(self, processor):
        with pytest.raises(InvalidTransition):
            processor.process_from_dict("transition", {
                "group": {"id": 1, "status": "OPEN", "targetMembers": 5, "currentMembers": 2,
                          "discountPercentage": 25},
                "event": "close_early",
            })

    def test_three_of_five_closes_at_reduced_discount(self, processor):
        members = [route(id=i, basePrice=1000, finalPrice=750, groupShipmentId=1) for i in (1, 2, 3)]
        result = processor.process_from_dict("transition", {
            "group": {"id": 1, "status": "OPEN", "targetMembers": 5, "currentMembers": 3,
                      "discountPercentage": 25},
            "event": "close_early",
            "parcels": members,
        })
        assert result["status"] == "FULL"
        assert result["group"]["effectiveDiscountPercentage"] == "15.00"
        assert [p["balanceAmount"] for p in result["parcels"]] == ["100.00"] * 3


class TestDeadline:
    """What happens to an OPEN group when its deadline passes."""

    def test_partial_group_proceeds(self, processor):
        result = processor.process_from_dict("transition", {
            "group": {"id": 1, "status": "OPEN", "targetMembers": 10, "currentMembers": 8,
                      "discountPercentage": 20, "deadline": "2025-10-14T18:00:00"},
            "event": "resolve_deadline",
            "now": "2025-10-15T09:00:00",
        })
        assert result["status"] == "FULL"
        assert result["group"]["effectiveDiscountPercentage"] == "16.00"

    def test_undersubscribed_group_cancelled(self, processor):
        result = processor.process_from_dict("transition", {
            "group": {"id": 1, "status": "OPEN", "targetMembers": 10, "currentMembers": 4,
                      "discountPercentage": 20, "deadline": "2025-10-14T18:00:00"},
            "event": "resolve_deadline",
            "parcels": [route(id=5, basePrice=1000, finalPrice=800, groupShipmentId=1)],
            "now": "2025-10-15T09:00:00",
        })
        assert result["status"] == "CANCELLED"
        assert result["parcels"][0]["finalPrice"] == "1000"
        assert result["parcels"][0]["groupShipmentId"] is None
        assert result["notify_parcel_ids"] == [5]


class TestAgentSelection:
    """Best-first ranking of available agents."""

    def test_nearby_agent_preferred(self, processor):
        result = processor.process_from_dict("rank_agents", {
            "agents": [
                {"id": 1, "fullName": "Far Away", "ratingAvg": 5.0, "totalDeliveries": 400, "pincode": "110001"},
                {"id": 2, "fullName": "Next Door", "ratingAvg": 4.0, "totalDeliveries": 20, "pincode": "560095"},
            ],
            "targetPincode": "560034",
        })
        # 5.0 × 10 + 400 / 10 = 90 vs 4.0 × 10 + 20 / 10 + 50 = 92
        assert result["best_match"]["fullName"] == "Next Door"

    def test_tie_goes_to_lowest_id(self, processor):
        result = processor.process_from_dict("rank_agents", {
            "agents": [{"id": 8, "ratingAvg": 4}, {"id": 3, "ratingAvg": 4}],
        })
        assert [a["id"] for a in result["agents"]] == [3, 8]


class TestEarningsWeekBoundary:
    """Earnings buckets when 'now' is a Wednesday."""

    @pytest.fixture
    def request_data(self):
        return {
            "agentId": 42,
            "now": "2025-10-15T12:00:00",
            "deliveredParcels": [
                {"id": 1, "status": "DELIVERED", "finalPrice": 1000, "deliveryAgentId": 42,
                 "deliveredAt": "2025-10-13T00:01:00"},
                {"id": 2, "status": "DELIVERED", "finalPrice": 500, "deliveryAgentId": 42,
                 "deliveredAt": "2025-10-12T23:59:00"},
            ],
        }

    def test_wednesday_week_excludes_previous_sunday(self, processor, request_data):
        result = processor.process_from_dict("earnings", request_data)
        summary = result["summary"]
        assert summary["week"] == {"total_earnings": 200.0, "count": 1}
        assert summary["month"] == {"total_earnings": 300.0, "count": 2}
        assert summary["all"] == {"total_earnings": 300.0, "count": 2}

    def test_buckets_never_shrink(self, processor, request_data):
        summary = processor.process_from_dict("earnings", request_data)["summary"]
        totals = [summary[p]["total_earnings"] for p in ("today", "week", "month", "all")]
        assert totals == sorted(totals)
