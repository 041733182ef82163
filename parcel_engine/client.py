"""
Parcel Platform API Client

Thin wrapper over the remote REST API the core consumes. Every call carries
the caller's Session token and a timeout, unwraps the {"success", "message",
"data"} envelope, and turns failures into the core's error taxonomy. The
client never retries.
"""

import logging

import requests

from .errors import TransientNetworkError, Unauthorized, ValidationError
from .models import Agent, GroupShipment, Parcel, ParcelStatus, Session, parse_enum

logger = logging.getLogger(__name__)


class ParcelApiClient:
    """Remote operations on groups, parcels and agents."""

    DEFAULT_TIMEOUT = 10

    def __init__(self, session: Session, base_url: str, timeout: float = DEFAULT_TIMEOUT,
                 http: requests.Session | None = None):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls, session: Session, settings, http: requests.Session | None = None) -> "ParcelApiClient":
        return cls(session, settings.api_base_url, timeout=settings.api_timeout, http=http)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.warning(f"Request timed out: {method} {path}")
            raise TransientNetworkError(f"Request timed out: {method} {path}", path=path) from e
        except requests.RequestException as e:
            logger.warning(f"Request failed: {method} {path}: {e}")
            raise TransientNetworkError(f"Network error: {e}", path=path) from e

        status = response.status_code
        if status == 401:
            self.session.invalidate()
            raise Unauthorized("Session expired, please sign in again", path=path)
        if status >= 500:
            logger.error(f"Server error {status}: {method} {path}")
            raise TransientNetworkError(f"Server error {status}", path=path, status_code=status)
        if status >= 400:
            message = self._error_message(response)
            logger.error(f"Request rejected {status}: {method} {path}: {message}")
            raise ValidationError(message, path=path, status_code=status)

        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as e:
            raise TransientNetworkError(f"Malformed response from {path}", path=path) from e

        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    @staticmethod
    def _error_message(response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or f"Request failed with status {response.status_code}"
        if isinstance(payload, dict):
            return payload.get("message") or payload.get("error") or f"Request failed with status {response.status_code}"
        return str(payload)

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def list_available_agents(self, filter: dict | None = None) -> list[Agent]:
        data = self._request("GET", "/agents/available", params=filter or None)
        return [Agent.from_dict(a) for a in data or []]

    def list_my_group_assignments(self, agent_id=None) -> dict[str, list[GroupShipment]]:
        params = {"agentId": agent_id} if agent_id is not None else None
        data = self._request("GET", "/agents/my-groups", params=params) or {}
        return {
            "pickupGroups": [GroupShipment.from_dict(g) for g in data.get("pickupGroups") or []],
            "deliveryGroups": [GroupShipment.from_dict(g) for g in data.get("deliveryGroups") or []],
        }

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def get_group(self, group_id) -> GroupShipment:
        return GroupShipment.from_dict(self._request("GET", f"/groups/{group_id}"))

    def list_group_parcels(self, group_id) -> list[Parcel]:
        data = self._request("GET", f"/groups/{group_id}/parcels")
        return [Parcel.from_dict(p) for p in data or []]

    def assign_pickup_agent(self, group_id, agent_id) -> GroupShipment:
        data = self._request("PATCH", f"/groups/{group_id}/assign-pickup", json={"agentId": agent_id})
        return GroupShipment.from_dict(data)

    def assign_delivery_agent(self, group_id, agent_id) -> GroupShipment:
        data = self._request("PATCH", f"/groups/{group_id}/assign-delivery", json={"agentId": agent_id})
        return GroupShipment.from_dict(data)

    def complete_group_pickup(self, group_id) -> GroupShipment:
        return GroupShipment.from_dict(self._request("PATCH", f"/groups/{group_id}/pickup-complete"))

    def complete_group_delivery(self, group_id) -> GroupShipment:
        return GroupShipment.from_dict(self._request("PATCH", f"/groups/{group_id}/delivery-complete"))

    def reopen_group(self, group_id) -> GroupShipment:
        return GroupShipment.from_dict(self._request("POST", f"/groups/{group_id}/reopen"))

    def close_group_early(self, group_id) -> GroupShipment:
        return GroupShipment.from_dict(self._request("POST", f"/groups/{group_id}/close-early"))

    def cancel_group(self, group_id, reason: str | None = None) -> GroupShipment:
        params = {"reason": reason} if reason else None
        return GroupShipment.from_dict(self._request("POST", f"/groups/{group_id}/cancel", params=params))

    # -------------------------------------------------------------------------
    # Parcels
    # -------------------------------------------------------------------------

    def list_delivered_parcels(self, agent_id=None) -> list[Parcel]:
        params = {"agentId": agent_id} if agent_id is not None else None
        data = self._request("GET", "/parcels/agent/all", params=params)
        parcels = [Parcel.from_dict(p) for p in data or []]
        return [p for p in parcels if p.status == ParcelStatus.DELIVERED]

    def update_parcel_status(self, parcel_id, status) -> Parcel:
        status = parse_enum(ParcelStatus, status, "parcel status")
        data = self._request("PATCH", f"/parcels/{parcel_id}/status", json={"status": status.value})
        return Parcel.from_dict(data)
