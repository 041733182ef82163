from flask import Flask, request, jsonify
from flask_cors import CORS
from parcel_engine import SettlementProcessor
from parcel_engine.config import Settings
from parcel_engine.errors import InvalidTransition, Unauthorized
import logging

settings = Settings.from_env()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (dashboard and agent app call the API directly)
CORS(app)

# Initialize the settlement processor
processor = SettlementProcessor()

# Route -> processor operation
OPERATIONS = {
    "/commission/parcel": "parcel_commission",
    "/commission/group": "group_commission",
    "/agents/rank": "rank_agents",
    "/groups/transition": "transition",
    "/earnings": "earnings",
}


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Group Shipment Settlement API",
        "version": "1.0",
        "environment": settings.environment,
        "endpoints": {
            **{operation: f"{path} [POST]" for path, operation in OPERATIONS.items()},
            "health": "/health [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


def run_operation(operation):
    """
    Run a settlement operation on the JSON body and map engine errors to HTTP
    """
    try:
        input_data = request.get_json(force=True, silent=True)

        if not input_data:
            return jsonify({
                "error": "No input data provided",
                "status": "failed"
            }), 400

        logger.info(f"Processing {operation}")

        result = processor.process_from_dict(operation, input_data)

        logger.info(f"{operation} processed successfully")

        return jsonify(result), 200

    except InvalidTransition as e:
        logger.warning(f"Rejected transition: {e.message}")
        return jsonify({**e.to_dict(), "status": "invalid_transition"}), 409

    except Unauthorized as e:
        return jsonify({"error": e.message, "status": "unauthorized"}), 401

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine
        logger.error(f"Validation error: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "validation_failed"
        }), 400

    except Exception as e:
        # Unexpected errors
        logger.error(f"Processing error: {str(e)}", exc_info=True)
        return jsonify({
            "error": "An unexpected error occurred during processing",
            "status": "failed"
        }), 500


@app.route("/commission/parcel", methods=["POST"])
def parcel_commission():
    return run_operation("parcel_commission")


@app.route("/commission/group", methods=["POST"])
def group_commission():
    return run_operation("group_commission")


@app.route("/agents/rank", methods=["POST"])
def rank_agents():
    return run_operation("rank_agents")


@app.route("/groups/transition", methods=["POST"])
def group_transition():
    return run_operation("transition")


@app.route("/earnings", methods=["POST"])
def earnings():
    return run_operation("earnings")


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=settings.port, debug=False)
