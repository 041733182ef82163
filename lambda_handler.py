"""
AWS Lambda handler for the Group Shipment Settlement API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import json
import logging

from parcel_engine import SettlementProcessor
from parcel_engine.config import Settings
from parcel_engine.errors import InvalidTransition, Unauthorized

settings = Settings.from_env()

# Configure logging
logger = logging.getLogger()
logger.setLevel(settings.log_level)

# Environment (dev, staging, prod)
ENVIRONMENT = settings.environment

# Initialize processor (reused across warm invocations)
processor = SettlementProcessor()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}

# POST path -> processor operation
OPERATIONS = {
    "/commission/parcel": "parcel_commission",
    "/commission/group": "group_commission",
    "/agents/rank": "rank_agents",
    "/groups/transition": "transition",
    "/earnings": "earnings",
}


def _response(status_code, payload):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(payload)}


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health
    - GET /api
    - POST on every path in OPERATIONS
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    # Route to appropriate handler
    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    elif path in OPERATIONS and http_method == "POST":
        return handle_operation(OPERATIONS[path], event)
    else:
        return _response(404, {"error": "Not found", "path": path})


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(
        200,
        {
            "status": "ok",
            "message": "Group Shipment Settlement API",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": {
                **{operation: f"{path} [POST]" for path, operation in OPERATIONS.items()},
                "health": "/health [GET]",
            },
        },
    )


def parse_body(event):
    """Decode the request body. Returns None when it is empty."""
    body = event.get("body", "")
    if not isinstance(body, str):
        return body
    if not body:
        return None
    # Handle base64 encoded body (API Gateway)
    if event.get("isBase64Encoded"):
        import base64

        body = base64.b64decode(body).decode("utf-8")
    return json.loads(body)


def handle_operation(operation, event):
    """Run a settlement operation on the request body."""
    try:
        input_data = parse_body(event)
        if not input_data:
            return _response(400, {"error": "No input data provided", "status": "failed"})

        logger.info(f"Processing {operation}")

        result = processor.process_from_dict(operation, input_data)

        logger.info(f"{operation} processed successfully")

        return _response(200, result)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except InvalidTransition as e:
        logger.warning(f"Rejected transition: {e.message}")
        return _response(409, {**e.to_dict(), "status": "invalid_transition"})

    except Unauthorized as e:
        return _response(401, {"error": e.message, "status": "unauthorized"})

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine (missing fields, invalid types, etc.)
        logger.error(f"Validation error: {str(e)}")
        return _response(400, {"error": f"Validation error: {str(e)}", "status": "validation_failed"})

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})
