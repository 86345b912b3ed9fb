import os
import logging
from typing import List, Optional

from flask import Flask, request, jsonify
from flask_cors import CORS

from railway_client import (
    RAILWAY_GRAPHQL_URL as DEFAULT_GRAPHQL_URL,
    SUCCESS_STATUS,
    GraphQLRequestError,
    get_railway_service_info,
)


# ----------------------
# Configuration
# ----------------------
def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _env_origins(name: str) -> List[str]:
    origins = [o.strip() for o in os.getenv(name, "*").split(",") if o.strip()]
    return origins or ["*"]


def _env_log_level(name: str, default: str = "INFO") -> str:
    level = os.getenv(name, default).strip().upper()
    # getLevelName maps known names to ints and anything else to "Level <name>".
    if isinstance(logging.getLevelName(level), int):
        return level
    return default


PORT = _env_int("PORT", 3000)
RAILWAY_GRAPHQL_URL = os.getenv("RAILWAY_GRAPHQL_URL", DEFAULT_GRAPHQL_URL)
UPSTREAM_TIMEOUT = _env_float("UPSTREAM_TIMEOUT")
CORS_ORIGINS = _env_origins("CORS_ORIGINS")
# Lookup of a deployment that is not SUCCESS answers 200 unless overridden (e.g. 503).
NON_SUCCESS_STATUS_CODE = _env_int("NON_SUCCESS_STATUS_CODE", 200)
LOG_LEVEL = _env_log_level("LOG_LEVEL")

# Logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("railway-status-proxy")

# ----------------------
# App Setup
# ----------------------
app = Flask(__name__)
app.json.sort_keys = False
app.config.update(
    RAILWAY_GRAPHQL_URL=RAILWAY_GRAPHQL_URL,
    UPSTREAM_TIMEOUT=UPSTREAM_TIMEOUT,
    NON_SUCCESS_STATUS_CODE=NON_SUCCESS_STATUS_CODE,
)
CORS(app, origins=CORS_ORIGINS)


# ----------------------
# Helpers
# ----------------------
def get_api_token() -> Optional[str]:
    """Return the caller's Railway token with the Bearer prefix stripped."""
    header = request.headers.get("Authorization")
    if header is None:
        return None
    return header.replace("Bearer ", "", 1) or None


def fetch_services(token: str):
    return get_railway_service_info(
        token,
        url=app.config["RAILWAY_GRAPHQL_URL"],
        timeout=app.config["UPSTREAM_TIMEOUT"],
    )


def upstream_error_response(e: Exception):
    if isinstance(e, GraphQLRequestError):
        logger.warning("Railway API request failed: %s", e)
        return jsonify({"error": "Failed to fetch from Railway API"}), 502
    logger.exception("Unhandled error while serving %s: %s", request.path, e)
    return jsonify({"error": "Internal Server Error"}), 500


def unauthorized():
    return jsonify({"error": "Unauthorized: API token is required"}), 401


# ----------------------
# Endpoints
# ----------------------
@app.route("/", methods=["GET"])
def index():
    return "Hello world!", 200, {"Content-Type": "text/plain; charset=utf-8"}


@app.route("/api/health", methods=["GET"])
def health_check():
    return jsonify({"status": "ok"}), 200


@app.route("/api/services/status", methods=["GET"])
def services_status():
    token = get_api_token()
    if not token:
        return unauthorized()

    try:
        services = fetch_services(token)
    except Exception as e:
        return upstream_error_response(e)
    return jsonify([s.to_dict() for s in services]), 200


@app.route("/api/service//status", methods=["GET"], defaults={"static_url": ""}, merge_slashes=False)
@app.route("/api/service/<static_url>/status", methods=["GET"])
def service_status(static_url):
    token = get_api_token()
    if not token:
        return unauthorized()

    if not static_url:
        return jsonify({"error": "Bad Request: staticUrl parameter is required"}), 400

    try:
        services = fetch_services(token)
    except Exception as e:
        return upstream_error_response(e)

    service = next((s for s in services if s.static_url == static_url), None)
    if service is None:
        return jsonify({"error": "Not Found: Service with provided staticUrl not found"}), 404

    status_code = 200
    if service.status != SUCCESS_STATUS:
        status_code = app.config["NON_SUCCESS_STATUS_CODE"]
    return jsonify({"serviceName": service.service_name, "status": service.status}), status_code


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=PORT)
