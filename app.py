import logging
import traceback
import importlib
from datetime import datetime

from flask import Flask, request, jsonify, Response

from operations import OPERATIONS
from service_config import SERVICE_CONFIG
from service_errors import ServiceError, ValidationError

logging.basicConfig(
    level=SERVICE_CONFIG["log_level"],
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = SERVICE_CONFIG["max_content_length"]

ERROR_LOG = "last_error.log"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin":  "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@app.after_request
def add_cors_headers(response: Response) -> Response:
    response.headers.update(_CORS_HEADERS)
    return response


# ── Helpers ───────────────────────────────────────────────────────────────────

def _log_error(context: str, exc: Exception) -> None:
    """Write the last error with timestamp to last_error.log (no user data)."""
    app.logger.error("%s: %s", context, exc)
    with open(ERROR_LOG, "w", encoding="utf-8") as f:
        f.write(f"[{datetime.now().isoformat(timespec='seconds')}] {context}\n\n")
        if exc.__traceback__:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=f)
        else:
            f.write(f"{type(exc).__name__}: {exc}\n")


def _get_handler(operation_key: str):
    handler_name = OPERATIONS[operation_key]["handler"]
    return importlib.import_module(f"handlers.{handler_name}")


def _payload() -> dict:
    """Query-string parameters overlaid with the JSON body (body wins)."""
    payload = request.args.to_dict()
    if request.method == "POST":
        body = request.get_json(silent=True)
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ValidationError("request body must be a JSON object")
        payload.update(body)
    return payload


def _image_response(image_bytes: bytes, download_name: str) -> Response:
    return Response(
        image_bytes,
        mimetype="image/jpeg",
        headers={"Content-Disposition": f'attachment; filename="{download_name}"'},
    )


# ── Routes ────────────────────────────────────────────────────────────────────

@app.route("/")
def index():
    return jsonify({
        "status": "JPEG metadata service is running.",
        "operations": {
            f"/api/{key}": {"name": op["name"], "description": op["description"], "methods": op["methods"]}
            for key, op in OPERATIONS.items()
        },
    })


@app.route("/api/<operation_key>", methods=["GET", "POST", "OPTIONS"])
def run_operation(operation_key: str):
    if operation_key not in OPERATIONS:
        return jsonify({"error": f"Unknown operation: {operation_key}"}), 404
    if request.method == "OPTIONS":
        return Response(status=200)

    operation = OPERATIONS[operation_key]
    if request.method not in operation["methods"]:
        allowed = " or ".join(operation["methods"])
        return jsonify({"error": f"Method not allowed. Use {allowed}."}), 405

    handler = _get_handler(operation_key)
    try:
        result = handler.process(_payload(), SERVICE_CONFIG)
    except ServiceError as e:
        if e.status >= 500:
            _log_error(f"operation={operation_key}", e)
        else:
            app.logger.info("operation=%s rejected: %s", operation_key, e.message)
        return jsonify(e.to_dict()), e.status
    except Exception as e:
        _log_error(f"operation={operation_key}", e)
        return jsonify({"error": operation["failure_message"]}), 500

    if "image" in result:
        return _image_response(result["image"], operation["download_name"])
    return jsonify(result["data"])


@app.errorhandler(413)
def too_large(_error):
    limit_mb = SERVICE_CONFIG["max_content_length"] // (1024 * 1024)
    return jsonify({"error": f"Request too large (limit {limit_mb} MB)"}), 413


if __name__ == "__main__":
    print("Starting on http://localhost:5000")
    app.run(debug=True, port=5000)
