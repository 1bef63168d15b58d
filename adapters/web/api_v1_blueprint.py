# adapters/web/api_v1_blueprint.py
# REST API Blueprint for programmatic access to the trim pipeline.

import hmac
import os
from functools import wraps
from flask import Blueprint, request, jsonify

api_v1 = Blueprint('api_v1', __name__, url_prefix='/api/v1')

API_KEY_ENV = "API_KEY"


def _bearer_token():
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme != "Bearer" or not token:
        return None
    return token.strip()


# Optional bearer-key auth; with API_KEY unset the API stays open (local dev)
def require_api_key(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        expected_key = os.environ.get(API_KEY_ENV)
        if expected_key:
            token = _bearer_token()
            if token is None:
                return jsonify({"error": "Unauthorized. Missing Bearer token."}), 401
            if not hmac.compare_digest(token.encode(), expected_key.encode()):
                return jsonify({"error": "Unauthorized. Invalid API key."}), 403
        return f(*args, **kwargs)
    return decorated

@api_v1.route('/extract', methods=['POST'])
@require_api_key
def api_extract():
    """
    POST /api/v1/extract
    JSON: { url }
    """
    from server import extract_audio
    return extract_audio()

@api_v1.route('/trim', methods=['POST'])
@require_api_key
def api_trim():
    """
    POST /api/v1/trim
    JSON: { sourceUrl, start, end, fidelity? }
    Returns JSON with jobId.
    """
    from server import start_trim
    return start_trim()

@api_v1.route('/status/<job_id>', methods=['GET'])
@require_api_key
def api_status(job_id):
    from server import get_status
    return get_status(job_id)

@api_v1.route('/download/<job_id>', methods=['GET'])
@require_api_key
def api_download(job_id):
    from server import download_file
    return download_file(job_id)

@api_v1.route('/fallback/<job_id>', methods=['GET'])
@require_api_key
def api_fallback(job_id):
    """
    GET /api/v1/fallback/<job_id>
    Original artifact after an encode timeout.
    """
    from server import download_fallback
    return download_fallback(job_id)

@api_v1.route('/cancel/<job_id>', methods=['POST'])
@require_api_key
def api_cancel(job_id):
    from server import cancel_trim
    return cancel_trim(job_id)
