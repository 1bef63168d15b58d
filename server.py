# server.py
import io
import os
import re
import uuid
import logging
import threading
import tempfile
import ipaddress
from pathlib import Path
from threading import Timer
from urllib.parse import urljoin, urlparse

from flask import Flask, request, jsonify, send_file, send_from_directory, redirect
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from application.domain.audio import TimeRange
from application.domain.errors import PipelineCancelled, RangeError, TrimError
from application.dto.trim_dto import TrimRequestDTO, TrimSettingsDTO
from application.ports.media_extractor_port import ExtractionError
from infrastructure.audio.pydub_sample_decoder import PydubSampleDecoder
from infrastructure.extract.ytdlp_media_extractor import YtDlpMediaExtractor
from infrastructure.net.httpx_stream_fetcher import HttpxStreamFetcher
from infrastructure.web import job_store
from trimmer.core import TrimPipeline
from trimmer.utils import DEFAULT_SETTINGS, parse_time_range, validate_source_url

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("audio_trimmer")


# ── Configuration ────────────────────────────────────────────────────

def _env_float(name: str, default: float) -> float:
    """Read a numeric env var, falling back to *default* on bad input."""
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


ENCODE_TIMEOUT_S: float = _env_float("TRIM_ENCODE_TIMEOUT_S", DEFAULT_SETTINGS["timeout"])
MAX_DOWNLOAD_BYTES: int = int(
    _env_float("MAX_DOWNLOAD_BYTES", DEFAULT_SETTINGS["max_download_mb"] * 1024 * 1024)
)
ARTIFACT_TTL_SECONDS: float = _env_float("ARTIFACT_TTL_SECONDS", 1800)
AUDIO_DIR: str = os.environ.get(
    "AUDIO_DIR", os.path.join(tempfile.gettempdir(), "audio_trimmer")
)

ALLOWED_FIDELITY: frozenset = frozenset({"full", "fast"})

# Local development against a private media host
ALLOW_PRIVATE_SOURCES: bool = os.environ.get("ALLOW_PRIVATE_SOURCES", "false").lower() == "true"

# ── Shared collaborators ─────────────────────────────────────────────
# One decoder handle for the whole process, borrowed by every pipeline run.
DECODER = PydubSampleDecoder()
_extractor = YtDlpMediaExtractor(AUDIO_DIR)

# ── Flask app ────────────────────────────────────────────────────────
app = Flask(__name__)

# Requests are small JSON bodies
app.config["MAX_CONTENT_LENGTH"] = 1024 * 1024

_LOCAL_ORIGINS = ["http://localhost:5000", "http://127.0.0.1:5000"]
CORS(app, resources={
    r"/extract":    {"origins": _LOCAL_ORIGINS},
    r"/trim":       {"origins": _LOCAL_ORIGINS},
    r"/status/*":   {"origins": _LOCAL_ORIGINS},
    r"/download/*": {"origins": _LOCAL_ORIGINS},
    r"/fallback/*": {"origins": _LOCAL_ORIGINS},
    r"/cancel/*":   {"origins": _LOCAL_ORIGINS},
    r"/audio/*":    {"origins": _LOCAL_ORIGINS},
})

app.config["SECRET_KEY"] = os.environ.get("FLASK_SECRET_KEY") or os.urandom(32)

# ── API Blueprint Registration ─────────────────────────────────────────
from adapters.web.api_v1_blueprint import api_v1
app.register_blueprint(api_v1)

import adapters.web.openapi_spec as openapi_spec
@app.route("/api/v1/openapi.json")
def get_openapi_spec():
    return jsonify(openapi_spec.OPENAPI_SPEC)


# ════════════════════════════════════════════════════════════════════
# Helpers
# ════════════════════════════════════════════════════════════════════

def _sanitize_filename(name: str) -> str:
    """Strip path components, control chars, and limit length."""
    name = Path(name).name                        # strip directory traversal
    name = re.sub(r"[^\w\s\-.]", "", name)        # only safe chars
    name = re.sub(r"\.{2,}", ".", name)            # no double-extension tricks
    return name[:128].strip()


def _is_valid_job_id(job_id: str) -> bool:
    """Return True only for valid UUID4 strings."""
    try:
        val = uuid.UUID(job_id, version=4)
        return str(val) == job_id
    except ValueError:
        return False


def _resolve_source_url(source_url: str) -> str:
    """Relative artifact URLs (e.g. /audio/<id>.mp3) point back at this host."""
    if not urlparse(source_url).scheme:
        return urljoin(request.host_url, source_url)
    return source_url


def _is_private_host(host: str) -> bool:
    """True for localhost names and literal addresses that are not globally routable."""
    host = host.lower().rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(int(host) if host.isdigit() else host)
    except ValueError:
        return False
    return not addr.is_global


def _check_source_host(source: str, source_url: str) -> None:
    """
    Refuse sources on loopback or private hosts.

    Relative /audio/ paths are this server's own extracted artifacts and are
    always allowed. Hostnames are not resolved here.
    """
    if ALLOW_PRIVATE_SOURCES:
        return
    if not urlparse(source).scheme and urlparse(source_url).path.startswith("/audio/"):
        return
    if _is_private_host(urlparse(source_url).hostname or ""):
        raise ValueError("Source URL points at a private or loopback address.")


def _settings_for(fidelity: str) -> TrimSettingsDTO:
    return TrimSettingsDTO(
        encode_timeout_s=ENCODE_TIMEOUT_S,
        stream_progress=(fidelity != "fast"),
        max_download_bytes=MAX_DOWNLOAD_BYTES,
    )


def _build_fetcher() -> HttpxStreamFetcher:
    return HttpxStreamFetcher(max_bytes=MAX_DOWNLOAD_BYTES)


def _start_worker(target, *args) -> None:
    """Run *target* on a daemon thread so the request returns immediately."""
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()


def _schedule_expiry(job_id: str, delay_s: float) -> None:
    """Forget the job (and its artifact bytes) after *delay_s* seconds."""
    timer = Timer(delay_s, job_store.delete_job, args=[job_id])
    timer.daemon = True
    timer.start()


# ════════════════════════════════════════════════════════════════════
# Background trim run
# ════════════════════════════════════════════════════════════════════

def _run_trim(job_id: str, pipeline: TrimPipeline, source_url: str, time_range: TimeRange) -> None:
    """Worker target: run the pipeline and mirror its statuses into the job store."""

    def on_status(status) -> None:
        job_store.set_status(job_id, status)

    try:
        artifact = pipeline.run(source_url, time_range, progress_callback=on_status)
        job_store.set_artifact(job_id, artifact)
        logger.info("job=%s completed file=%s size=%dB", job_id[:8], artifact.filename, artifact.size)
    except PipelineCancelled:
        job_store.release_pipeline(job_id)
        logger.info("job=%s cancelled", job_id[:8])
    except TrimError as e:
        job_store.release_pipeline(job_id)
        if e.recoverable:
            logger.warning("job=%s failed kind=%s, fallback offered: %s", job_id[:8], e.kind, e.message)
        else:
            logger.error("job=%s failed kind=%s: %s", job_id[:8], e.kind, e.message)
    finally:
        _schedule_expiry(job_id, ARTIFACT_TTL_SECONDS)


# ════════════════════════════════════════════════════════════════════
# Routes
# ════════════════════════════════════════════════════════════════════

@app.route("/health")
def health():
    return jsonify({"status": "ok"})


@app.route("/extract", methods=["POST"])
def extract_audio():
    """
    POST /extract
    JSON: { url: YouTube video URL }
    Returns: { id, filename, size, duration, audioUrl, videoInfo }
    """
    data = request.get_json(silent=True) or {}
    url = str(data.get("url", "")).strip()
    if not url:
        return jsonify({"success": False, "error": "Missing 'url'."}), 400

    try:
        media = _extractor.extract(url)
    except ExtractionError as e:
        logger.warning("extraction failed ip=%s: %s", request.remote_addr, e)
        status = 400 if "Invalid YouTube URL" in str(e) else 502
        return jsonify({"success": False, "error": str(e)}), status

    return jsonify({
        "success": True,
        "data": {
            "id": media.id,
            "filename": media.filename,
            "size": media.size,
            "duration": media.duration,
            "audioUrl": f"/audio/{media.filename}",
            "videoInfo": media.video_info.to_dict(),
        },
    })


@app.route("/audio/<filename>", methods=["GET"])
def serve_audio(filename: str):
    """GET /audio/<filename>: extracted artifacts, also the fallback download."""
    safe_name = _sanitize_filename(filename)
    if not safe_name or safe_name != filename:
        return jsonify({"error": "Invalid file name."}), 400
    return send_from_directory(AUDIO_DIR, safe_name, as_attachment=False)


@app.route("/trim", methods=["POST"])
def start_trim():
    """
    POST /trim
    JSON or form fields:
      - sourceUrl : URL of the audio artifact (absolute, or relative to this host)
      - start     : float seconds
      - end       : float seconds
      - fidelity  : "full" (default) or "fast"
    Returns: { jobId }
    """
    data = request.get_json(silent=True) or request.form
    source = str(data.get("sourceUrl", "")).strip()
    if not source:
        return jsonify({"error": "Missing 'sourceUrl'."}), 400

    fidelity = str(data.get("fidelity", "full")).lower().strip()
    if fidelity not in ALLOWED_FIDELITY:
        return jsonify({"error": f"Fidelity '{fidelity}' is not allowed."}), 400

    source_url = _resolve_source_url(source)
    try:
        validate_source_url(source_url)
        _check_source_host(source, source_url)
        time_range = parse_time_range(data.get("start"), data.get("end"))
    except RangeError as e:
        # Rejected before any fetch/decode work
        return jsonify({"error": e.message, **e.to_dict()}), 400
    except ValueError as e:
        return jsonify({"error": str(e).splitlines()[0]}), 400

    trim_request = TrimRequestDTO(
        source_url=source_url,
        start=time_range.start,
        end=time_range.end,
        fidelity=fidelity,
    )
    pipeline = TrimPipeline(
        DECODER,
        fetcher=_build_fetcher(),
        settings=_settings_for(trim_request.fidelity),
    )

    job_id: str = str(uuid.uuid4())
    job_store.create_job(job_id, trim_request.source_url, trim_request.start, trim_request.end, pipeline)

    logger.info(
        "trim accepted ip=%s job=%s range=%.1f-%.1f fidelity=%s",
        request.remote_addr, job_id[:8], time_range.start, time_range.end, fidelity,
    )

    _start_worker(_run_trim, job_id, pipeline, trim_request.source_url, time_range)

    return jsonify({"jobId": job_id}), 202


@app.route("/status/<job_id>", methods=["GET"])
def get_status(job_id: str):
    """
    GET /status/<jobId>
    Returns: { jobId, status, state, progress, message, errorKind, error, fallbackUrl }
    """
    if not _is_valid_job_id(job_id):
        return jsonify({"error": "Invalid job ID."}), 400

    job = job_store.get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found."}), 404

    payload = {"jobId": job_id}
    payload.update(job["status"].to_dict())
    return jsonify(payload)


@app.route("/download/<job_id>", methods=["GET"])
def download_file(job_id: str):
    """
    GET /download/<jobId>
    Returns the trimmed audio as a binary download.
    """
    if not _is_valid_job_id(job_id):
        return jsonify({"error": "Invalid job ID."}), 400

    job = job_store.get_job(job_id)
    if not job or job["artifact"] is None:
        return jsonify({"error": "File not ready."}), 404

    artifact = job["artifact"]

    raw_name = request.args.get("name", artifact.filename)
    download_name = _sanitize_filename(raw_name) or artifact.filename

    return send_file(
        io.BytesIO(artifact.data),
        mimetype=artifact.mimetype,
        as_attachment=True,
        download_name=download_name,
    )


@app.route("/fallback/<job_id>", methods=["GET"])
def download_fallback(job_id: str):
    """
    GET /fallback/<jobId>
    After an encode timeout, redirects to the original, untrimmed artifact.
    """
    if not _is_valid_job_id(job_id):
        return jsonify({"error": "Invalid job ID."}), 400

    job = job_store.get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found."}), 404

    status = job["status"]
    if status.error_kind != "encode_timeout" or not status.fallback_url:
        return jsonify({"error": "No fallback download is offered for this job."}), 409

    return redirect(status.fallback_url)


@app.route("/cancel/<job_id>", methods=["POST"])
def cancel_trim(job_id: str):
    """POST /cancel/<jobId>: stop a running trim at its next checkpoint."""
    if not _is_valid_job_id(job_id):
        return jsonify({"error": "Invalid job ID."}), 400

    job = job_store.get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found."}), 404

    pipeline = job["pipeline"]
    if pipeline is None or job["status"].is_terminal:
        return jsonify({"error": "Job is not running."}), 409

    pipeline.cancel()
    logger.info("job=%s cancel requested", job_id[:8])
    return jsonify({"jobId": job_id, "cancelled": True}), 202


# ════════════════════════════════════════════════════════════════════
# Error handlers & Security headers
# ════════════════════════════════════════════════════════════════════

@app.errorhandler(413)
def request_entity_too_large(e):
    return jsonify({"error": "Request too large."}), 413


@app.errorhandler(404)
def not_found(e):
    path = request.path
    suspicious = any(p in path for p in ["..", "etc", "passwd", "wp-admin", ".env"])
    if suspicious:
        logger.warning("suspicious 404 ip=%s path=%s", request.remote_addr, path)
    return jsonify({"error": "Not found."}), 404


@app.errorhandler(Exception)
def handle_exception(e):
    """Generic handler: never leak internal details to client."""
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    logger.error("unhandled exception: %s", e, exc_info=True)
    return jsonify({"error": "An internal error occurred."}), 500


@app.after_request
def set_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "img-src 'self' data: https://i.ytimg.com; "
        "media-src 'self' blob:; "
        "connect-src 'self'; "
        "object-src 'none'; "
        "base-uri 'self';"
    )
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# ════════════════════════════════════════════════════════════════════
# Entry point
# ════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    debug_mode = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(debug=debug_mode, port=5000)
