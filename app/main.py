from __future__ import annotations

import json
import os
import queue
import threading
from typing import Any, Dict, Generator, Optional

from flask import Flask, Response, jsonify, request, send_file

from app.harvester import config
from app.harvester.error_codes import ErrorCode
from app.harvester.export_excel import latest_export_path
from app.harvester.healthcheck import run_health_checks
from app.harvester.page_worker import PageWorker
from app.harvester.utils import log_line

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Seconds between SSE heartbeats while no progress arrives.
STREAM_HEARTBEAT_SECONDS = float(os.environ.get("HARVESTER_STREAM_HEARTBEAT_SECONDS", "15"))

_worker_lock = threading.Lock()


def _configured_worker() -> Optional[PageWorker]:
    return app.config.get("HARVESTER_WORKER")


def get_worker() -> PageWorker:
    """Return the page worker, starting the browser session on first use."""

    worker = _configured_worker()
    if worker is not None:
        return worker

    with _worker_lock:
        worker = _configured_worker()
        if worker is None:
            log_line(f"[UI] Starting browser session for {config.TARGET_URL}")
            worker = PageWorker(url=config.TARGET_URL)
            worker.start()
            app.config["HARVESTER_WORKER"] = worker
    return worker


def _status_for(response: Dict[str, Any]) -> int:
    if response.get("success"):
        return 200
    code = response.get("code")
    if code == ErrorCode.HARVEST_BUSY:
        return 409
    if code in (ErrorCode.UNKNOWN_ACTION, ErrorCode.INVALID_REQUEST):
        return 400
    return 200


@app.post("/api/command")
def api_command() -> Response:
    """Dispatch one command to the browser session and return its response."""

    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not body.get("action"):
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Request must be an object with an action",
                    "code": ErrorCode.INVALID_REQUEST,
                }
            ),
            400,
        )

    worker = get_worker()
    if not worker.knows(body.get("action")):
        return (
            jsonify({"success": False, "error": "Unknown action", "code": ErrorCode.UNKNOWN_ACTION}),
            400,
        )

    response = worker.handle(body)
    return jsonify(response), _status_for(response)


def _progress_generator(worker: PageWorker) -> Generator[str, None, None]:
    """Yield Server-Sent Event messages for progress published by the worker."""

    channel = worker.subscribe()
    try:
        while True:
            try:
                message = channel.get(timeout=STREAM_HEARTBEAT_SECONDS)
            except queue.Empty:
                yield ": heartbeat\n\n"
                continue
            yield f"data: {json.dumps(message, ensure_ascii=False)}\n\n"
    finally:
        worker.unsubscribe(channel)


@app.get("/api/progress/stream")
def progress_stream() -> Response:
    """Stream harvest progress to the browser using SSE."""

    response = Response(_progress_generator(get_worker()), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and browser session."""

    result = run_health_checks(entrypoint="ui")
    checks = dict(result.checks)
    worker = _configured_worker()
    if worker is None:
        checks["worker"] = {"ok": True, "started": False}
    else:
        checks["worker"] = {"started": True, **worker.status()}

    ok = result.ok and bool(checks["worker"].get("ok"))
    status = 200 if ok else 503
    return jsonify({"ok": ok, "checks": checks}), status


@app.get("/api/exports/latest.xlsx")
def api_export_latest_xlsx() -> Response:
    path = latest_export_path()
    if path is None or not path.is_file():
        return jsonify({"ok": False, "error": "no exports"}), 404
    return send_file(path, as_attachment=True, download_name=path.name)
