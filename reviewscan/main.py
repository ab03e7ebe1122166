from __future__ import annotations

import os
import threading
import time
from typing import Any, Dict, Generator, Optional

from flask import Flask, Response, jsonify, request, send_file

from reviewscan.scraper import config, db
from reviewscan.scraper.config_validation import validate_runtime_config
from reviewscan.scraper.export_excel import export_reviews_to_excel
from reviewscan.scraper.healthcheck import run_health_checks
from reviewscan.scraper.run import build_runtime, run_scrape
from reviewscan.scraper.utils import ensure_dirs, get_current_log_path, log_line

app = Flask(__name__)

# Initialise storage paths and SQLite schema on import so WSGI entrypoints
# also have the expected environment ready.
ensure_dirs()
db.initialize_schema()

RUNTIME = build_runtime()

_RUNNER_LOCK = threading.Lock()
_RUNNER_THREAD: Optional[threading.Thread] = None


def _read_last_log_lines(limit: int = 150) -> list[str]:
    """Return the trailing ``limit`` log lines for initial display."""

    ensure_dirs()
    path = get_current_log_path()
    if not path.exists():
        return []

    with path.open("r", encoding="utf-8", errors="ignore") as handle:
        lines = handle.readlines()[-limit:]
    return [line.rstrip("\n") for line in lines]


def _tail_log_generator() -> Generator[str, None, None]:
    """Yield Server-Sent Event messages for appended log lines."""

    ensure_dirs()
    for line in _read_last_log_lines():
        yield f"data: {line}\n\n"

    current_path = get_current_log_path()
    current_path.parent.mkdir(parents=True, exist_ok=True)
    current_path.touch(exist_ok=True)

    handle = current_path.open("r", encoding="utf-8", errors="ignore")
    handle.seek(0, os.SEEK_END)

    try:
        while True:
            latest_path = get_current_log_path()
            if latest_path != current_path:
                handle.close()
                current_path = latest_path
                current_path.parent.mkdir(parents=True, exist_ok=True)
                current_path.touch(exist_ok=True)
                handle = current_path.open("r", encoding="utf-8", errors="ignore")
                handle.seek(0, os.SEEK_END)

            line = handle.readline()
            if line:
                yield f"data: {line.rstrip()}\n\n"
            else:
                time.sleep(1)
                yield ": heartbeat\n\n"
    finally:
        handle.close()


def _request_payload() -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    payload.update(request.args or {})
    if request.is_json:
        payload.update(request.get_json(silent=True) or {})
    else:
        payload.update(request.form or {})
    return payload


def _runner_active() -> bool:
    return _RUNNER_THREAD is not None and _RUNNER_THREAD.is_alive()


def _launch_runner(url: Optional[str], headless: Optional[bool]) -> bool:
    """Start the browser thread unless one is already running."""

    global _RUNNER_THREAD

    with _RUNNER_LOCK:
        if _runner_active():
            return False

        def _run() -> None:
            with app.app_context():
                try:
                    summary = run_scrape(url, headless=headless, runtime=RUNTIME, trigger="ui")
                    app.config["LAST_SUMMARY"] = summary
                except Exception as exc:  # noqa: BLE001
                    log_line(f"Scrape thread failed: {exc}")
                    RUNTIME.control.mark_stopped()

        _RUNNER_THREAD = threading.Thread(target=_run, daemon=True)
        _RUNNER_THREAD.start()
        return True


@app.post("/api/start")
def api_start() -> Response:
    """start-scraping: raise the scanning flag and open the browser."""

    payload = _request_payload()
    url = str(payload.get("url") or "").strip() or None
    headless_raw = payload.get("headless")
    headless = None if headless_raw is None else str(headless_raw).lower() not in {"0", "false", "no"}

    try:
        validate_runtime_config("ui")
    except ValueError as exc:
        return jsonify({"ok": False, "error": "config_invalid", "details": str(exc)}), 400

    session = RUNTIME.store.load()
    if not url and not (session and session.last_observed_url) and not config.DEFAULT_START_URL:
        return jsonify({"ok": False, "error": "missing_url"}), 400

    RUNTIME.control.start(url or "")
    launched = _launch_runner(url, headless)
    return jsonify({"ok": True, "launched": launched, **RUNTIME.control.status()})


@app.post("/api/stop")
def api_stop() -> Response:
    """stop-scraping: observed by the controller on its next tick."""

    RUNTIME.control.stop()
    return jsonify({"ok": True, **RUNTIME.control.status()})


@app.get("/api/status")
def api_status() -> Response:
    status = RUNTIME.control.status()
    status["runnerActive"] = _runner_active()
    return jsonify(status)


@app.get("/api/export")
def api_export() -> Response:
    """request-export: the CSV of the persisted session as JSON."""

    return jsonify(RUNTIME.control.request_export())


@app.get("/export/csv")
def export_csv() -> Response:
    """Provide the persisted session as a downloadable CSV file."""

    result = RUNTIME.control.request_export()
    if not result.get("success"):
        return jsonify({"ok": False, "error": result.get("error")}), 404
    filename = f"reviews_{time.strftime('%Y-%m-%d')}.csv"
    return Response(
        result["csv"].encode("utf-8"),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/exports/latest.xlsx")
def api_export_latest_xlsx() -> Response:
    session = RUNTIME.store.load()
    try:
        path = export_reviews_to_excel(session.records if session else None)
    except FileNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    return send_file(path, as_attachment=True, download_name=os.path.basename(path))


@app.route("/api/settings/delay", methods=["GET", "POST"])
def api_delay_settings() -> Response:
    if request.method == "GET":
        return jsonify(RUNTIME.control.delay_settings().to_dict())

    payload = _request_payload()
    current = RUNTIME.control.delay_settings()
    try:
        min_ms = int(payload.get("min", current.min_ms))
        max_ms = int(payload.get("max", current.max_ms))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "invalid_params"}), 400

    settings = RUNTIME.control.update_delay_settings(min_ms, max_ms)
    return jsonify({"ok": True, **settings.to_dict()})


@app.get("/api/events")
def api_events() -> Response:
    try:
        since = int(request.args.get("since", 0))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "invalid since"}), 400
    events = RUNTIME.events.since(since)
    return jsonify({"ok": True, "events": events, "last_seq": RUNTIME.events.last_seq})


@app.get("/api/exports")
def api_exports() -> Response:
    """Return recorded exports, newest first."""

    kind = request.args.get("kind") or None
    exports = db.list_exports(limit=config.EXPORTS_KEEP_MAX, kind=kind)
    return jsonify({"ok": True, "count": len(exports), "exports": exports})


@app.route("/logs/stream")
def logs_stream() -> Response:
    """Stream the run log as Server-Sent Events."""

    return Response(_tail_log_generator(), mimetype="text/event-stream")


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and DB."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


if __name__ == "__main__":
    # Direct invocation is primarily for local development; directories and
    # schema are initialised above during module import.
    app.run(host="0.0.0.0", port=8080)
