"""
Request correlation and timing.

Every response carries ``X-Request-ID`` (echoed from the caller or generated)
and ``X-Request-Duration-Ms``.  Requests slower than ``SLOW_REQUEST_MS`` are
logged at WARNING, 5xx responses at ERROR, everything else at DEBUG.  Health
probes are never logged.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_QUIET_PREFIX = "/api/v1/health"


def _project_scope():
    """Project id of the current request, from the URL or ``?project_id=``."""
    pid = (request.view_args or {}).get("pid")
    if pid is None:
        pid = request.args.get("project_id", type=int)
    return pid


def init_request_timing(app: Flask):

    @app.before_request
    def _open_request():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _close_request(response):
        started = g.pop("request_started", None)
        if started is None:
            return response
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path.startswith(_QUIET_PREFIX):
            return response

        if elapsed_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
            level = logging.WARNING
        elif response.status_code >= 500:
            level = logging.ERROR
        else:
            level = logging.DEBUG
        logger.log(
            level, "%s %s -> %d in %.0fms",
            request.method, request.path, response.status_code, elapsed_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 1),
                "project_id": _project_scope(),
            },
        )
        return response
