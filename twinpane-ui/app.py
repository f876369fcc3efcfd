#!/usr/bin/env python3
"""Flask application factory for the twinpane file manager backend."""

from __future__ import annotations

import time
from typing import Optional

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from routes_fileops import create_fileops_blueprint
from routes_fs import create_fs_blueprint, error_response
from services.config import Settings
from services.logging_setup import access_enabled as _access_enabled
from services.logging_setup import access_logger as _get_access_logger
from services.logging_setup import core_log as _core_log
from services.logging_setup import setup_logging
from services.sandbox import Sandbox
from services.trash import RecycleStore


def _install_access_log(app: Flask) -> None:
    @app.before_request
    def _access_log_before_request():
        g._twinpane_t0 = time.monotonic()

    @app.after_request
    def _access_log_after_request(response):
        try:
            if not _access_enabled():
                return response
            method = request.method or ""
            status = getattr(response, "status_code", 0) or 0
            client = request.headers.get("X-Forwarded-For") or request.remote_addr or ""
            line = f"{client} {method} {request.path} -> {status}"
            t0 = getattr(g, "_twinpane_t0", None)
            if t0 is not None:
                line += f" ({int((time.monotonic() - t0) * 1000)}ms)"
            _get_access_logger().info(line)
        except Exception:
            # Logging must never affect response
            pass
        return response


def create_app(settings: Optional[Settings] = None) -> Flask:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_dir)

    app = Flask(__name__)

    sandbox = Sandbox(settings.root, policy=settings.path_policy)
    recycle = RecycleStore(sandbox, dirname=settings.trash_dirname, protected=settings.protected)

    app.extensions["twinpane.settings"] = settings
    app.extensions["twinpane.sandbox"] = sandbox
    app.extensions["twinpane.recycle"] = recycle

    app.register_blueprint(create_fs_blueprint(sandbox, settings))
    app.register_blueprint(create_fileops_blueprint(sandbox, recycle, settings))

    _install_access_log(app)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return error_response(str(e.name or "error").lower().replace(" ", "_"), int(e.code or 500), ok=False)

    @app.errorhandler(Exception)
    def _unhandled_error(e: Exception):
        _core_log("error", "app.unhandled", path=request.path, error=repr(e))
        return error_response("internal_error", 500, ok=False)

    _core_log(
        "info",
        "app.start",
        root=settings.root,
        policy=settings.path_policy,
        trash=settings.trash_dirname,
        protected=",".join(settings.protected) or "-",
    )
    return app
