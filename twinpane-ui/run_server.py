#!/usr/bin/env python3
"""Production entry point: serve the app with gevent's WSGI server.

Each file operation runs on its own OS thread; the gevent worker only
drains the operation's event channel, so long copies do not stall other
requests.
"""

from __future__ import annotations

from gevent import pywsgi

from app import create_app
from services.config import Settings
from services.logging_setup import core_log as _core_log


def main() -> None:
    settings = Settings.from_env()
    app = create_app(settings)
    server = pywsgi.WSGIServer((settings.host, int(settings.port)), app)
    _core_log("info", "server.listen", host=settings.host, port=settings.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        _core_log("info", "server.stop")


if __name__ == "__main__":
    main()
