"""WSGI/CLI helpers to run the cexplorer web app."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from werkzeug.serving import run_simple

from .app import create_app


def run(config_path: Optional[str] = None) -> None:
    """Start the development web server."""

    resolved_config = Path(config_path).expanduser() if config_path else None
    app = create_app(resolved_config)

    host = os.getenv("CEXPLORER_WEB_HOST", "127.0.0.1")
    port = int(os.getenv("CEXPLORER_WEB_PORT", "10240"))
    debug = os.getenv("CEXPLORER_WEB_DEBUG", "false").lower() == "true"

    state = app.extensions["cexplorer"]
    state.loop.start()
    try:
        run_simple(
            hostname=host,
            port=port,
            application=app,
            use_debugger=debug,
            use_reloader=debug,
            threaded=True,
        )
    finally:
        state.close()


__all__ = ["run"]
