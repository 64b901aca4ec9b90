"""Flask front end exposing the compile pipeline over HTTP."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError as PayloadError

from .. import __version__
from ..compilation import (
    CompilationError,
    CompilationRequest,
    UnknownCompilerError,
    rejection_payload,
)
from ..state import AppState, build_state

_LOGGER = logging.getLogger(__name__)


def create_app(config_path: Optional[Path] = None, state: AppState | None = None) -> Flask:
    state = state or build_state(config_path)

    app = Flask(__name__)
    CORS(app)
    app.extensions["cexplorer"] = state

    @app.get("/api/health")
    def health() -> Any:
        return jsonify({
            "status": "ok",
            "version": __version__,
            "compilers": len(state.registry),
            "cache": {
                "entries": len(state.service.cache),
                "bytes": state.service.cache.size,
                "capacity": state.service.cache.capacity,
            },
        })

    @app.get("/api/compilers")
    def list_compilers() -> Any:
        compilers = state.registry.describe()
        for entry in compilers:
            entry["available"] = bool(entry["remote"]) or state.env.is_available(str(entry["id"]))
        return jsonify(compilers)

    def compile_handler() -> Any:
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or not isinstance(body.get("source"), str):
            return jsonify({"error": "source is required"}), 400

        compiler_id = str(body.get("compiler", ""))
        entry = state.registry.get(compiler_id)
        if entry is None:
            return jsonify({"error": f"Unknown compiler {compiler_id!r}"}), 404

        remote_url = entry.settings.remote if entry.settings.is_remote else None
        if remote_url:
            reply = state.remote.forward(
                remote_url,
                request.path,
                request.get_data(),
                dict(request.headers),
            )
            return Response(reply.body, status=reply.status, content_type=reply.content_type)

        try:
            compile_request = CompilationRequest.from_payload(body)
            result = state.loop.run(state.service.submit(compile_request))
        except PayloadError as exc:
            return jsonify({"error": f"Malformed request: {exc.errors()[0]['msg']}"}), 400
        except UnknownCompilerError as exc:
            return jsonify({"error": str(exc)}), 404
        except CompilationError as exc:
            _LOGGER.warning("Rejected request for %s: %s", compiler_id, exc)
            return jsonify(rejection_payload(str(exc)))
        except Exception as exc:
            _LOGGER.exception("Unexpected failure compiling for %s", compiler_id)
            return jsonify(rejection_payload(f"Internal compiler explorer error: {exc}"))
        return jsonify(result.to_dict())

    app.add_url_rule("/api/compile", "api_compile", compile_handler, methods=["POST"])
    app.add_url_rule("/compile", "compile", compile_handler, methods=["POST"])

    return app


__all__ = ["create_app"]
