"""
Static server for the self-hosted modern-monaco example.

Serves public/ and the mirrored editor distribution under /monaco with the
MIME types, CORS and cross-origin isolation headers that module workers and
the wasm grammar engine need.

Run with:  monaco-serve            (or: python -m monaco_host.server)
Open:      http://localhost:3000
"""

from __future__ import annotations

import argparse
import mimetypes
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from flask import Flask, jsonify, request, send_from_directory
from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join

from .paths import (
    DEBUG_FILES,
    MONACO_URL_PREFIX,
    ProjectLayout,
    host_from_env,
    layout_from_env,
    port_from_env,
)


# Default guesses for these are wrong (or missing) for module workers / wasm
MIME_OVERRIDES: Dict[str, str] = {
    ".mjs": "application/javascript",
    ".wasm": "application/wasm",
}

IMMUTABLE_EXTENSIONS = {".mjs", ".wasm", ".js", ".css", ".html"}
CACHE_CONTROL = "public, max-age=31536000"

ISOLATION_HEADERS = {
    "Cross-Origin-Embedder-Policy": "require-corp",
    "Cross-Origin-Opener-Policy": "same-origin",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

NOT_FOUND_MESSAGES = {
    ".mjs": "Module file not found",
    ".js": "JavaScript file not found",
}


def guess_type(path: str) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in MIME_OVERRIDES:
        return MIME_OVERRIDES[suffix]
    mimetype, _ = mimetypes.guess_type(path)
    return mimetype or "application/octet-stream"


def resolve_under(root: Path, rel_path: str) -> Optional[Path]:
    """Join rel_path under root; None if it would escape root."""
    rel = (rel_path or "").replace("\\", "/").lstrip("/")
    joined = safe_join(str(root), rel) if rel else str(root)
    if joined is None:
        return None
    return Path(joined)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _wants_html() -> bool:
    accept = request.accept_mimetypes
    # No Accept header at all counts as "anything"
    return not accept or accept.accept_html


def _not_found(path: str):
    message = NOT_FOUND_MESSAGES.get(Path(path).suffix.lower(), "File not found")
    return message, 404, {"Content-Type": "text/plain; charset=utf-8"}


def _send(directory: Path, rel_path: str):
    return send_from_directory(directory, rel_path, mimetype=guess_type(rel_path))


def debug_file_list(port: int) -> List[Dict[str, str]]:
    return [{"path": path, "url": f"http://localhost:{port}{path}"} for path in DEBUG_FILES]


def create_app(layout: ProjectLayout | None = None, port: int | None = None) -> Flask:
    layout = layout or layout_from_env()
    port = port if port is not None else port_from_env()

    app = Flask(__name__, static_folder=None)
    app.config.update(
        STATIC_ROOT=layout.public_dir,
        MONACO_ROOT=layout.monaco_dir,
        INDEX_DOCUMENT="index.html",
        PORT=port,
    )

    def fallback(rel_path: str):
        # Asset-like requests never fall back to the default document
        if "." in rel_path:
            return _not_found(rel_path)
        root = Path(app.config["STATIC_ROOT"])
        index = root / app.config["INDEX_DOCUMENT"]
        if _wants_html() and index.is_file():
            return send_from_directory(root, app.config["INDEX_DOCUMENT"])
        return _not_found(rel_path)

    @app.after_request
    def add_headers(response):
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        for name, value in ISOLATION_HEADERS.items():
            response.headers[name] = value

        if response.status_code < 400:
            suffix = Path(request.path).suffix.lower()
            if suffix in MIME_OVERRIDES:
                # exact value, without the charset werkzeug appends for JS
                response.headers["Content-Type"] = MIME_OVERRIDES[suffix]
            if suffix in IMMUTABLE_EXTENSIONS:
                response.headers["Cache-Control"] = CACHE_CONTROL
        return response

    @app.errorhandler(Exception)
    def handle_error(exc):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.error("Server error on %s: %r", request.path, exc)
        return jsonify({"error": "Internal server error", "message": str(exc)}), 500

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "timestamp": _utc_timestamp(), "workers": "enabled"})

    @app.get("/debug/files")
    def debug_files():
        return jsonify(
            {
                "message": "Check these URLs to verify file availability",
                "files": debug_file_list(app.config["PORT"]),
            }
        )

    @app.get(MONACO_URL_PREFIX + "/<path:rel_path>")
    def monaco_file(rel_path: str):
        root = Path(app.config["MONACO_ROOT"])
        target = resolve_under(root, rel_path)
        if target is None:
            return jsonify({"error": "Invalid path", "path": rel_path}), 400
        if not target.is_file():
            return fallback(rel_path)
        return _send(root, rel_path)

    @app.get("/", defaults={"rel_path": ""})
    @app.get("/<path:rel_path>")
    def static_file(rel_path: str):
        root = Path(app.config["STATIC_ROOT"])
        target = resolve_under(root, rel_path)
        if target is None:
            return jsonify({"error": "Invalid path", "path": rel_path}), 400
        if rel_path and target.is_file():
            return _send(root, rel_path)
        return fallback(rel_path)

    return app


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="monaco-serve", description="Serve the self-hosted modern-monaco example.")
    p.add_argument("--root", default=None, help="Project root (default: $MONACO_HOST_ROOT or cwd)")
    p.add_argument("--host", default=None, help="Bind address (default: $HOST or 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help="Port (default: $PORT or 3000)")
    args = p.parse_args(argv)

    try:
        port = args.port if args.port is not None else port_from_env()
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    host = args.host or host_from_env()
    layout = layout_from_env(args.root)
    app = create_app(layout, port=port)

    print(f"\n  Self-hosted modern-monaco server")
    print(f"  http://localhost:{port}")
    print(f"  Static root:    {layout.public_dir}")
    print(f"  Editor files:   {MONACO_URL_PREFIX} -> {layout.monaco_dir}")
    print(f"  Debug endpoint: http://localhost:{port}/debug/files")
    print(f"  Health check:   http://localhost:{port}/health\n")

    app.run(host=host, port=port, debug=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
