"""
Audit a self-hosted setup: project files, build outputs, the mirrored editor
tree, the import map, the server configuration and (if a server is running)
a few HTTP endpoints.

Every check records a success, warning or error and the run always goes to
the end. The exit code is 1 when any error was recorded.
"""

from __future__ import annotations

import argparse
import json
import socket
import sys
import time
import tomllib
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import urlopen

import jsonschema

from .copy_assets import MANIFEST_NAME, MANIFEST_SCHEMA
from .paths import DEFAULT_PORT, ProjectLayout, layout_from_env


DEFAULT_BASE_URL = f"http://localhost:{DEFAULT_PORT}"

MONACO_FILES = [
    "index.mjs",
    "editor-core.mjs",
    "editor-worker-main.mjs",
    "lsp/index.mjs",
    "lsp/typescript/worker.mjs",
    "lsp/html/worker.mjs",
    "lsp/css/worker.mjs",
    "lsp/json/worker.mjs",
    "onig.wasm",
]

IMPORT_MAP_ENTRY = '"modern-monaco": "/monaco/index.mjs"'

REQUIRED_SCRIPTS = ["monaco-build", "monaco-dev", "monaco-serve", "monaco-setup", "monaco-copy"]

HTTP_CHECKS = [
    ("/health", "Health endpoint"),
    ("/monaco/index.mjs", "Monaco main file"),
    ("/monaco/editor-worker-main.mjs", "Editor worker"),
]

SERVER_MODULE = Path("src") / "monaco_host" / "server.py"


class SetupChecker:
    def __init__(self, root: str | Path, base_url: str = DEFAULT_BASE_URL, timeout: float = 5.0, http: bool = True):
        self.root = Path(root)
        self.layout = ProjectLayout(root=self.root)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http
        self.successes: List[str] = []
        self.warnings: List[str] = []
        self.errors: List[str] = []

    def log(self, message: str, kind: str = "info") -> None:
        stamp = time.strftime("%H:%M:%S")
        line = f"[{stamp}] {message}"
        if kind == "success":
            print(f"[OK]   {line}")
            self.successes.append(message)
        elif kind == "warning":
            print(f"[WARN] {line}")
            self.warnings.append(message)
        elif kind == "error":
            print(f"[FAIL] {line}", file=sys.stderr)
            self.errors.append(message)
        else:
            print(f"[INFO] {line}")

    def check_file_exists(self, path: Path, description: str) -> bool:
        if path.exists():
            self.log(f"{description} exists", "success")
            return True
        self.log(f"{description} missing: {path}", "error")
        return False

    def check_file_content(self, path: Path, description: str, expected: str) -> bool:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.log(f"Cannot read {description}: {e}", "error")
            return False
        if expected in content:
            self.log(f"{description} contains expected content", "success")
            return True
        self.log(f'{description} missing expected content: "{expected}"', "warning")
        return False

    def check_http(self, url_path: str, description: str) -> bool:
        url = self.base_url + url_path
        try:
            with urlopen(url, timeout=self.timeout) as resp:
                status = resp.status
        except HTTPError as e:
            self.log(f"{description} returns {e.code}", "warning")
            return False
        except (socket.timeout, TimeoutError):
            self.log(f"{description} timeout", "error")
            return False
        except URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                self.log(f"{description} timeout", "error")
            else:
                self.log(f"{description} not accessible: {e.reason}", "error")
            return False
        except OSError as e:
            self.log(f"{description} not accessible: {e}", "error")
            return False

        if status == 200:
            self.log(f"{description} responds correctly ({status})", "success")
            return True
        self.log(f"{description} returns {status}", "warning")
        return False

    def check_manifest(self) -> bool:
        path = self.layout.manifest_path
        try:
            manifest = json.loads(path.read_text(encoding="utf-8"))
        except OSError:
            self.log(f"Copy manifest missing: {path}", "error")
            return False
        except json.JSONDecodeError as e:
            self.log(f"Copy manifest is not valid JSON: {e}", "error")
            return False
        try:
            jsonschema.validate(instance=manifest, schema=MANIFEST_SCHEMA)
        except jsonschema.ValidationError as e:
            self.log(f"Copy manifest invalid: {e.message}", "error")
            return False
        self.log(f"Copy manifest {MANIFEST_NAME} is ready ({manifest['timestamp']})", "success")
        return True

    def check_entry_points(self, required: Iterable[str] = REQUIRED_SCRIPTS) -> bool:
        try:
            with open(self.root / "pyproject.toml", "rb") as f:
                project = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            self.log(f"Cannot read pyproject.toml: {e}", "error")
            return False

        scripts = project.get("project", {}).get("scripts", {}) or {}
        ok = True
        for name in required:
            if name in scripts:
                self.log(f'Script "{name}" defined', "success")
            else:
                self.log(f'Script "{name}" missing', "error")
                ok = False
        return ok

    def run(self) -> None:
        print("Running self-hosted modern-monaco setup checks")
        print("==============================================\n")
        root = self.root
        layout = self.layout

        self.log("Testing project structure...")
        self.check_file_exists(root / "pyproject.toml", "pyproject.toml")
        self.check_file_exists(root / SERVER_MODULE, "server module")
        self.check_file_exists(layout.index_source, "web/index.html")
        self.check_file_exists(layout.entry_script, "web/app.js")

        self.log("Testing build outputs...")
        self.check_file_exists(layout.index_html, "Built HTML file")
        self.check_file_exists(layout.bundle_path, "Built JavaScript bundle")

        self.log("Testing modern-monaco distribution files...")
        for rel in MONACO_FILES:
            self.check_file_exists(layout.monaco_dir / rel, f"Monaco file: {rel}")

        self.log("Testing import map configuration...")
        self.check_file_content(layout.index_html, "Import map in HTML", IMPORT_MAP_ENTRY)

        self.log("Testing server configuration...")
        self.check_file_content(root / SERVER_MODULE, "Server MIME type configuration", "application/javascript")
        self.check_file_content(root / SERVER_MODULE, "Server CORS configuration", "Access-Control-Allow-Origin")

        self.log("Testing copy manifest...")
        self.check_manifest()

        if self.http:
            self.log("Testing server endpoints (if running)...")
            for url_path, description in HTTP_CHECKS:
                self.check_http(url_path, description)

        self.log("Testing console scripts...")
        self.check_entry_points()

    def report(self) -> None:
        print("\nTest Report")
        print("===========")
        print(f"Successes: {len(self.successes)}")
        print(f"Warnings:  {len(self.warnings)}")
        print(f"Errors:    {len(self.errors)}")

        if self.errors:
            print("\nCritical Issues:")
            for msg in self.errors:
                print(f"   - {msg}")
        if self.warnings:
            print("\nWarnings:")
            for msg in self.warnings:
                print(f"   - {msg}")

        print("\nRecommendations:")
        if self.errors:
            print("   - Fix critical errors before proceeding")
            print('   - Run "monaco-setup" to rebuild the project')
        if self.warnings:
            print("   - Address warnings for optimal functionality")
            print("   - Check the server is running for endpoint tests")
        if not self.errors and not self.warnings:
            print("   - Setup appears to be complete")
            print('   - Run "monaco-dev" to start development')
            print(f"   - Open {self.base_url} in your browser")

    def exit_code(self) -> int:
        return 1 if self.errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="monaco-verify", description="Check a self-hosted modern-monaco setup.")
    ap.add_argument("--root", default=None, help="Project root (default: $MONACO_HOST_ROOT or cwd)")
    ap.add_argument("--base-url", default=DEFAULT_BASE_URL, help=f"Running server to check (default: {DEFAULT_BASE_URL})")
    ap.add_argument("--no-http", action="store_true", help="Skip the HTTP endpoint checks")
    ap.add_argument("--timeout", type=float, default=5.0, help="HTTP timeout in seconds")
    args = ap.parse_args(argv)

    checker = SetupChecker(layout_from_env(args.root).root, base_url=args.base_url, timeout=args.timeout, http=not args.no_http)
    checker.run()
    checker.report()
    return checker.exit_code()


if __name__ == "__main__":
    raise SystemExit(main())
