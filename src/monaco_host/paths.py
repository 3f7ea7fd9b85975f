"""
Project layout and environment configuration shared by every tool.

All directories hang off a single project root:

  web/                      hand-written sources (index.html, app.js)
  public/                   static root served over HTTP
  public/dist/app.js        bundler output
  public/monaco/            mirrored modern-monaco distribution
  node_modules/modern-monaco/dist   where the distribution is copied from
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"

MONACO_URL_PREFIX = "/monaco"

# Files the copier must find in the mirrored distribution
CRITICAL_FILES = [
    "index.mjs",
    "editor-core.mjs",
    "editor-worker.mjs",
    "lsp/typescript/worker.mjs",
    "lsp/html/worker.mjs",
    "lsp/css/worker.mjs",
    "lsp/json/worker.mjs",
    "onig.wasm",
]

# Listed by GET /debug/files
DEBUG_FILES = [
    "/monaco/index.mjs",
    "/monaco/editor-core.mjs",
    "/monaco/lsp/index.mjs",
    "/monaco/lsp/typescript/worker.mjs",
    "/monaco/lsp/html/worker.mjs",
    "/monaco/lsp/css/worker.mjs",
    "/monaco/lsp/json/worker.mjs",
    "/monaco/onig.wasm",
]

# Left unresolved by the bundler; the import map in index.html supplies them
EXTERNAL_MODULES = ["modern-monaco", "modern-monaco/*"]


@dataclass(frozen=True)
class ProjectLayout:
    root: Path
    monaco_source: Optional[Path] = None

    @property
    def web_dir(self) -> Path:
        return self.root / "web"

    @property
    def public_dir(self) -> Path:
        return self.root / "public"

    @property
    def dist_dir(self) -> Path:
        return self.public_dir / "dist"

    @property
    def bundle_path(self) -> Path:
        return self.dist_dir / "app.js"

    @property
    def entry_script(self) -> Path:
        return self.web_dir / "app.js"

    @property
    def index_source(self) -> Path:
        return self.web_dir / "index.html"

    @property
    def index_html(self) -> Path:
        return self.public_dir / "index.html"

    @property
    def monaco_dir(self) -> Path:
        return self.public_dir / "monaco"

    @property
    def monaco_dist(self) -> Path:
        if self.monaco_source is not None:
            return self.monaco_source
        return self.root / "node_modules" / "modern-monaco" / "dist"

    @property
    def manifest_path(self) -> Path:
        return self.monaco_dir / "verification.json"


def layout_from_env(root: str | Path | None = None, env: Mapping[str, str] | None = None) -> ProjectLayout:
    """Build the layout from an explicit root, $MONACO_HOST_ROOT or the cwd."""
    env = os.environ if env is None else env
    if root is None:
        root = env.get("MONACO_HOST_ROOT") or Path.cwd()
    dist = env.get("MONACO_DIST")
    return ProjectLayout(
        root=Path(root).resolve(),
        monaco_source=Path(dist).resolve() if dist else None,
    )


def port_from_env(env: Mapping[str, str] | None = None) -> int:
    env = os.environ if env is None else env
    raw = (env.get("PORT") or "").strip()
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer, got {raw!r}")


def host_from_env(env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    return env.get("HOST") or DEFAULT_HOST
