from __future__ import annotations

from pathlib import Path

import pytest

from monaco_host.paths import CRITICAL_FILES, ProjectLayout

REPO_ROOT = Path(__file__).resolve().parents[1]

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
<script type="importmap">
{ "imports": { "modern-monaco": "/monaco/index.mjs" } }
</script>
</head>
<body><script type="module" src="/dist/app.js"></script></body>
</html>
"""

# \x00asm + version 1
WASM_BYTES = b"\x00asm\x01\x00\x00\x00"


def write(path: Path, data: str | bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data, encoding="utf-8")
    return path


def make_monaco_dist(root: Path, files=CRITICAL_FILES) -> Path:
    for rel in files:
        if rel.endswith(".wasm"):
            write(root / rel, WASM_BYTES)
        else:
            write(root / rel, f"// {rel}\nexport default {{}};\n")
    return root


@pytest.fixture
def layout(tmp_path: Path) -> ProjectLayout:
    root = tmp_path / "project"
    write(root / "web" / "index.html", INDEX_HTML)
    write(root / "web" / "app.js", "import { lazy } from 'modern-monaco';\nlazy();\n")
    return ProjectLayout(root=root, monaco_source=tmp_path / "dist")


@pytest.fixture
def served(layout: ProjectLayout) -> ProjectLayout:
    """A layout whose public/ already looks like a finished build."""
    public = layout.public_dir
    write(public / "index.html", INDEX_HTML)
    write(public / "dist" / "app.js", "console.log('bundle');\n")
    write(public / "styles.css", "body { margin: 0; }\n")
    write(public / "worker.mjs", "self.onmessage = () => {};\n")
    write(public / "grammar.wasm", WASM_BYTES)
    make_monaco_dist(layout.monaco_dir)
    return layout
