"""
Bundle web/app.js into public/dist/app.js with esbuild.

modern-monaco imports stay external; the import map in index.html resolves
them in the browser. Minification is on when NODE_ENV=production.
"""

from __future__ import annotations

import argparse
import json
import os
import shlex
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .paths import EXTERNAL_MODULES, ProjectLayout, layout_from_env


class BuildError(Exception):
    def __init__(self, message: str, returncode: int = 1, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


@dataclass
class BuildDescriptor:
    entry_points: List[Path]
    outfile: Path
    target: str = "es2022"
    fmt: str = "esm"
    platform: str = "browser"
    minify: bool = False
    sourcemap: bool = True
    external: List[str] = field(default_factory=lambda: list(EXTERNAL_MODULES))
    define: Dict[str, str] = field(default_factory=dict)


def find_esbuild(root: Path, env: Mapping[str, str] | None = None) -> List[str]:
    env = os.environ if env is None else env
    explicit = env.get("ESBUILD")
    if explicit:
        return [explicit]
    on_path = shutil.which("esbuild")
    if on_path:
        return [on_path]
    local = Path(root) / "node_modules" / ".bin" / "esbuild"
    if local.exists():
        return [str(local)]
    if shutil.which("npx"):
        return ["npx", "--no-install", "esbuild"]
    raise BuildError("esbuild not found. Install with: npm install --save-dev esbuild (or set ESBUILD)")


def _stdin_entry(entry_points: List[Path], resolve_dir: Path) -> str:
    lines = []
    for entry in entry_points:
        rel = os.path.relpath(entry, resolve_dir).replace("\\", "/")
        if not rel.startswith("."):
            rel = "./" + rel
        lines.append(f"import {json.dumps(rel)};")
    return "\n".join(lines) + "\n"


def esbuild_command(desc: BuildDescriptor, esbuild: List[str], resolve_dir: Path | None = None) -> List[str]:
    if not desc.entry_points:
        raise BuildError("no entry points to bundle")

    cmd = list(esbuild)
    if len(desc.entry_points) == 1:
        cmd.append(str(desc.entry_points[0]))
    else:
        # several entries are combined through stdin so the output stays one file
        resolve_dir = resolve_dir or desc.entry_points[0].parent
        cmd += [f"--resolve-dir={resolve_dir}", "--sourcefile=entries.js", "--loader=js"]

    cmd += [
        "--bundle",
        f"--format={desc.fmt}",
        f"--target={desc.target}",
        f"--platform={desc.platform}",
        f"--outfile={desc.outfile}",
        "--log-level=warning",
    ]
    if desc.sourcemap:
        cmd.append("--sourcemap")
    if desc.minify:
        cmd.append("--minify")
    for name in desc.external:
        cmd.append(f"--external:{name}")
    for key, value in sorted(desc.define.items()):
        cmd.append(f"--define:{key}={value}")
    return cmd


def run_esbuild(desc: BuildDescriptor, root: Path, env: Mapping[str, str] | None = None) -> subprocess.CompletedProcess:
    esbuild = find_esbuild(root, env)
    cmd = esbuild_command(desc, esbuild, resolve_dir=root)
    stdin = _stdin_entry(desc.entry_points, root) if len(desc.entry_points) > 1 else None

    desc.outfile.parent.mkdir(parents=True, exist_ok=True)
    started = time.time()
    try:
        result = subprocess.run(
            cmd,
            cwd=str(root),
            input=stdin,
            text=True,
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise BuildError(f"could not run {shlex.join(cmd)}: {e}") from e

    if result.returncode != 0:
        output = (result.stderr or "") + (result.stdout or "")
        raise BuildError(
            f"esbuild exited with code {result.returncode}",
            returncode=result.returncode,
            output=output.strip(),
        )
    print(f"Bundled {desc.outfile.name} in {round(time.time() - started, 2)}s")
    return result


def descriptor_for(layout: ProjectLayout, env: Mapping[str, str] | None = None, minify: Optional[bool] = None) -> BuildDescriptor:
    env = os.environ if env is None else env
    node_env = env.get("NODE_ENV") or "development"
    return BuildDescriptor(
        entry_points=[layout.entry_script],
        outfile=layout.bundle_path,
        minify=(node_env == "production") if minify is None else minify,
        define={"process.env.NODE_ENV": json.dumps(node_env)},
    )


def build_project(layout: ProjectLayout, env: Mapping[str, str] | None = None, minify: Optional[bool] = None) -> Path:
    print("Building self-hosted modern-monaco example...")
    layout.public_dir.mkdir(parents=True, exist_ok=True)
    layout.dist_dir.mkdir(parents=True, exist_ok=True)

    desc = descriptor_for(layout, env, minify=minify)
    print("Building JavaScript bundle...")
    run_esbuild(desc, layout.root, env)

    print("Copying HTML file...")
    if not layout.index_source.is_file():
        raise BuildError(f"missing {layout.index_source}")
    shutil.copyfile(layout.index_source, layout.index_html)

    print(f"[OK] Build completed. Output directory: {layout.public_dir}")
    return layout.bundle_path


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="monaco-build", description="Bundle the example app with esbuild.")
    ap.add_argument("--root", default=None, help="Project root (default: $MONACO_HOST_ROOT or cwd)")
    ap.add_argument("--minify", action="store_true", default=None, help="Minify even outside NODE_ENV=production")
    args = ap.parse_args(argv)

    layout = layout_from_env(args.root)
    try:
        build_project(layout, minify=args.minify)
    except BuildError as e:
        print(f"[FAIL] Build failed: {e}", file=sys.stderr)
        if e.output:
            print(e.output, file=sys.stderr)
        return 1
    print('Run "monaco-serve" to serve the application')
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
