"""
One-shot setup: mirror modern-monaco, build the bundle, check the output,
print next steps.

Stops at the first failing step and returns its exit code.
"""

from __future__ import annotations

import argparse
import sys

from .build import BuildError, build_project, find_esbuild
from .copy_assets import copy_monaco
from .paths import DEFAULT_PORT, ProjectLayout, layout_from_env, port_from_env


# Editor files the built example cannot start without
MONACO_OUTPUTS = [
    "index.mjs",
    "editor-core.mjs",
    "editor-worker-main.mjs",
    "lsp/typescript/worker.mjs",
    "onig.wasm",
]


def check_outputs(layout: ProjectLayout) -> int:
    """Confirm the copy and build left every file the page loads."""
    expected = [layout.index_html, layout.bundle_path]
    expected += [layout.monaco_dir / rel for rel in MONACO_OUTPUTS]
    missing = 0
    for path in expected:
        rel = path.relative_to(layout.root).as_posix()
        if path.is_file():
            print(f"[OK] {rel}")
        else:
            print(f"[FAIL] Missing: {rel}", file=sys.stderr)
            missing += 1
    return 1 if missing else 0


def setup(layout: ProjectLayout) -> int:
    print("Setting up the self-hosted modern-monaco example")
    print("================================================")

    print("[INFO] Checking for esbuild...")
    try:
        esbuild = find_esbuild(layout.root)
    except BuildError as e:
        print(f"[FAIL] {e}", file=sys.stderr)
        return 1
    print(f"[OK] Using {' '.join(esbuild)}")

    print("[INFO] Copying modern-monaco files...")
    code = copy_monaco(layout)
    if code != 0:
        print("[FAIL] Copying modern-monaco failed", file=sys.stderr)
        return code

    print("[INFO] Building the project...")
    try:
        build_project(layout)
    except BuildError as e:
        print(f"[FAIL] Build failed: {e}", file=sys.stderr)
        if e.output:
            print(e.output, file=sys.stderr)
        return 1

    print("[INFO] Verifying the build output...")
    if check_outputs(layout) != 0:
        print("[FAIL] Setup incomplete, some files are missing", file=sys.stderr)
        return 1

    try:
        port = port_from_env()
    except ValueError as e:
        print(f"[WARN] {e}; assuming {DEFAULT_PORT}", file=sys.stderr)
        port = DEFAULT_PORT
    print("\n[OK] Setup completed successfully")
    print("Next steps:")
    print("  monaco-dev      start the development server (watch + rebuild)")
    print("  monaco-serve    serve the built example")
    print("  monaco-verify   check the setup")
    print(f"  open http://localhost:{port}")
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="monaco-setup", description="Copy modern-monaco and build the example.")
    ap.add_argument("--root", default=None, help="Project root (default: $MONACO_HOST_ROOT or cwd)")
    args = ap.parse_args(argv)
    return setup(layout_from_env(args.root))


if __name__ == "__main__":
    raise SystemExit(main())
