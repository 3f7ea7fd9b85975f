"""
Mirror the modern-monaco distribution into public/monaco.

Copying is best effort: a file that cannot be copied is reported and skipped.
The critical file check afterwards is not: if any of CRITICAL_FILES is missing
the editor cannot start, so the run fails and no manifest is written.

Usage:
  monaco-copy [--root DIR] [--source DIR]
"""

from __future__ import annotations

import argparse
import json
import shutil
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import jsonschema

from .paths import CRITICAL_FILES, ProjectLayout, layout_from_env


MANIFEST_NAME = "verification.json"

MANIFEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["timestamp", "files", "status"],
    "properties": {
        "timestamp": {"type": "string", "minLength": 1},
        "files": {"type": "array", "items": {"type": "string"}},
        "checks": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["path", "found"],
                "properties": {
                    "path": {"type": "string"},
                    "found": {"type": "boolean"},
                },
            },
        },
        "status": {"enum": ["ready"]},
    },
}


@dataclass(frozen=True)
class CopyResult:
    rel_path: str
    ok: bool
    reason: Optional[str] = None


@dataclass
class CopyReport:
    results: List[CopyResult] = field(default_factory=list)

    @property
    def copied(self) -> List[CopyResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[CopyResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class ManifestEntry:
    path: str
    found: bool


def _rel(path: Path, base: Path) -> str:
    return str(path.relative_to(base)).replace("\\", "/")


def copy_tree(src: str | Path, dest: str | Path) -> CopyReport:
    """Recursively copy src into dest. Per-file errors go into the report."""
    src = Path(src)
    dest = Path(dest)
    report = CopyReport()
    _copy_dir(src, dest, src, report)
    return report


def _copy_dir(src: Path, dest: Path, base: Path, report: CopyReport) -> None:
    try:
        dest.mkdir(parents=True, exist_ok=True)
        entries = sorted(src.iterdir())
    except OSError as e:
        rel = _rel(src, base) if src != base else "."
        report.results.append(CopyResult(rel, False, f"directory: {e}"))
        print(f"[WARN] Could not copy directory {src}: {e}", file=sys.stderr)
        return

    for entry in entries:
        target = dest / entry.name
        if entry.is_dir():
            _copy_dir(entry, target, base, report)
            continue
        rel = _rel(entry, base)
        try:
            shutil.copy2(entry, target)
            report.results.append(CopyResult(rel, True))
        except OSError as e:
            report.results.append(CopyResult(rel, False, str(e)))
            print(f"[WARN] Could not copy {entry}: {e}", file=sys.stderr)


def check_expected(dest: str | Path, expected: Sequence[str]) -> List[ManifestEntry]:
    dest = Path(dest)
    return [ManifestEntry(rel, (dest / rel).is_file()) for rel in expected]


def build_manifest(entries: Sequence[ManifestEntry]) -> Dict[str, Any]:
    manifest = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "files": [e.path for e in entries],
        "checks": [{"path": e.path, "found": e.found} for e in entries],
        "status": "ready",
    }
    jsonschema.validate(instance=manifest, schema=MANIFEST_SCHEMA)
    return manifest


def copy_monaco(layout: ProjectLayout, expected: Sequence[str] = CRITICAL_FILES) -> int:
    source = layout.monaco_dist
    dest = layout.monaco_dir

    print("Copying modern-monaco distribution files...")
    if not source.is_dir():
        print("ERROR: modern-monaco dist directory not found!", file=sys.stderr)
        print("       Install it first (npm install modern-monaco) or set MONACO_DIST", file=sys.stderr)
        print(f"       Looking for: {source}", file=sys.stderr)
        return 1
    print(f"[OK] Found modern-monaco dist: {source}")

    report = copy_tree(source, dest)
    print(f"Copied {len(report.copied)} file(s), {len(report.failed)} failed")
    for r in report.failed:
        print(f"[FAIL] {r.rel_path}: {r.reason}", file=sys.stderr)

    print("Verifying critical files...")
    entries = check_expected(dest, expected)
    for e in entries:
        if e.found:
            print(f"[OK] {e.path}")
        else:
            print(f"[FAIL] Missing: {e.path}", file=sys.stderr)

    manifest_path = dest / MANIFEST_NAME
    if not all(e.found for e in entries):
        # never leave a previous run's "ready" manifest behind
        manifest_path.unlink(missing_ok=True)
        print("ERROR: Some critical files are missing!", file=sys.stderr)
        return 1

    manifest = build_manifest(entries)
    manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    print(f"[OK] modern-monaco files copied to {dest}")
    print(f"Wrote {MANIFEST_NAME} for debugging")
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="monaco-copy", description="Mirror the modern-monaco dist into public/monaco.")
    ap.add_argument("--root", default=None, help="Project root (default: $MONACO_HOST_ROOT or cwd)")
    ap.add_argument("--source", default=None, help="Distribution to copy (default: $MONACO_DIST or node_modules/modern-monaco/dist)")
    args = ap.parse_args(argv)

    layout = layout_from_env(args.root)
    if args.source:
        layout = ProjectLayout(root=layout.root, monaco_source=Path(args.source).resolve())

    try:
        return copy_monaco(layout)
    except Exception as e:
        print(f"ERROR: copy failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
