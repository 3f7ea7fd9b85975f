from __future__ import annotations

import json
import shutil
from pathlib import Path

import jsonschema
import pytest

from monaco_host import copy_assets
from monaco_host.copy_assets import (
    MANIFEST_NAME,
    MANIFEST_SCHEMA,
    ManifestEntry,
    build_manifest,
    check_expected,
    copy_monaco,
    copy_tree,
)
from monaco_host.paths import CRITICAL_FILES

from conftest import WASM_BYTES, make_monaco_dist, write


def _tree(root: Path) -> dict:
    return {
        str(p.relative_to(root)).replace("\\", "/"): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def test_copy_tree_mirrors_every_file(tmp_path):
    src = tmp_path / "src"
    write(src / "index.mjs", "export {};\n")
    write(src / "lsp" / "typescript" / "worker.mjs", "// ts worker\n")
    write(src / "lsp" / "css" / "worker.mjs", "// css worker\n")
    write(src / "onig.wasm", WASM_BYTES)
    (src / "empty-dir").mkdir()

    report = copy_tree(src, tmp_path / "dest")

    assert report.ok
    assert len(report.copied) == 4
    assert _tree(tmp_path / "dest") == _tree(src)
    assert (tmp_path / "dest" / "empty-dir").is_dir()


def test_copy_tree_twice_is_idempotent(tmp_path):
    src = make_monaco_dist(tmp_path / "src")
    dest = tmp_path / "dest"

    copy_tree(src, dest)
    first = _tree(dest)
    report = copy_tree(src, dest)

    assert report.ok
    assert _tree(dest) == first == _tree(src)


def test_copy_tree_skips_failing_files(tmp_path, monkeypatch):
    src = tmp_path / "src"
    write(src / "a.mjs", "a")
    write(src / "b.mjs", "b")
    write(src / "c.mjs", "c")
    real_copy2 = shutil.copy2

    def flaky_copy2(s, d, *args, **kwargs):
        if Path(s).name == "b.mjs":
            raise PermissionError("denied")
        return real_copy2(s, d, *args, **kwargs)

    monkeypatch.setattr(copy_assets.shutil, "copy2", flaky_copy2)
    report = copy_tree(src, tmp_path / "dest")

    assert not report.ok
    assert [r.rel_path for r in report.failed] == ["b.mjs"]
    assert "denied" in report.failed[0].reason
    assert sorted(r.rel_path for r in report.copied) == ["a.mjs", "c.mjs"]
    assert (tmp_path / "dest" / "c.mjs").read_text() == "c"


def test_copy_tree_reports_unreadable_source(tmp_path):
    report = copy_tree(tmp_path / "does-not-exist", tmp_path / "dest")
    assert not report.ok
    assert report.failed[0].rel_path == "."


def test_check_expected(tmp_path):
    write(tmp_path / "index.mjs", "x")
    entries = check_expected(tmp_path, ["index.mjs", "onig.wasm"])
    assert entries == [ManifestEntry("index.mjs", True), ManifestEntry("onig.wasm", False)]


def test_build_manifest_matches_schema():
    manifest = build_manifest([ManifestEntry("index.mjs", True)])
    jsonschema.validate(instance=manifest, schema=MANIFEST_SCHEMA)
    assert manifest["status"] == "ready"
    assert manifest["files"] == ["index.mjs"]
    assert manifest["timestamp"].endswith("Z")


def test_copy_fills_in_missing_destination_file(layout):
    expected = ["index.mjs", "lsp/typescript/worker.mjs", "onig.wasm"]
    make_monaco_dist(layout.monaco_dist, expected)
    # destination already has everything except onig.wasm
    make_monaco_dist(layout.monaco_dir, expected[:2])

    assert copy_monaco(layout, expected) == 0

    checks = json.loads((layout.monaco_dir / MANIFEST_NAME).read_text(encoding="utf-8"))["checks"]
    assert checks == [{"path": p, "found": True} for p in expected]
    assert (layout.monaco_dir / "onig.wasm").read_bytes() == WASM_BYTES


def test_missing_critical_file_fails_without_manifest(layout, capsys):
    make_monaco_dist(layout.monaco_dist, [f for f in CRITICAL_FILES if f != "onig.wasm"])
    # stale manifest from an earlier successful run
    write(layout.manifest_path, json.dumps({"status": "ready"}))

    assert copy_monaco(layout) == 1

    assert not layout.manifest_path.exists()
    assert "Missing: onig.wasm" in capsys.readouterr().err


def test_missing_source_distribution(layout, capsys):
    assert copy_monaco(layout) == 1
    assert "dist directory not found" in capsys.readouterr().err
    assert not layout.monaco_dir.exists()


def test_main_with_explicit_source(layout, tmp_path):
    dist = make_monaco_dist(tmp_path / "elsewhere")
    rc = copy_assets.main(["--root", str(layout.root), "--source", str(dist)])
    assert rc == 0
    assert layout.manifest_path.exists()
    for rel in CRITICAL_FILES:
        assert (layout.monaco_dir / rel).is_file()


@pytest.mark.parametrize("status", ["pending", None])
def test_schema_rejects_unfinished_manifest(status):
    manifest = {"timestamp": "2024-01-01T00:00:00Z", "files": [], "status": status}
    with pytest.raises(jsonschema.ValidationError):
        jsonschema.validate(instance=manifest, schema=MANIFEST_SCHEMA)
