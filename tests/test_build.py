from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from monaco_host import build
from monaco_host.build import (
    BuildDescriptor,
    BuildError,
    build_project,
    descriptor_for,
    esbuild_command,
    find_esbuild,
    run_esbuild,
)
from monaco_host.paths import EXTERNAL_MODULES


class FakeEsbuild:
    """Stands in for subprocess.run; writes the outfile like esbuild would."""

    def __init__(self, returncode: int = 0, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.returncode == 0:
            outfile = next(a.split("=", 1)[1] for a in cmd if a.startswith("--outfile="))
            Path(outfile).write_text("// bundled\n", encoding="utf-8")
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)


@pytest.fixture
def fake_esbuild(monkeypatch):
    fake = FakeEsbuild()
    monkeypatch.setenv("ESBUILD", "/opt/bin/esbuild")
    monkeypatch.setattr(build.subprocess, "run", fake)
    return fake


def test_command_for_single_entry(tmp_path):
    desc = BuildDescriptor(entry_points=[tmp_path / "app.js"], outfile=tmp_path / "out" / "app.js")
    cmd = esbuild_command(desc, ["esbuild"])

    assert cmd[:2] == ["esbuild", str(tmp_path / "app.js")]
    assert "--bundle" in cmd
    assert "--format=esm" in cmd
    assert "--target=es2022" in cmd
    assert "--platform=browser" in cmd
    assert f"--outfile={tmp_path / 'out' / 'app.js'}" in cmd
    for name in EXTERNAL_MODULES:
        assert f"--external:{name}" in cmd
    assert "--minify" not in cmd


def test_minify_flag(tmp_path):
    desc = BuildDescriptor(entry_points=[tmp_path / "app.js"], outfile=tmp_path / "o.js", minify=True, sourcemap=False)
    cmd = esbuild_command(desc, ["esbuild"])
    assert "--minify" in cmd
    assert "--sourcemap" not in cmd


def test_several_entries_bundle_into_one_file(tmp_path, fake_esbuild):
    (tmp_path / "a.js").write_text("", encoding="utf-8")
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "b.js").write_text("", encoding="utf-8")
    desc = BuildDescriptor(entry_points=[tmp_path / "a.js", tmp_path / "lib" / "b.js"], outfile=tmp_path / "out.js")

    run_esbuild(desc, tmp_path)

    cmd, kwargs = fake_esbuild.calls[0]
    assert f"--resolve-dir={tmp_path}" in cmd
    assert kwargs["input"] == 'import "./a.js";\nimport "./lib/b.js";\n'
    assert sum(1 for a in cmd if a.startswith("--outfile=")) == 1


def test_no_entries_is_an_error(tmp_path):
    with pytest.raises(BuildError):
        esbuild_command(BuildDescriptor(entry_points=[], outfile=tmp_path / "o.js"), ["esbuild"])


def test_descriptor_minifies_in_production(layout):
    desc = descriptor_for(layout, {"NODE_ENV": "production"})
    assert desc.minify is True
    assert desc.define == {"process.env.NODE_ENV": '"production"'}
    assert desc.entry_points == [layout.entry_script]
    assert desc.outfile == layout.bundle_path


def test_descriptor_defaults_to_development(layout):
    desc = descriptor_for(layout, {})
    assert desc.minify is False
    assert desc.define["process.env.NODE_ENV"] == '"development"'


def test_find_esbuild_prefers_env(tmp_path):
    assert find_esbuild(tmp_path, {"ESBUILD": "/x/esbuild"}) == ["/x/esbuild"]


def test_find_esbuild_uses_local_node_modules(tmp_path, monkeypatch):
    monkeypatch.setattr(build.shutil, "which", lambda name: None)
    local = tmp_path / "node_modules" / ".bin" / "esbuild"
    local.parent.mkdir(parents=True)
    local.write_text("#!/bin/sh\n")
    assert find_esbuild(tmp_path, {}) == [str(local)]


def test_find_esbuild_missing(tmp_path, monkeypatch):
    monkeypatch.setattr(build.shutil, "which", lambda name: None)
    with pytest.raises(BuildError, match="esbuild not found"):
        find_esbuild(tmp_path, {})


def test_build_project_bundles_and_copies_html(layout, fake_esbuild):
    out = build_project(layout, env={"ESBUILD": "/opt/bin/esbuild"})

    assert out == layout.bundle_path
    assert out.read_text(encoding="utf-8") == "// bundled\n"
    assert layout.index_html.read_bytes() == layout.index_source.read_bytes()
    cmd, kwargs = fake_esbuild.calls[0]
    assert cmd[0] == "/opt/bin/esbuild"
    assert kwargs["cwd"] == str(layout.root)


def test_failed_bundle_raises_with_diagnostics(layout, monkeypatch):
    monkeypatch.setattr(build.subprocess, "run", FakeEsbuild(returncode=1, stderr='✘ [ERROR] Could not resolve "lodash"'))
    with pytest.raises(BuildError) as exc:
        build_project(layout, env={"ESBUILD": "esbuild"})
    assert exc.value.returncode == 1
    assert "Could not resolve" in exc.value.output
    assert not layout.index_html.exists()


def test_main_returns_nonzero_on_failure(layout, monkeypatch, capsys):
    monkeypatch.setenv("ESBUILD", "esbuild")
    monkeypatch.setattr(build.subprocess, "run", FakeEsbuild(returncode=1, stderr="syntax error"))
    assert build.main(["--root", str(layout.root)]) == 1
    err = capsys.readouterr().err
    assert "Build failed" in err
    assert "syntax error" in err


def test_main_minify_flag(layout, fake_esbuild, monkeypatch):
    monkeypatch.delenv("NODE_ENV", raising=False)
    assert build.main(["--root", str(layout.root), "--minify"]) == 0
    cmd, _ = fake_esbuild.calls[0]
    assert "--minify" in cmd
