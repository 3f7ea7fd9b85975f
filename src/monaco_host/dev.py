"""
Development loop: copy once, build, watch web/ for changes and keep the
static server running in a child process.

Rebuilds are coalesced by BuildScheduler: while a build runs, any number of
change events collapse into one pending rebuild, which starts shortly after
the current one finishes. Only one build is ever in flight.

Shutdown (Ctrl+C / SIGTERM) sends SIGTERM to the server, waits grace_period
seconds and then SIGKILLs it if it is still alive.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .build import BuildError, build_project
from .copy_assets import copy_monaco
from .paths import ProjectLayout, layout_from_env


WATCHED_KINDS = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
IGNORED_PARTS = {"node_modules", "__pycache__", ".git"}

KIND_LABELS = {
    EVENT_TYPE_CREATED: "File added",
    EVENT_TYPE_MODIFIED: "File changed",
    EVENT_TYPE_DELETED: "File removed",
    EVENT_TYPE_MOVED: "File moved",
}


class BuildState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    QUEUED = "build-queued"


class BuildScheduler:
    """At most one build in flight, at most one pending behind it."""

    def __init__(self) -> None:
        self.state = BuildState.IDLE

    def request(self) -> bool:
        """Returns True when the caller should start a build now."""
        if self.state is BuildState.IDLE:
            self.state = BuildState.BUILDING
            return True
        self.state = BuildState.QUEUED
        return False

    def complete(self) -> bool:
        """Returns True when a queued request needs one more build."""
        if self.state is BuildState.QUEUED:
            self.state = BuildState.BUILDING
            return True
        self.state = BuildState.IDLE
        return False

    def reset(self) -> None:
        self.state = BuildState.IDLE


@dataclass(frozen=True)
class ChangeEvent:
    path: str
    kind: str


def _is_ignored(path: str) -> bool:
    return any(part in IGNORED_PARTS for part in Path(path).parts)


class _ChangeHandler(FileSystemEventHandler):
    """Runs on the watchdog thread; hands events to the asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: Callable[[ChangeEvent], None]):
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in WATCHED_KINDS:
            return
        path = os.fsdecode(event.src_path)
        if _is_ignored(path):
            return
        self._loop.call_soon_threadsafe(self._callback, ChangeEvent(path, event.event_type))


class DevSupervisor:
    def __init__(
        self,
        layout: ProjectLayout,
        *,
        build: Callable[[ProjectLayout], object] = build_project,
        copy: Optional[Callable[[ProjectLayout], int]] = copy_monaco,
        server_cmd: Optional[Sequence[str]] = None,
        watch_paths: Optional[List[Path]] = None,
        rebuild_delay: float = 0.1,
        grace_period: float = 5.0,
    ):
        self.layout = layout
        self.build = build
        self.copy = copy
        self.server_cmd = list(server_cmd) if server_cmd else [
            sys.executable, "-m", "monaco_host.server", "--root", str(layout.root),
        ]
        if watch_paths is None:
            watch_paths = [layout.web_dir]
        self.watch_paths = watch_paths
        self.rebuild_delay = rebuild_delay
        self.grace_period = grace_period

        self.scheduler = BuildScheduler()
        self.builds_run = 0
        self.server: Optional[asyncio.subprocess.Process] = None
        self._build_task: Optional[asyncio.Task] = None
        self._server_watch: Optional[asyncio.Task] = None
        self._observer = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._stop = asyncio.Event()

    # ── builds ──

    def on_change(self, event: ChangeEvent) -> None:
        label = KIND_LABELS.get(event.kind, "File event")
        try:
            rel = os.path.relpath(event.path, self.layout.root)
        except ValueError:
            rel = event.path
        print(f"{label}: {rel}")
        self.request_build()

    def request_build(self) -> None:
        if self.scheduler.request():
            self._idle.clear()
            self._build_task = asyncio.get_running_loop().create_task(self._build_loop())

    async def _build_loop(self) -> None:
        try:
            while True:
                await self._build_once()
                if not self.scheduler.complete():
                    break
                await asyncio.sleep(self.rebuild_delay)
        except asyncio.CancelledError:
            self.scheduler.reset()
            raise
        finally:
            self._idle.set()

    async def _build_once(self) -> None:
        self.builds_run += 1
        print("Building project...")
        try:
            await asyncio.to_thread(self.build, self.layout)
            print("[OK] Build completed")
        except BuildError as e:
            print(f"[FAIL] Build failed: {e}", file=sys.stderr)
            if e.output:
                print(e.output, file=sys.stderr)
        except Exception as e:
            print(f"[FAIL] Build failed: {e!r}", file=sys.stderr)

    async def wait_idle(self) -> None:
        await self._idle.wait()

    # ── watcher ──

    def start_watcher(self) -> None:
        print("Starting file watcher...")
        handler = _ChangeHandler(asyncio.get_running_loop(), self.on_change)
        observer = Observer()
        for path in self.watch_paths:
            if path.is_dir():
                observer.schedule(handler, str(path), recursive=True)
            else:
                print(f"[WARN] Not watching missing directory {path}", file=sys.stderr)
        observer.start()
        self._observer = observer
        print("[OK] File watcher started")

    async def stop_watcher(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        await asyncio.to_thread(observer.join, 2.0)

    # ── server child ──

    async def start_server(self) -> None:
        print("Starting static server...")
        env = {**os.environ, "MONACO_HOST_ROOT": str(self.layout.root), "NODE_ENV": "development"}
        try:
            self.server = await asyncio.create_subprocess_exec(
                *self.server_cmd, cwd=str(self.layout.root), env=env
            )
        except OSError as e:
            print(f"[FAIL] Server error: {e}", file=sys.stderr)
            self.server = None
            return
        self._server_watch = asyncio.get_running_loop().create_task(self._watch_server(self.server))

    async def _watch_server(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        # logged only: the watcher keeps running and the server is not respawned
        if code > 0:
            print(f"[FAIL] Server exited with code {code}", file=sys.stderr)
        elif code < 0:
            try:
                name = signal.Signals(-code).name
            except ValueError:
                name = str(-code)
            print(f"Server killed with signal {name}")

    async def stop_server(self) -> None:
        proc, self.server = self.server, None
        if proc is None or proc.returncode is not None:
            return
        print("Stopping server...")
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            print(f"[WARN] Server still running {self.grace_period}s after SIGTERM, killing it", file=sys.stderr)
            proc.kill()
            await proc.wait()

    async def restart_server(self) -> None:
        await self.stop_server()
        await self.start_server()

    # ── lifecycle ──

    def stop(self) -> None:
        self._stop.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.stop))

    async def run(self) -> int:
        print("Starting development server...")
        if self.copy is not None:
            code = await asyncio.to_thread(self.copy, self.layout)
            if code != 0:
                print("[WARN] Copying modern-monaco failed; /monaco may be incomplete", file=sys.stderr)

        self.request_build()
        await self.wait_idle()

        self._install_signal_handlers()
        self.start_watcher()
        await self.start_server()
        try:
            await self._stop.wait()
        finally:
            await self.shutdown()
        return 0

    async def shutdown(self) -> None:
        print("\nShutting down development server...")
        await self.stop_server()
        await self.stop_watcher()
        if self._server_watch is not None:
            await asyncio.gather(self._server_watch, return_exceptions=True)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="monaco-dev", description="Build, watch and serve the example.")
    ap.add_argument("--root", default=None, help="Project root (default: $MONACO_HOST_ROOT or cwd)")
    ap.add_argument("--no-copy", action="store_true", help="Skip mirroring modern-monaco at startup")
    ap.add_argument("--grace-period", type=float, default=5.0, help="Seconds to wait after SIGTERM before SIGKILL")
    args = ap.parse_args(argv)

    layout = layout_from_env(args.root)
    supervisor = DevSupervisor(
        layout,
        copy=None if args.no_copy else copy_monaco,
        grace_period=args.grace_period,
    )
    try:
        return asyncio.run(supervisor.run())
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"[FAIL] Failed to start development server: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
