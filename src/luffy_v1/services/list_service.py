from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

import aiofiles
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from luffy_v1.config import Settings
from luffy_v1.services.logger_service import LoggerService


LIST_KEYS = ("lines", "stickers", "friends", "targets")


def parse_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


class ListFileWatchHandler(FileSystemEventHandler):
    """Runs on the observer thread; hands matching paths back to the event loop."""

    def __init__(self, service: "ListService", loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self.service = service
        self.loop = loop

    def _handle_path(self, path: Any) -> None:
        if not path:
            return
        key = self.service.key_for_path(Path(os.fsdecode(path)))
        if key is not None:
            self.loop.call_soon_threadsafe(self.service.schedule_reload, key)

    def on_created(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "src_path", ""))

    def on_modified(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "src_path", ""))

    def on_deleted(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "src_path", ""))

    def on_moved(self, event) -> None:
        if getattr(event, "is_directory", False):
            return
        self._handle_path(getattr(event, "src_path", ""))
        self._handle_path(getattr(event, "dest_path", ""))


class ListService:
    """
    The four text lists the bot works from.

    In "reread" mode every access goes back to disk. In "watch" mode a snapshot is
    kept in memory and a watchdog observer reloads a list whenever its file is
    created, modified, moved or deleted.
    """

    def __init__(self, settings: Settings, logger: LoggerService, *, mode: str | None = None) -> None:
        self.settings = settings
        self.logger = logger
        self.mode = mode or settings.list_reload_mode
        self.paths: dict[str, Path] = settings.list_paths()
        self._snapshot: dict[str, list[str]] = {key: [] for key in LIST_KEYS}
        self._resolved: dict[Path, str] = {path.resolve(): key for key, path in self.paths.items()}
        self._observer: Any = None
        self._reload_tasks: set[asyncio.Task] = set()

    async def load(self) -> None:
        for key in LIST_KEYS:
            await self._reload(key)

    async def get(self, key: str) -> list[str]:
        if key not in self.paths:
            raise KeyError(key)
        if self.mode == "reread":
            return await self.read_lines(self.paths[key])
        return list(self._snapshot[key])

    async def lines(self) -> list[str]:
        return await self.get("lines")

    async def stickers(self) -> list[str]:
        return await self.get("stickers")

    async def friends(self) -> list[str]:
        return await self.get("friends")

    async def targets(self) -> list[str]:
        return await self.get("targets")

    async def read_lines(self, path: Path) -> list[str]:
        if not path.exists():
            return []
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as handle:
                text = await handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.log("lists.read_failed", path=str(path), error=str(exc)[:300])
            return []
        return parse_lines(text)

    # File watching
    @property
    def watching(self) -> bool:
        return self._observer is not None

    def key_for_path(self, path: Path) -> str | None:
        return self._resolved.get(path.resolve())

    def start_watching(self) -> None:
        if self._observer is not None:
            return
        loop = asyncio.get_running_loop()
        handler = ListFileWatchHandler(self, loop)
        watch_dirs = sorted({str(path.parent) for path in self._resolved})
        observer = Observer()
        for watch_dir in watch_dirs:
            if os.path.isdir(watch_dir):
                observer.schedule(handler, watch_dir, recursive=False)
            else:
                self.logger.log("lists.watch_skipped", path=watch_dir, reason="directory missing")
        observer.daemon = True
        observer.start()
        self._observer = observer
        self.logger.log("lists.watch_started", dirs=watch_dirs)

    def stop_watching(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join(timeout=1.5)
        for task in list(self._reload_tasks):
            task.cancel()
        self.logger.log("lists.watch_stopped")

    def schedule_reload(self, key: str) -> asyncio.Task:
        task = asyncio.create_task(self._reload_logged(key), name=f"list-reload-{key}")
        self._reload_tasks.add(task)
        return task

    async def wait_reloads(self) -> None:
        await asyncio.sleep(0)
        while self._reload_tasks:
            await asyncio.gather(*list(self._reload_tasks), return_exceptions=True)

    async def _reload_logged(self, key: str) -> None:
        try:
            await self._reload(key)
            self.logger.log("lists.reloaded", list=key, path=str(self.paths[key]), entries=len(self._snapshot[key]))
        except Exception as exc:  # noqa: BLE001
            self.logger.log("lists.watch_failed", list=key, error=str(exc)[:300])
        finally:
            self._reload_tasks.discard(asyncio.current_task())

    async def _reload(self, key: str) -> None:
        self._snapshot[key] = await self.read_lines(self.paths[key])
