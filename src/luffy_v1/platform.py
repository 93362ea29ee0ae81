from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol


class PlatformError(Exception):
    """A platform call failed (rejected, rate limited, unknown thread or member)."""


@dataclass(frozen=True)
class ThreadInfo:
    thread_id: str
    name: str
    participant_ids: tuple[str, ...]


class PlatformClient(Protocol):
    async def send_message(
        self,
        thread_id: str,
        text: str = "",
        *,
        reply_to: str | None = None,
        attachments: Sequence[Any] = (),
        sticker_id: str | None = None,
    ) -> None: ...

    async def set_title(self, thread_id: str, title: str) -> None: ...

    async def change_nickname(self, thread_id: str, user_id: str, nickname: str) -> None: ...

    async def get_thread_info(self, thread_id: str) -> ThreadInfo: ...

    async def remove_user_from_group(self, user_id: str, thread_id: str) -> None: ...

    async def get_current_user_id(self) -> str: ...
