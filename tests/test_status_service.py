from __future__ import annotations

import asyncio
from pathlib import Path

from aiohttp import test_utils

from luffy_v1.services.logger_service import LoggerService
from luffy_v1.services.status_service import STATUS_HTML, StatusService
from luffy_v1.storage import MessagePackStore

from support import make_settings


def _make_service(tmp_path: Path) -> StatusService:
    settings = make_settings(tmp_path)
    return StatusService(settings, LoggerService(MessagePackStore(settings.log_store_path)))


def test_status_page_is_served_at_root(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> tuple[int, str, str, int]:
        async with test_utils.TestClient(test_utils.TestServer(service.build_app())) as client:
            resp = await client.get("/")
            text = await resp.text()
            missing = await client.get("/metrics")
            return resp.status, text, resp.content_type, missing.status

    status, text, content_type, missing_status = asyncio.run(scenario())
    assert status == 200
    assert text == STATUS_HTML
    assert content_type == "text/html"
    assert missing_status == 404


def test_stop_without_start_is_a_no_op(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    asyncio.run(service.stop())
    assert service.running is False
