"""MCP server exposing the open announcements and their responses."""

from __future__ import annotations

import asyncio
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import Settings, load_settings
from .discord_client import DiscordClient
from .service import ZkouskaService

mcp = FastMCP("zkouska-bot")

_service: Optional[ZkouskaService] = None
_start_lock = asyncio.Lock()


async def _ready_service() -> ZkouskaService:
    global _service
    async with _start_lock:
        if _service is None:
            settings: Settings = load_settings()
            _service = ZkouskaService(settings, DiscordClient(settings.discord_token))
        if not _service.ready:
            await _service.start()
    return _service


@mcp.tool()
async def list_announcements() -> dict:
    """Return every open exam announcement with the users who excused themselves."""

    service = await _ready_service()
    return {"announcements": service.list_announcements()}


@mcp.tool()
async def get_announcement(announcement_id: str) -> dict:
    """Return one announcement by its 8-character id (with or without the leading #)."""

    service = await _ready_service()
    announcement = service.get_announcement(announcement_id)
    if announcement is None:
        raise ValueError(f"Announcement {announcement_id} not found")
    return announcement


__all__ = ["mcp", "list_announcements", "get_announcement"]
