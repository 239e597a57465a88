"""HTTP client for interacting with the Discord REST API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import httpx

from .errors import NotFoundError, TransientExternalError
from .models import THREAD_CHANNEL_TYPES, Channel, Embed, Member, Message

DISCORD_API_BASE = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/zkouska-bot, 1.0.0)"

PUBLIC_THREAD = 11
ONE_WEEK_MINUTES = 10080

ADMINISTRATOR = 1 << 3
MANAGE_MESSAGES = 1 << 13
ALL_PERMISSIONS = (1 << 64) - 1

MAX_RATE_LIMIT_RETRIES = 3

logger = logging.getLogger(__name__)


class DiscordApiError(TransientExternalError):
    """Raised when Discord returns an error response."""

    def __init__(self, method: str, path: str, status: int, error: str) -> None:
        super().__init__(f"Discord API error for {method} {path}: {status} {error}")
        self.method = method
        self.path = path
        self.status = status
        self.error = error


def compute_channel_permissions(
    user_id: int,
    guild_id: int,
    roles: Iterable[Dict[str, Any]],
    member_role_ids: Iterable[Any],
    overwrites: Iterable[Dict[str, Any]],
) -> int:
    """Resolve a member's effective permission bits in a guild channel."""

    role_permissions = {int(role["id"]): int(role.get("permissions", 0)) for role in roles}
    member_roles = [int(role_id) for role_id in member_role_ids]

    permissions = role_permissions.get(guild_id, 0)
    for role_id in member_roles:
        permissions |= role_permissions.get(role_id, 0)
    if permissions & ADMINISTRATOR:
        return ALL_PERMISSIONS

    by_target = {int(item["id"]): item for item in overwrites}

    everyone = by_target.get(guild_id)
    if everyone:
        permissions &= ~int(everyone.get("deny", 0))
        permissions |= int(everyone.get("allow", 0))

    allow = deny = 0
    for role_id in member_roles:
        overwrite = by_target.get(role_id)
        if overwrite and int(overwrite.get("type", 0)) == 0:
            allow |= int(overwrite.get("allow", 0))
            deny |= int(overwrite.get("deny", 0))
    permissions = (permissions & ~deny) | allow

    member_overwrite = by_target.get(user_id)
    if member_overwrite and int(member_overwrite.get("type", 0)) == 1:
        permissions &= ~int(member_overwrite.get("deny", 0))
        permissions |= int(member_overwrite.get("allow", 0))
    return permissions


class DiscordClient:
    """Async wrapper around the Discord REST endpoints the bot uses."""

    def __init__(
        self,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=DISCORD_API_BASE,
            headers={
                "Authorization": f"Bot {token}",
                "User-Agent": USER_AGENT,
            },
            timeout=timeout,
            transport=transport,
        )
        self._current_user: Optional[Member] = None

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        for _ in range(MAX_RATE_LIMIT_RETRIES + 1):
            try:
                response = await self._client.request(method, path, params=params, json=json)
            except httpx.HTTPError as exc:
                raise DiscordApiError(method, path, 0, str(exc) or type(exc).__name__) from exc

            if response.status_code == 429:
                retry_after = float(response.json().get("retry_after", 1.0))
                logger.warning("Rate limited on %s %s, retrying in %.2fs", method, path, retry_after)
                await asyncio.sleep(retry_after)
                continue
            if response.status_code == 404:
                raise NotFoundError(f"{method} {path} returned 404")
            if response.status_code >= 400:
                try:
                    error = response.json().get("message", response.text)
                except ValueError:
                    error = response.text
                raise DiscordApiError(method, path, response.status_code, error)
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        raise DiscordApiError(method, path, 429, "rate limit retries exhausted")

    # region Users and channels
    async def fetch_current_user(self) -> Member:
        if self._current_user is None:
            self._current_user = Member.from_user_payload(await self._request("GET", "/users/@me"))
        return self._current_user

    async def fetch_user(self, user_id: int) -> Member:
        return Member.from_user_payload(await self._request("GET", f"/users/{user_id}"))

    async def fetch_member(self, guild_id: int, user_id: int) -> Member:
        data = await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")
        return Member.from_member_payload(data)

    async def resolve_member(self, guild_id: Optional[int], user_id: int) -> Member:
        """Prefer the guild member (nickname), fall back to the global user."""

        if guild_id is not None:
            try:
                return await self.fetch_member(guild_id, user_id)
            except NotFoundError:
                pass
        return await self.fetch_user(user_id)

    async def fetch_channel(self, channel_id: int) -> Channel:
        return Channel.from_payload(await self._request("GET", f"/channels/{channel_id}"))

    async def has_moderator_capability(self, user_id: int, channel_id: int) -> bool:
        """True when the user may manage messages in the channel (or a thread's parent)."""

        channel = await self._request("GET", f"/channels/{channel_id}")
        if int(channel.get("type", 0)) in THREAD_CHANNEL_TYPES and channel.get("parent_id"):
            channel = await self._request("GET", f"/channels/{channel['parent_id']}")
        if not channel.get("guild_id"):
            return False
        guild_id = int(channel["guild_id"])

        guild = await self._request("GET", f"/guilds/{guild_id}")
        if int(guild.get("owner_id", 0)) == user_id:
            return True
        try:
            member = await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")
        except NotFoundError:
            return False

        permissions = compute_channel_permissions(
            user_id,
            guild_id,
            guild.get("roles", []),
            member.get("roles", []),
            channel.get("permission_overwrites", []),
        )
        return bool(permissions & MANAGE_MESSAGES)

    # endregion

    # region Messages
    async def fetch_message(self, channel_id: int, message_id: int) -> Message:
        data = await self._request("GET", f"/channels/{channel_id}/messages/{message_id}")
        return Message.from_payload(data)

    async def send_message(
        self,
        channel_id: int,
        content: Optional[str] = None,
        *,
        embed: Optional[Embed] = None,
    ) -> Message:
        payload: Dict[str, Any] = {}
        if content is not None:
            payload["content"] = content
        if embed is not None:
            payload["embeds"] = [embed.to_payload()]
        data = await self._request("POST", f"/channels/{channel_id}/messages", json=payload)
        return Message.from_payload(data)

    async def edit_message(
        self,
        channel_id: int,
        message_id: int,
        content: Optional[str] = None,
        *,
        embed: Optional[Embed] = None,
    ) -> Message:
        payload: Dict[str, Any] = {}
        if content is not None:
            payload["content"] = content
        if embed is not None:
            payload["embeds"] = [embed.to_payload()]
        data = await self._request(
            "PATCH", f"/channels/{channel_id}/messages/{message_id}", json=payload
        )
        return Message.from_payload(data)

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        await self._request("DELETE", f"/channels/{channel_id}/messages/{message_id}")

    async def fetch_channel_history(
        self,
        channel_id: int,
        *,
        limit: int = 100,
    ) -> AsyncIterator[Message]:
        """Yield messages newest first, following the ``before`` cursor to the start."""

        before: Optional[int] = None
        while True:
            params: Dict[str, Any] = {"limit": limit}
            if before:
                params["before"] = before
            data = await self._request("GET", f"/channels/{channel_id}/messages", params=params)
            for item in data:
                yield Message.from_payload(item)
            if len(data) < limit:
                break
            before = int(data[-1]["id"])
            await asyncio.sleep(0.2)

    async def fetch_messages_after(
        self, channel_id: int, after: int, *, limit: int = 100
    ) -> List[Message]:
        """Return messages newer than ``after``, oldest first."""

        params = {"after": after, "limit": limit}
        data = await self._request("GET", f"/channels/{channel_id}/messages", params=params)
        messages = [Message.from_payload(item) for item in data]
        return sorted(messages, key=lambda message: message.id)

    # endregion

    # region Reactions
    async def add_reaction(self, channel_id: int, message_id: int, emoji: str) -> None:
        await self._request(
            "PUT", f"/channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji)}/@me"
        )

    async def remove_reaction(
        self, channel_id: int, message_id: int, emoji: str, user_id: int
    ) -> None:
        await self._request(
            "DELETE",
            f"/channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji)}/{user_id}",
        )

    async def fetch_reaction_users(
        self, channel_id: int, message_id: int, emoji: str, *, limit: int = 100
    ) -> List[Member]:
        users: List[Member] = []
        after: Optional[int] = None
        while True:
            params: Dict[str, Any] = {"limit": limit}
            if after:
                params["after"] = after
            data = await self._request(
                "GET",
                f"/channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji)}",
                params=params,
            )
            users.extend(Member.from_user_payload(item) for item in data)
            if len(data) < limit:
                break
            after = int(data[-1]["id"])
        return users

    # endregion

    # region Threads
    async def create_thread(
        self,
        channel_id: int,
        name: str,
        *,
        auto_archive_duration: int = ONE_WEEK_MINUTES,
    ) -> Channel:
        payload = {"name": name, "type": PUBLIC_THREAD, "auto_archive_duration": auto_archive_duration}
        data = await self._request("POST", f"/channels/{channel_id}/threads", json=payload)
        return Channel.from_payload(data)

    async def fetch_active_threads(self, channel_id: int) -> List[Channel]:
        channel = await self.fetch_channel(channel_id)
        if channel.guild_id is None:
            return []
        data = await self._request("GET", f"/guilds/{channel.guild_id}/threads/active")
        threads = [Channel.from_payload(item) for item in data.get("threads", [])]
        return [thread for thread in threads if thread.parent_id == channel_id]

    async def archive_thread(self, thread_id: int) -> None:
        await self._request("PATCH", f"/channels/{thread_id}", json={"archived": True})

    # endregion


__all__ = ["DiscordClient", "DiscordApiError", "compute_channel_permissions"]
