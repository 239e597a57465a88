"""Dataclasses representing zkouska domain records and Discord payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

CDN_BASE = "https://cdn.discordapp.com"
THREAD_CHANNEL_TYPES = {10, 11, 12}


class ResponseStatus(str, Enum):
    ABSENCE = "absence"
    LATE = "late"
    # Restored from history; the footer does not say which of the two it was.
    UNKNOWN = "unknown"


class SignalKind(str, Enum):
    ABSENCE = "absence"
    LATE = "late"
    ATTENDING = "attending"
    CLOSE = "close"


@dataclass(slots=True)
class Announcement:
    id: str
    description: str
    source_channel_id: int
    source_message_id: int
    thread_id: int


@dataclass(slots=True)
class UserResponse:
    announcement_id: str
    user_id: int
    status: ResponseStatus
    companion_message_id: int


@dataclass(slots=True)
class Channel:
    id: int
    name: str
    type: int
    guild_id: Optional[int] = None
    parent_id: Optional[int] = None
    last_message_id: Optional[int] = None

    @property
    def is_thread(self) -> bool:
        return self.type in THREAD_CHANNEL_TYPES

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Channel":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            type=int(data.get("type", 0)),
            guild_id=_optional_int(data.get("guild_id")),
            parent_id=_optional_int(data.get("parent_id")),
            last_message_id=_optional_int(data.get("last_message_id")),
        )


@dataclass(slots=True)
class Member:
    id: int
    username: str
    display_name: str
    avatar_url: str
    is_bot: bool = False

    @classmethod
    def from_user_payload(cls, user: Dict[str, Any], nick: Optional[str] = None) -> "Member":
        user_id = int(user["id"])
        username = user.get("username") or str(user_id)
        avatar = user.get("avatar")
        if avatar:
            avatar_url = f"{CDN_BASE}/avatars/{user_id}/{avatar}.png"
        else:
            avatar_url = f"{CDN_BASE}/embed/avatars/{(user_id >> 22) % 6}.png"
        return cls(
            id=user_id,
            username=username,
            display_name=nick or user.get("global_name") or username,
            avatar_url=avatar_url,
            is_bot=bool(user.get("bot", False)),
        )

    @classmethod
    def from_member_payload(cls, data: Dict[str, Any]) -> "Member":
        return cls.from_user_payload(data["user"], nick=data.get("nick"))


@dataclass(slots=True)
class Embed:
    """The subset of a Discord embed the bot writes and reads back."""

    description: str = ""
    color: Optional[int] = None
    footer: Optional[str] = None
    author_name: Optional[str] = None
    author_icon_url: Optional[str] = None
    timestamp: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"description": self.description}
        if self.color is not None:
            payload["color"] = self.color
        if self.footer:
            payload["footer"] = {"text": self.footer}
        if self.author_name:
            author: Dict[str, Any] = {"name": self.author_name}
            if self.author_icon_url:
                author["icon_url"] = self.author_icon_url
            payload["author"] = author
        if self.timestamp:
            payload["timestamp"] = self.timestamp
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Embed":
        author = data.get("author") or {}
        footer = data.get("footer") or {}
        return cls(
            description=data.get("description") or "",
            color=data.get("color"),
            footer=footer.get("text"),
            author_name=author.get("name"),
            author_icon_url=author.get("icon_url"),
            timestamp=data.get("timestamp"),
        )


@dataclass(slots=True)
class ReactionCount:
    """Reaction summary on a message.

    ``emoji`` is the form the reaction endpoints expect: the character itself
    for unicode emoji, ``name:id`` for custom guild emoji.
    """

    emoji: str
    count: int
    me: bool = False

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ReactionCount":
        emoji = data.get("emoji") or {}
        name = emoji.get("name") or ""
        return cls(
            emoji=f"{name}:{emoji['id']}" if emoji.get("id") else name,
            count=int(data.get("count", 0)),
            me=bool(data.get("me", False)),
        )


@dataclass(slots=True)
class Message:
    id: int
    channel_id: int
    author_id: int
    content: str = ""
    author_is_bot: bool = False
    embeds: List[Embed] = field(default_factory=list)
    reactions: List[ReactionCount] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Message":
        author = data.get("author") or {}
        return cls(
            id=int(data["id"]),
            channel_id=int(data["channel_id"]),
            author_id=int(author.get("id", 0)),
            content=data.get("content") or "",
            author_is_bot=bool(author.get("bot", False)),
            embeds=[Embed.from_payload(item) for item in data.get("embeds", [])],
            reactions=[ReactionCount.from_payload(item) for item in data.get("reactions", [])],
        )


@dataclass(slots=True, frozen=True)
class ReactionSignal:
    """A user's reaction on a message, as observed by the poller."""

    message_id: int
    channel_id: int
    user_id: int
    emoji: str


def _optional_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


__all__ = [
    "ResponseStatus",
    "SignalKind",
    "Announcement",
    "UserResponse",
    "Channel",
    "Member",
    "Embed",
    "ReactionCount",
    "Message",
    "ReactionSignal",
]
