"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import itertools
from typing import Dict, List, Optional, Set, Tuple

import pytest

from zkouska_bot import codec
from zkouska_bot.config import Settings
from zkouska_bot.errors import NotFoundError
from zkouska_bot.models import Announcement, Channel, Embed, Member, Message, ReactionCount
from zkouska_bot.store import AnnouncementStore

GUILD_ID = 1
SOURCE_CHANNEL_ID = 100
DESTINATION_CHANNEL_ID = 200
BOT_ID = 999
MODERATOR_ID = 10
USER_A = 21
USER_B = 22


class FakeDiscord:
    """In-memory stand-in for DiscordClient with the same coroutine surface."""

    def __init__(self) -> None:
        self._ids = itertools.count(1000)
        self.bot = self._member(BOT_ID, "zkouska-bot", is_bot=True)
        self.channels: Dict[int, Channel] = {}
        self.messages: Dict[int, Dict[int, Message]] = {}
        self.reactions: Dict[Tuple[int, int], Dict[str, List[int]]] = {}
        self.members: Dict[int, Member] = {BOT_ID: self.bot}
        self.moderators: Set[int] = set()
        self.archived: Set[int] = set()
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []

        self.add_channel(SOURCE_CHANNEL_ID, "zkousky")
        self.add_channel(DESTINATION_CHANNEL_ID, "omluvenky")

    # region Test helpers
    @staticmethod
    def _member(user_id: int, name: str, is_bot: bool = False) -> Member:
        return Member(
            id=user_id,
            username=name,
            display_name=name.title(),
            avatar_url=f"https://cdn.example/{user_id}.png",
            is_bot=is_bot,
        )

    def add_channel(self, channel_id: int, name: str, *, parent_id: Optional[int] = None) -> Channel:
        channel = Channel(
            id=channel_id,
            name=name,
            type=11 if parent_id else 0,
            guild_id=GUILD_ID,
            parent_id=parent_id,
        )
        self.channels[channel_id] = channel
        self.messages.setdefault(channel_id, {})
        return channel

    def add_member(self, user_id: int, name: str, *, moderator: bool = False) -> Member:
        member = self._member(user_id, name)
        self.members[user_id] = member
        if moderator:
            self.moderators.add(user_id)
        return member

    def post(
        self,
        channel_id: int,
        author_id: int,
        content: str = "",
        embeds: Optional[List[Embed]] = None,
    ) -> Message:
        message = Message(
            id=next(self._ids),
            channel_id=channel_id,
            author_id=author_id,
            content=content,
            author_is_bot=self.members[author_id].is_bot if author_id in self.members else False,
            embeds=list(embeds or []),
        )
        self.messages[channel_id][message.id] = message
        return message

    def react(self, channel_id: int, message_id: int, emoji: str, user_id: int) -> None:
        users = self.reactions.setdefault((channel_id, message_id), {}).setdefault(emoji, [])
        if user_id not in users:
            users.append(user_id)

    def reaction_users(self, channel_id: int, message_id: int, emoji: str) -> List[int]:
        return list(self.reactions.get((channel_id, message_id), {}).get(emoji, []))

    def thread_messages(self, thread_id: int) -> List[Message]:
        return sorted(self.messages.get(thread_id, {}).values(), key=lambda message: message.id)

    def _call(self, name: str) -> None:
        self.calls.append(name)
        failure = self.failures.pop(name, None)
        if failure is not None:
            raise failure

    def _message(self, channel_id: int, message_id: int) -> Message:
        message = self.messages.get(channel_id, {}).get(message_id)
        if message is None:
            raise NotFoundError(f"message {message_id} not found")
        return message

    # endregion

    # region DiscordClient surface
    async def close(self) -> None:
        self._call("close")

    async def fetch_current_user(self) -> Member:
        self._call("fetch_current_user")
        return self.bot

    async def fetch_user(self, user_id: int) -> Member:
        self._call("fetch_user")
        if user_id not in self.members:
            raise NotFoundError(f"user {user_id} not found")
        return self.members[user_id]

    async def fetch_member(self, guild_id: int, user_id: int) -> Member:
        self._call("fetch_member")
        return await self.fetch_user(user_id)

    async def resolve_member(self, guild_id: Optional[int], user_id: int) -> Member:
        self._call("resolve_member")
        return self.members.get(user_id) or self._member(user_id, f"user{user_id}")

    async def fetch_channel(self, channel_id: int) -> Channel:
        self._call("fetch_channel")
        if channel_id not in self.channels:
            raise NotFoundError(f"channel {channel_id} not found")
        channel = self.channels[channel_id]
        ids = list(self.messages.get(channel_id, {}))
        channel.last_message_id = max(ids) if ids else None
        return channel

    async def has_moderator_capability(self, user_id: int, channel_id: int) -> bool:
        self._call("has_moderator_capability")
        return user_id in self.moderators

    async def fetch_message(self, channel_id: int, message_id: int) -> Message:
        self._call("fetch_message")
        message = self._message(channel_id, message_id)
        message.reactions = [
            ReactionCount(emoji=emoji, count=len(users), me=BOT_ID in users)
            for emoji, users in self.reactions.get((channel_id, message_id), {}).items()
            if users
        ]
        return message

    async def send_message(
        self, channel_id: int, content: Optional[str] = None, *, embed: Optional[Embed] = None
    ) -> Message:
        self._call("send_message")
        if channel_id not in self.channels:
            raise NotFoundError(f"channel {channel_id} not found")
        return self.post(channel_id, BOT_ID, content or "", [embed] if embed else [])

    async def edit_message(
        self,
        channel_id: int,
        message_id: int,
        content: Optional[str] = None,
        *,
        embed: Optional[Embed] = None,
    ) -> Message:
        self._call("edit_message")
        message = self._message(channel_id, message_id)
        if content is not None:
            message.content = content
        if embed is not None:
            message.embeds = [embed]
        return message

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        self._call("delete_message")
        self._message(channel_id, message_id)
        del self.messages[channel_id][message_id]
        self.reactions.pop((channel_id, message_id), None)

    async def fetch_channel_history(self, channel_id: int, *, limit: int = 100):
        self._call("fetch_channel_history")
        if channel_id not in self.channels:
            raise NotFoundError(f"channel {channel_id} not found")
        for message in sorted(self.messages[channel_id].values(), key=lambda m: m.id, reverse=True):
            yield message

    async def fetch_messages_after(self, channel_id: int, after: int, *, limit: int = 100) -> List[Message]:
        self._call("fetch_messages_after")
        return [
            message
            for message in sorted(self.messages[channel_id].values(), key=lambda m: m.id)
            if message.id > after
        ][:limit]

    async def add_reaction(self, channel_id: int, message_id: int, emoji: str) -> None:
        self._call("add_reaction")
        self._message(channel_id, message_id)
        self.react(channel_id, message_id, emoji, BOT_ID)

    async def remove_reaction(self, channel_id: int, message_id: int, emoji: str, user_id: int) -> None:
        self._call("remove_reaction")
        users = self.reactions.get((channel_id, message_id), {}).get(emoji, [])
        if user_id in users:
            users.remove(user_id)

    async def fetch_reaction_users(
        self, channel_id: int, message_id: int, emoji: str, *, limit: int = 100
    ) -> List[Member]:
        self._call("fetch_reaction_users")
        return [
            self.members.get(user_id) or self._member(user_id, f"user{user_id}")
            for user_id in self.reaction_users(channel_id, message_id, emoji)
        ]

    async def create_thread(self, channel_id: int, name: str, *, auto_archive_duration: int = 10080) -> Channel:
        self._call("create_thread")
        if channel_id not in self.channels:
            raise NotFoundError(f"channel {channel_id} not found")
        return self.add_channel(next(self._ids), name, parent_id=channel_id)

    async def fetch_active_threads(self, channel_id: int) -> List[Channel]:
        self._call("fetch_active_threads")
        if channel_id not in self.channels:
            raise NotFoundError(f"channel {channel_id} not found")
        return [
            channel
            for channel in self.channels.values()
            if channel.parent_id == channel_id and channel.id not in self.archived
        ]

    async def archive_thread(self, thread_id: int) -> None:
        self._call("archive_thread")
        self.archived.add(thread_id)

    # endregion


@pytest.fixture
def settings() -> Settings:
    return Settings(
        discord_token="test-token",
        source_channel_id=SOURCE_CHANNEL_ID,
        destination_channel_id=DESTINATION_CHANNEL_ID,
        api_key="secret",
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def discord() -> FakeDiscord:
    fake = FakeDiscord()
    fake.add_member(MODERATOR_ID, "moderator", moderator=True)
    fake.add_member(USER_A, "alice")
    fake.add_member(USER_B, "bob")
    return fake


@pytest.fixture
def store() -> AnnouncementStore:
    return AnnouncementStore()


def seed_announcement(
    discord: FakeDiscord,
    store: Optional[AnnouncementStore],
    announcement_id: str = "abc12345",
    description: str = "Zkouška z matiky",
) -> Announcement:
    """Lay out an announcement the way AnnouncementCreator leaves it."""

    message = discord.post(
        SOURCE_CHANNEL_ID, BOT_ID, codec.encode_announcement(announcement_id, description)
    )
    discord.react(SOURCE_CHANNEL_ID, message.id, codec.ABSENCE_EMOJI, BOT_ID)
    discord.react(SOURCE_CHANNEL_ID, message.id, codec.CLOSE_EMOJI, BOT_ID)
    thread = discord.add_channel(
        next(discord._ids),
        codec.thread_name(description, announcement_id),
        parent_id=DESTINATION_CHANNEL_ID,
    )
    discord.post(
        thread.id,
        BOT_ID,
        embeds=[codec.creator_embed("Moderator", "", description, announcement_id, MODERATOR_ID)],
    )
    announcement = Announcement(
        id=announcement_id,
        description=description,
        source_channel_id=SOURCE_CHANNEL_ID,
        source_message_id=message.id,
        thread_id=thread.id,
    )
    if store is not None:
        store.register(announcement)
    return announcement


@pytest.fixture
def announcement(discord, store) -> Announcement:
    return seed_announcement(discord, store)
