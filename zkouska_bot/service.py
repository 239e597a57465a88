"""Core orchestration logic for the zkouska bot."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from . import codec, errors
from .config import Settings
from .creator import AnnouncementCreator
from .discord_client import DiscordClient
from .errors import NotFoundError, ZkouskaError
from .models import Announcement, Message, ReactionSignal
from .reactions import ReactionProcessor
from .reconciler import HistoryReconciler
from .store import AnnouncementStore

logger = logging.getLogger(__name__)


class ZkouskaService:
    """Wires the components together and polls Discord for commands and reactions."""

    def __init__(
        self,
        settings: Settings,
        client: DiscordClient,
        store: Optional[AnnouncementStore] = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store or AnnouncementStore()
        self.creator = AnnouncementCreator(settings, client, self.store)
        self.reactions = ReactionProcessor(client, self.store)
        self.reconciler = HistoryReconciler(settings, client, self.store)
        self.ready = False
        self._last_seen_message_id: Optional[int] = None
        self._poll_lock = asyncio.Lock()

    # region Lifecycle
    async def start(self) -> None:
        """Rebuild state from history, then accept commands and reactions."""

        await self.reconciler.rebuild()
        try:
            source = await self.client.fetch_channel(self.settings.source_channel_id)
            self._last_seen_message_id = source.last_message_id or 0
        except Exception:  # noqa: BLE001
            logger.exception("Could not read source channel %s", self.settings.source_channel_id)
            self._last_seen_message_id = 0
        self.ready = True
        logger.info("Bot is ready, tracking %s announcements", len(self.store))

    async def run_forever(self) -> None:
        await self.start()
        while True:
            await self.poll_once()
            await asyncio.sleep(self.settings.poll_interval_seconds)

    async def poll_once(self) -> None:
        if not self.ready:
            return
        async with self._poll_lock:
            try:
                await self.poll_commands()
                await self.poll_reactions()
            except ZkouskaError as exc:
                logger.error("Discord poll failed: %s", exc)
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected error while polling Discord")

    # endregion

    # region Commands
    async def poll_commands(self) -> List[Announcement]:
        messages = await self.client.fetch_messages_after(
            self.settings.source_channel_id, self._last_seen_message_id or 0
        )
        created: List[Announcement] = []
        for message in messages:
            self._last_seen_message_id = message.id
            if message.author_is_bot:
                continue
            announcement = await self.handle_command(message)
            if announcement is not None:
                created.append(announcement)
        return created

    async def handle_command(self, message: Message) -> Optional[Announcement]:
        command = self.settings.command_name
        content = message.content
        if message.channel_id != self.settings.source_channel_id:
            return None
        if content != command and not content.startswith(f"{command} "):
            return None

        try:
            return await self.creator.create(
                message.channel_id,
                content[len(command):],
                message.author_id,
                command_message_id=message.id,
            )
        except ZkouskaError as exc:
            logger.warning("Command %s from user %s failed: %s", message.id, message.author_id, exc)
            await self._reply(message.channel_id, exc.user_message or errors.CREATE_ERROR_MESSAGE)
            return None

    async def _reply(self, channel_id: int, text: str) -> None:
        try:
            await self.client.send_message(channel_id, text)
        except ZkouskaError as exc:
            logger.error("Could not reply in channel %s: %s", channel_id, exc)

    # endregion

    # region Reactions
    async def poll_reactions(self) -> int:
        """Collect pending reactions on every tracked announcement and apply them."""

        me = await self.client.fetch_current_user()
        signals: List[ReactionSignal] = []
        for announcement in self.store.announcements():
            try:
                signals.extend(await self._collect_signals(announcement, me.id))
            except NotFoundError:
                logger.warning(
                    "Announcement message %s of #%s no longer exists",
                    announcement.source_message_id,
                    announcement.id,
                )
            except ZkouskaError as exc:
                logger.error("Could not read reactions of #%s: %s", announcement.id, exc)

        results = await asyncio.gather(*(self.reactions.handle(signal) for signal in signals))
        return sum(1 for result in results if result)

    async def _collect_signals(self, announcement: Announcement, bot_id: int) -> List[ReactionSignal]:
        message = await self.client.fetch_message(
            announcement.source_channel_id, announcement.source_message_id
        )
        signals: List[ReactionSignal] = []
        for reaction in message.reactions:
            if reaction.count <= (1 if reaction.me else 0):
                continue
            try:
                users = await self.client.fetch_reaction_users(
                    message.channel_id, message.id, reaction.emoji
                )
            except ZkouskaError as exc:
                logger.warning(
                    "Could not read %s reactions of #%s: %s", reaction.emoji, announcement.id, exc
                )
                continue
            signals.extend(
                ReactionSignal(
                    message_id=message.id,
                    channel_id=message.channel_id,
                    user_id=user.id,
                    emoji=reaction.emoji,
                )
                for user in users
                if user.id != bot_id and not user.is_bot
            )
        return signals

    # endregion

    # region Query helpers
    def list_announcements(self) -> List[Dict[str, Any]]:
        return [
            {"id": announcement_id, **entry}
            for announcement_id, entry in self.store.snapshot().items()
        ]

    def get_announcement(self, announcement_id: str) -> Optional[Dict[str, Any]]:
        entry = self.store.snapshot().get(announcement_id.lower().lstrip("#"))
        if entry is None:
            return None
        return {"id": announcement_id.lower().lstrip("#"), **entry}

    # endregion


__all__ = ["ZkouskaService"]
