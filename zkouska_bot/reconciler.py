"""Rebuilds the announcement store from Discord history after a restart."""

from __future__ import annotations

import logging
from typing import List, Optional

from . import codec
from .config import Settings
from .discord_client import DiscordClient
from .errors import ZkouskaError
from .models import Announcement, Channel, Message, ResponseStatus, UserResponse
from .store import AnnouncementStore, StoreTables

logger = logging.getLogger(__name__)


class HistoryReconciler:
    """Matches announcement messages with their threads and replays thread records.

    Recovered responses carry ``ResponseStatus.UNKNOWN``: the footer only holds
    the user id, so absence and late arrival cannot be told apart.
    """

    def __init__(self, settings: Settings, client: DiscordClient, store: AnnouncementStore) -> None:
        self.settings = settings
        self.client = client
        self.store = store

    async def rebuild(self) -> int:
        """Replace the store with state read from Discord; returns the number restored.

        Never raises: on failure the error is logged and the store is left as it was.
        """

        logger.info("Rebuilding announcement state from Discord")
        try:
            tables = await self._build_tables()
        except Exception:  # noqa: BLE001
            logger.exception("Could not rebuild announcement state")
            return 0

        self.store.replace(tables)
        logger.info("Rebuilt state for %s announcements", len(tables.announcements))
        return len(tables.announcements)

    async def _build_tables(self) -> StoreTables:
        me = await self.client.fetch_current_user()
        candidates = await self._fetch_announcement_messages(me.id)
        threads = await self.client.fetch_active_threads(self.settings.destination_channel_id)
        logger.info("Found %s announcement messages and %s active threads", len(candidates), len(threads))

        tables = StoreTables()
        for message in candidates:
            announcement_id = codec.decode_announcement_id(message.content)
            if announcement_id is None:
                logger.warning("Could not extract announcement id from message %s", message.id)
                continue

            thread = _match_thread(threads, announcement_id)
            if thread is None:
                logger.warning("Could not find thread for announcement #%s", announcement_id)
                continue

            tables.add_announcement(
                Announcement(
                    id=announcement_id,
                    description=codec.decode_description(message.content) or "",
                    source_channel_id=message.channel_id,
                    source_message_id=message.id,
                    thread_id=thread.id,
                )
            )
            restored = await self._replay_thread(tables, announcement_id, thread)
            logger.info(
                "Rebuilt announcement #%s from thread %s with %s responses",
                announcement_id,
                thread.name,
                restored,
            )
        return tables

    async def _fetch_announcement_messages(self, bot_id: int) -> List[Message]:
        return [
            message
            async for message in self.client.fetch_channel_history(self.settings.source_channel_id)
            if message.author_id == bot_id and codec.is_announcement(message.content)
        ]

    async def _replay_thread(self, tables: StoreTables, announcement_id: str, thread: Channel) -> int:
        seen = set()
        try:
            # History comes newest first, so the first record per user is the current one.
            async for message in self.client.fetch_channel_history(thread.id):
                for embed in message.embeds:
                    record = codec.decode_footer(embed.footer)
                    if record is None or record.is_creator or record.user_id is None:
                        continue
                    if record.user_id in seen:
                        continue
                    seen.add(record.user_id)
                    tables.add_response(
                        UserResponse(
                            announcement_id=announcement_id,
                            user_id=record.user_id,
                            status=ResponseStatus.UNKNOWN,
                            companion_message_id=message.id,
                        )
                    )
        except ZkouskaError as exc:
            logger.warning("Could not fetch messages of thread %s: %s", thread.name, exc)
        except Exception:  # noqa: BLE001
            logger.exception("Could not replay records of thread %s", thread.name)
        else:
            return len(seen)

        for user_id in seen:
            tables.drop_response(announcement_id, user_id)
        return 0


def _match_thread(threads: List[Channel], announcement_id: str) -> Optional[Channel]:
    suffix = codec.thread_suffix(announcement_id)
    return next((thread for thread in threads if thread.name.endswith(suffix)), None)


__all__ = ["HistoryReconciler"]
