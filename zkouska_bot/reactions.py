"""Reaction-driven state machine for announcement responses and closure.

Per (announcement, user) the state is one of none, absence or late. Toggle
reactions move between them:

    none     --absence/late-->  post a companion record in the thread
    absence  <--late/absence--> edit that record in place (recreate if deleted)
    any      --attending-->     delete the record, back to none

The triggering reaction is removed once its effect has been applied, so the
counts under an announcement never grow. When applying the effect fails the
reaction stays and the next poll retries it.
"""

from __future__ import annotations

import logging

from . import codec
from .discord_client import DiscordClient
from .errors import NotFoundError, ZkouskaError
from .models import Announcement, ReactionSignal, ResponseStatus, SignalKind, UserResponse
from .store import AnnouncementStore

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    ResponseStatus.ABSENCE: "absence",
    ResponseStatus.LATE: "late arrival",
    ResponseStatus.UNKNOWN: "unknown",
}


class ReactionProcessor:
    def __init__(self, client: DiscordClient, store: AnnouncementStore) -> None:
        self.client = client
        self.store = store

    async def handle(self, signal: ReactionSignal) -> bool:
        """Apply one reaction; returns True when the transition was carried out."""

        announcement = self.store.by_message(signal.message_id)
        if announcement is None:
            logger.debug("Ignoring reaction on untracked message %s", signal.message_id)
            return False

        kind = codec.signal_for_emoji(signal.emoji)
        try:
            if kind is None:
                await self._clear_signal(signal)
                return False
            if kind is SignalKind.CLOSE:
                return await self.close(announcement, signal)
            if kind is SignalKind.ATTENDING:
                return await self.attend(announcement, signal)
            status = ResponseStatus.ABSENCE if kind is SignalKind.ABSENCE else ResponseStatus.LATE
            return await self.respond(announcement, signal, status)
        except ZkouskaError as exc:
            logger.error(
                "Error processing %s from user %s on #%s: %s",
                signal.emoji,
                signal.user_id,
                announcement.id,
                exc,
            )
            return False

    async def respond(
        self, announcement: Announcement, signal: ReactionSignal, status: ResponseStatus
    ) -> bool:
        async with self.store.response_guard(announcement.id, signal.user_id) as is_open:
            if not is_open:
                logger.info("Ignoring response of %s, #%s is closed", signal.user_id, announcement.id)
                return False
            try:
                thread = await self.client.fetch_channel(announcement.thread_id)
            except NotFoundError:
                logger.error("Thread %s of #%s not found", announcement.thread_id, announcement.id)
                return False

            member = await self.client.resolve_member(thread.guild_id, signal.user_id)
            build = codec.absence_embed if status is ResponseStatus.ABSENCE else codec.late_embed
            embed = build(member.display_name, member.avatar_url, signal.user_id)

            existing = self.store.response(announcement.id, signal.user_id)
            message_id = None
            if existing is not None:
                try:
                    await self.client.edit_message(
                        thread.id, existing.companion_message_id, embed=embed
                    )
                    message_id = existing.companion_message_id
                    logger.info(
                        "%s (%s) changed response on #%s to %s",
                        member.display_name,
                        member.username,
                        announcement.id,
                        STATUS_LABELS[status],
                    )
                except NotFoundError:
                    logger.info(
                        "Companion message %s of %s was deleted, posting a new one",
                        existing.companion_message_id,
                        member.username,
                    )
            if message_id is None:
                message = await self.client.send_message(thread.id, embed=embed)
                message_id = message.id
                logger.info(
                    "%s (%s) - %s on #%s",
                    member.display_name,
                    member.username,
                    STATUS_LABELS[status],
                    announcement.id,
                )

            recorded = self.store.set_response(
                UserResponse(
                    announcement_id=announcement.id,
                    user_id=signal.user_id,
                    status=status,
                    companion_message_id=message_id,
                )
            )
            if not recorded:
                logger.warning(
                    "Announcement #%s is no longer tracked, response of %s was not recorded",
                    announcement.id,
                    signal.user_id,
                )

            await self._clear_signal(signal)
        return True

    async def attend(self, announcement: Announcement, signal: ReactionSignal) -> bool:
        async with self.store.response_guard(announcement.id, signal.user_id) as is_open:
            if not is_open:
                logger.info("Ignoring attendance of %s, #%s is closed", signal.user_id, announcement.id)
                return False
            existing = self.store.response(announcement.id, signal.user_id)
            if existing is not None:
                try:
                    await self.client.delete_message(
                        announcement.thread_id, existing.companion_message_id
                    )
                except NotFoundError:
                    logger.debug("Companion message %s already gone", existing.companion_message_id)
                self.store.clear_response(announcement.id, signal.user_id)
                logger.info(
                    "User %s confirmed attendance of #%s, previous response removed",
                    signal.user_id,
                    announcement.id,
                )
            else:
                logger.info(
                    "User %s confirmed attendance of #%s (no previous response)",
                    signal.user_id,
                    announcement.id,
                )

            await self._clear_signal(signal)
        return True

    async def close(self, announcement: Announcement, signal: ReactionSignal) -> bool:
        if not await self.client.has_moderator_capability(
            signal.user_id, announcement.source_channel_id
        ):
            logger.warning(
                "User %s attempted to close #%s without moderator permissions",
                signal.user_id,
                announcement.id,
            )
            await self._clear_signal(signal)
            return False

        async with self.store.closure_guard(announcement.id):
            if self.store.get(announcement.id) is None:
                return False

            logger.info("User %s is closing #%s", signal.user_id, announcement.id)
            try:
                thread = await self.client.fetch_channel(announcement.thread_id)
            except NotFoundError:
                logger.warning("Thread %s of #%s already gone", announcement.thread_id, announcement.id)
                thread = None

            if thread is not None:
                closer = await self.client.resolve_member(thread.guild_id, signal.user_id)
                await self.client.send_message(
                    thread.id, embed=codec.closing_embed(closer.display_name, closer.avatar_url)
                )
                await self.client.archive_thread(thread.id)
                logger.info("Archived thread %s", thread.id)

            try:
                await self.client.delete_message(
                    announcement.source_channel_id, announcement.source_message_id
                )
            except NotFoundError:
                logger.debug("Announcement message %s already deleted", announcement.source_message_id)

            self.store.remove(announcement.id)
            logger.info("User %s closed #%s", signal.user_id, announcement.id)
        return True

    async def _clear_signal(self, signal: ReactionSignal) -> None:
        try:
            await self.client.remove_reaction(
                signal.channel_id, signal.message_id, signal.emoji, signal.user_id
            )
        except ZkouskaError as exc:
            logger.warning(
                "Could not remove %s of user %s from message %s: %s",
                signal.emoji,
                signal.user_id,
                signal.message_id,
                exc,
            )


__all__ = ["ReactionProcessor"]
