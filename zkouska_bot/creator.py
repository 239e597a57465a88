"""Creation of new zkouska announcements."""

from __future__ import annotations

import logging
from typing import Optional

from . import codec, errors
from .config import Settings
from .discord_client import DiscordClient
from .errors import CreationFailed, NotFoundError, PermissionDenied, ValidationError, ZkouskaError
from .models import Announcement
from .store import AnnouncementStore

logger = logging.getLogger(__name__)


class AnnouncementCreator:
    """Posts an announcement, opens its companion thread and registers both."""

    def __init__(self, settings: Settings, client: DiscordClient, store: AnnouncementStore) -> None:
        self.settings = settings
        self.client = client
        self.store = store

    async def create(
        self,
        channel_id: int,
        raw_text: str,
        author_id: int,
        command_message_id: Optional[int] = None,
    ) -> Announcement:
        if not await self.client.has_moderator_capability(author_id, channel_id):
            raise PermissionDenied(
                f"user {author_id} may not create announcements in {channel_id}",
                user_message=errors.NO_PERMISSION_MESSAGE,
            )

        description = raw_text.strip()
        if not description:
            raise ValidationError(
                "announcement description is empty",
                user_message=errors.MISSING_DESCRIPTION_MESSAGE.format(
                    command=self.settings.command_name
                ),
            )

        try:
            destination = await self.client.fetch_channel(self.settings.destination_channel_id)
        except NotFoundError as exc:
            logger.error("Destination channel %s not found", self.settings.destination_channel_id)
            raise NotFoundError(
                f"destination channel {self.settings.destination_channel_id} not found",
                user_message=errors.CHANNEL_NOT_FOUND_MESSAGE,
            ) from exc

        announcement_id = codec.generate_id()
        message = await self.client.send_message(
            channel_id, codec.encode_announcement(announcement_id, description)
        )

        try:
            await self.client.add_reaction(channel_id, message.id, codec.ABSENCE_EMOJI)
            await self.client.add_reaction(channel_id, message.id, codec.CLOSE_EMOJI)
            thread = await self.client.create_thread(
                destination.id, codec.thread_name(description, announcement_id)
            )
        except ZkouskaError as exc:
            logger.error(
                "Announcement #%s was posted as message %s but setup failed: %s",
                announcement_id,
                message.id,
                exc,
            )
            raise CreationFailed(
                f"announcement #{announcement_id} left without a thread",
                user_message=errors.CREATE_ERROR_MESSAGE,
            ) from exc

        announcement = Announcement(
            id=announcement_id,
            description=description,
            source_channel_id=channel_id,
            source_message_id=message.id,
            thread_id=thread.id,
        )
        self.store.register(announcement)

        try:
            author = await self.client.resolve_member(destination.guild_id, author_id)
            await self.client.send_message(
                thread.id,
                embed=codec.creator_embed(
                    author.display_name, author.avatar_url, description, announcement_id, author_id
                ),
            )
            if command_message_id is not None:
                await self.client.delete_message(channel_id, command_message_id)
        except ZkouskaError as exc:
            logger.error("Announcement #%s is live but finishing it failed: %s", announcement_id, exc)
            raise CreationFailed(
                f"announcement #{announcement_id} created with errors",
                user_message=errors.CREATE_ERROR_MESSAGE,
            ) from exc

        logger.info("User %s created announcement #%s: %s", author.username, announcement_id, description)
        logger.info("Created thread %s (%s)", thread.name, thread.id)
        return announcement


__all__ = ["AnnouncementCreator"]
