"""In-memory projection of open announcements and their responses."""

from __future__ import annotations

import asyncio
import dataclasses
import threading
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from .models import Announcement, UserResponse

ResponseKey = Tuple[str, int]
LockKey = Tuple[str, Optional[int]]


@dataclass(slots=True)
class StoreTables:
    """The three joined tables. Build one off to the side, then hand it to ``replace``."""

    announcements: Dict[str, Announcement] = field(default_factory=dict)
    responders: Dict[str, Set[int]] = field(default_factory=dict)
    responses: Dict[ResponseKey, UserResponse] = field(default_factory=dict)
    by_message: Dict[int, str] = field(default_factory=dict)

    def add_announcement(self, announcement: Announcement) -> None:
        self.announcements[announcement.id] = announcement
        self.responders.setdefault(announcement.id, set())
        self.by_message[announcement.source_message_id] = announcement.id

    def add_response(self, response: UserResponse) -> bool:
        if response.announcement_id not in self.announcements:
            return False
        self.responders[response.announcement_id].add(response.user_id)
        self.responses[(response.announcement_id, response.user_id)] = response
        return True

    def drop_response(self, announcement_id: str, user_id: int) -> Optional[UserResponse]:
        removed = self.responses.pop((announcement_id, user_id), None)
        self.responders.get(announcement_id, set()).discard(user_id)
        return removed

    def drop_announcement(self, announcement_id: str) -> Optional[Announcement]:
        announcement = self.announcements.pop(announcement_id, None)
        if announcement is None:
            return None
        self.by_message.pop(announcement.source_message_id, None)
        for user_id in self.responders.pop(announcement_id, set()):
            self.responses.pop((announcement_id, user_id), None)
        return announcement


class AnnouncementStore:
    """Announcement→thread, announcement→responders and (announcement, user)→response.

    All three tables live behind a single mutex so readers never observe one
    table updated without the others. ``key_lock`` hands out one asyncio lock
    per (announcement, user) key so that lifecycle operations on the same key
    run one at a time while unrelated keys proceed independently. Closing an
    announcement goes through ``closure_guard``, which excludes every response
    key of that announcement.
    """

    def __init__(self) -> None:
        self._mutex = threading.RLock()
        self._tables = StoreTables()
        self._locks: Dict[LockKey, asyncio.Lock] = {}

    # region Locks
    def key_lock(self, announcement_id: str, user_id: Optional[int] = None) -> asyncio.Lock:
        """Return the lock for a response key, or the whole announcement when ``user_id`` is None."""

        key = (announcement_id, user_id)
        with self._mutex:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = asyncio.Lock()
            return lock

    @asynccontextmanager
    async def response_guard(self, announcement_id: str, user_id: int) -> AsyncIterator[bool]:
        """Hold the (announcement, user) key.

        Yields False when the announcement is being closed or is already gone;
        the caller must then leave its thread alone.
        """

        async with self.key_lock(announcement_id, user_id):
            with self._mutex:
                closing = self._locks.get((announcement_id, None))
                is_open = announcement_id in self._tables.announcements
            yield is_open and not (closing is not None and closing.locked())

    @asynccontextmanager
    async def closure_guard(self, announcement_id: str) -> AsyncIterator[None]:
        """Hold the announcement-wide key and wait for responses already in flight."""

        async with self.key_lock(announcement_id):
            with self._mutex:
                in_flight = [
                    lock
                    for (owner, user_id), lock in self._locks.items()
                    if owner == announcement_id and user_id is not None
                ]
            async with AsyncExitStack() as stack:
                for lock in in_flight:
                    await stack.enter_async_context(lock)
                yield
        self._prune_locks()

    def _prune_locks(self) -> None:
        with self._mutex:
            stale = [
                key
                for key, lock in self._locks.items()
                if key[0] not in self._tables.announcements and not lock.locked()
            ]
            for key in stale:
                del self._locks[key]

    # endregion

    # region Queries
    def get(self, announcement_id: str) -> Optional[Announcement]:
        with self._mutex:
            return self._tables.announcements.get(announcement_id)

    def by_message(self, message_id: int) -> Optional[Announcement]:
        with self._mutex:
            announcement_id = self._tables.by_message.get(message_id)
            if announcement_id is None:
                return None
            return self._tables.announcements.get(announcement_id)

    def announcements(self) -> List[Announcement]:
        with self._mutex:
            return list(self._tables.announcements.values())

    def responders(self, announcement_id: str) -> Set[int]:
        with self._mutex:
            return set(self._tables.responders.get(announcement_id, set()))

    def response(self, announcement_id: str, user_id: int) -> Optional[UserResponse]:
        with self._mutex:
            response = self._tables.responses.get((announcement_id, user_id))
            return dataclasses.replace(response) if response else None

    def responses(self, announcement_id: str) -> List[UserResponse]:
        with self._mutex:
            return [
                dataclasses.replace(response)
                for (owner, _), response in self._tables.responses.items()
                if owner == announcement_id
            ]

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data copy of the projection, ordered for stable comparison."""

        with self._mutex:
            tables = self._tables
            return {
                announcement_id: {
                    "description": announcement.description,
                    "source_channel_id": announcement.source_channel_id,
                    "source_message_id": announcement.source_message_id,
                    "thread_id": announcement.thread_id,
                    "responses": {
                        user_id: {
                            "status": tables.responses[(announcement_id, user_id)].status.value,
                            "companion_message_id": tables.responses[
                                (announcement_id, user_id)
                            ].companion_message_id,
                        }
                        for user_id in sorted(tables.responders[announcement_id])
                    },
                }
                for announcement_id, announcement in sorted(tables.announcements.items())
            }

    # endregion

    # region Mutations
    def register(self, announcement: Announcement) -> None:
        with self._mutex:
            self._tables.add_announcement(announcement)

    def set_response(self, response: UserResponse) -> bool:
        """Insert or overwrite a response; False when the announcement is gone."""

        with self._mutex:
            return self._tables.add_response(dataclasses.replace(response))

    def clear_response(self, announcement_id: str, user_id: int) -> Optional[UserResponse]:
        with self._mutex:
            return self._tables.drop_response(announcement_id, user_id)

    def remove(self, announcement_id: str) -> Optional[Announcement]:
        with self._mutex:
            removed = self._tables.drop_announcement(announcement_id)
            self._prune_locks()
            return removed

    def replace(self, tables: StoreTables) -> None:
        with self._mutex:
            self._tables = tables
            self._prune_locks()

    # endregion

    def __len__(self) -> int:
        with self._mutex:
            return len(self._tables.announcements)


__all__ = ["AnnouncementStore", "StoreTables"]
