"""Text and embed formats that carry zkouska state inside Discord messages.

Discord history is the only persistent store the bot has, so everything that
must survive a restart is written here and parsed back by the reconciler:

* the announcement text carries the announcement id as `` `#xxxxxxxx` ``,
* the companion thread name ends with `` #xxxxxxxx``,
* every record posted in the thread carries the user id in its embed footer.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from .models import Embed, SignalKind

ABSENCE_EMOJI = "❌"
LATE_EMOJI = "⏰"
ATTENDING_EMOJI = "✅"
CLOSE_EMOJI = "🗑️"
ANNOUNCEMENT_EMOJI = "📝"
LOCK_EMOJI = "🔒"

ANNOUNCEMENT_PREFIX = f"{ANNOUNCEMENT_EMOJI} **Zkouška**"
INSTRUCTIONS = (
    f"*Reagujte pomocí {ABSENCE_EMOJI} pokud se chcete omluvit z této zkoušky, "
    f"nebo {LATE_EMOJI} pokud přijdete pozdě. {ATTENDING_EMOJI} vaši omluvenku zruší. "
    "Vaše reakce po chvilce zmizí, ale bude zaznamenána.*\n"
    f"*Moderátoři můžou reagovat pomocí {CLOSE_EMOJI}, aby uzavřeli omluvenky na tuto zkoušku.*"
)

USER_ID_PREFIX = "User ID: "
CREATOR_FOOTER_PREFIX = "Zkouška ID:"

ID_LENGTH = 8
MAX_THREAD_NAME_LENGTH = 100

ID_PATTERN = re.compile(r"`#([a-fA-F0-9]{8})`")
CREATOR_FOOTER_PATTERN = re.compile(
    r"^Zkouška ID:\s*([a-fA-F0-9]{8})\s*\|\s*User ID: (\d+)$"
)
MAX_SNOWFLAKE = 2**64 - 1
VARIATION_SELECTOR = "\ufe0f"

CREATOR_COLOR = 0x2ECC71
ABSENCE_COLOR = 0x3498DB
LATE_COLOR = 0xE67E22
CLOSING_COLOR = 0xE74C3C

_SIGNALS: Dict[str, SignalKind] = {
    ABSENCE_EMOJI: SignalKind.ABSENCE,
    LATE_EMOJI: SignalKind.LATE,
    ATTENDING_EMOJI: SignalKind.ATTENDING,
    CLOSE_EMOJI.replace(VARIATION_SELECTOR, ""): SignalKind.CLOSE,
}


@dataclass(slots=True, frozen=True)
class FooterRecord:
    """Decoded embed footer of a record posted in a companion thread."""

    is_creator: bool
    user_id: Optional[int]
    announcement_id: Optional[str] = None


def generate_id() -> str:
    return uuid.uuid4().hex[:ID_LENGTH]


# region Announcement text
def encode_announcement(announcement_id: str, description: str) -> str:
    return (
        f"{ANNOUNCEMENT_PREFIX} `#{announcement_id}`\n\n"
        f"{description}\n\n"
        f"{INSTRUCTIONS}"
    )


def is_announcement(text: str) -> bool:
    return text.startswith(ANNOUNCEMENT_PREFIX)


def decode_announcement_id(text: str) -> Optional[str]:
    """Return the lowercase announcement id embedded in ``text``, if any."""

    if not is_announcement(text):
        return None
    match = ID_PATTERN.search(text)
    return match.group(1).lower() if match else None


def decode_description(text: str) -> Optional[str]:
    if not is_announcement(text) or "\n\n" not in text:
        return None
    body = text.split("\n\n", 1)[1]
    suffix = f"\n\n{INSTRUCTIONS}"
    if body.endswith(suffix):
        return body[: -len(suffix)]
    head, sep, _ = body.rpartition("\n\n")
    return head if sep else body


def thread_name(description: str, announcement_id: str) -> str:
    """Build a thread name that always ends with `` #<id>`` and fits Discord's limit."""

    suffix = f" #{announcement_id}"
    room = max(MAX_THREAD_NAME_LENGTH - len(suffix), 0)
    if len(description) > room:
        description = description[:room]
    return f"{description}{suffix}"


def thread_suffix(announcement_id: str) -> str:
    return f" #{announcement_id}"


# endregion


# region Footers
def response_footer(user_id: int) -> str:
    return f"{USER_ID_PREFIX}{user_id}"


def creator_footer(announcement_id: str, user_id: int) -> str:
    return f"{CREATOR_FOOTER_PREFIX} {announcement_id} | {USER_ID_PREFIX}{user_id}"


def decode_footer(text: Optional[str]) -> Optional[FooterRecord]:
    """Classify a footer as a creator or response record; ``None`` when unrecognised."""

    if not text:
        return None
    text = text.strip()
    if CREATOR_FOOTER_PREFIX in text:
        match = CREATOR_FOOTER_PATTERN.match(text)
        if not match:
            return FooterRecord(is_creator=True, user_id=None)
        return FooterRecord(
            is_creator=True,
            user_id=_parse_snowflake(match.group(2)),
            announcement_id=match.group(1).lower(),
        )
    if not text.startswith(USER_ID_PREFIX):
        return None
    user_id = _parse_snowflake(text[len(USER_ID_PREFIX):])
    if user_id is None:
        return None
    return FooterRecord(is_creator=False, user_id=user_id)


def _parse_snowflake(value: str) -> Optional[int]:
    if not (value.isascii() and value.isdecimal()):
        return None
    number = int(value)
    return number if number <= MAX_SNOWFLAKE else None


# endregion


# region Embeds
def creator_embed(
    display_name: str, avatar_url: str, description: str, announcement_id: str, user_id: int
) -> Embed:
    return Embed(
        description=f"**Zkouška vytvořena:**\n{description}",
        color=CREATOR_COLOR,
        footer=creator_footer(announcement_id, user_id),
        author_name=display_name,
        author_icon_url=avatar_url,
        timestamp=_now(),
    )


def absence_embed(display_name: str, avatar_url: str, user_id: int) -> Embed:
    return Embed(
        description="**Omluvenka ze zkoušky**",
        color=ABSENCE_COLOR,
        footer=response_footer(user_id),
        author_name=display_name,
        author_icon_url=avatar_url,
        timestamp=_now(),
    )


def late_embed(display_name: str, avatar_url: str, user_id: int) -> Embed:
    return Embed(
        description="**Pozdní příchod na zkoušku**",
        color=LATE_COLOR,
        footer=response_footer(user_id),
        author_name=display_name,
        author_icon_url=avatar_url,
        timestamp=_now(),
    )


def closing_embed(display_name: str, avatar_url: str) -> Embed:
    return Embed(
        description=(
            f"{LOCK_EMOJI} **Příjem omluvenek uzavřen**\n\n"
            "Tato zkouška byla uzavřena moderátorem."
        ),
        color=CLOSING_COLOR,
        author_name=display_name,
        author_icon_url=avatar_url,
        timestamp=_now(),
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# endregion


def signal_for_emoji(emoji: str) -> Optional[SignalKind]:
    return _SIGNALS.get(emoji.replace(VARIATION_SELECTOR, ""))


__all__ = [
    "ABSENCE_EMOJI",
    "LATE_EMOJI",
    "ATTENDING_EMOJI",
    "CLOSE_EMOJI",
    "ANNOUNCEMENT_PREFIX",
    "MAX_THREAD_NAME_LENGTH",
    "FooterRecord",
    "generate_id",
    "encode_announcement",
    "is_announcement",
    "decode_announcement_id",
    "decode_description",
    "thread_name",
    "thread_suffix",
    "response_footer",
    "creator_footer",
    "decode_footer",
    "creator_embed",
    "absence_embed",
    "late_embed",
    "closing_embed",
    "signal_for_emoji",
]
