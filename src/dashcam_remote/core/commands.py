"""Free-form chat text to structured remote command."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from dashcam_remote.log import get_logger

logger = get_logger(__name__)

DEFAULT_RECORD_SECONDS = 60
MIN_RECORD_SECONDS = 5
MAX_RECORD_SECONDS = 600

# Longest first, so "/record" wins over "record".
RECORD_KEYWORDS = ("/record", "record", "录制")
PHOTO_KEYWORDS = frozenset({"/photo", "photo", "拍照"})
HELP_KEYWORDS = frozenset({"/help", "/start", "帮助"})
STATUS_KEYWORDS = frozenset({"/status", "状态"})

_MENTION_PATTERN = re.compile(r"@\S+")
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True, slots=True)
class Record:
    duration_seconds: int = DEFAULT_RECORD_SECONDS


@dataclass(frozen=True, slots=True)
class Photo:
    pass


@dataclass(frozen=True, slots=True)
class Help:
    pass


@dataclass(frozen=True, slots=True)
class Status:
    pass


@dataclass(frozen=True, slots=True)
class Unrecognized:
    text: str = ""


Command = Union[Record, Photo, Help, Status, Unrecognized]


def normalize(text: str) -> str:
    """Drop ``@botname`` mentions and surrounding whitespace."""
    return _MENTION_PATTERN.sub("", text).strip()


def parse_command(text: str) -> Command:
    """Map raw chat text to a command.

    ASCII keywords match case-insensitively; Chinese keywords match exactly
    (casefolding leaves them unchanged).
    """
    command = normalize(text)
    folded = command.casefold()

    for keyword in RECORD_KEYWORDS:
        if folded.startswith(keyword):
            return Record(parse_record_duration(command[len(keyword):]))

    if folded in PHOTO_KEYWORDS:
        return Photo()
    if folded in HELP_KEYWORDS:
        return Help()
    if folded in STATUS_KEYWORDS:
        return Status()
    return Unrecognized(command)


def parse_record_duration(remainder: str) -> int:
    """Parse the seconds argument after a record keyword, clamped to [5, 600]."""
    value = remainder.strip()
    if not value:
        return DEFAULT_RECORD_SECONDS
    if not _INTEGER_PATTERN.fullmatch(value):
        logger.warning("record_duration_invalid", value=value, default=DEFAULT_RECORD_SECONDS)
        return DEFAULT_RECORD_SECONDS
    return max(MIN_RECORD_SECONDS, min(MAX_RECORD_SECONDS, int(value)))
