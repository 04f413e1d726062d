"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class OffsetRecord:
    bot_id: str
    next_offset: int
    updated_at: datetime
