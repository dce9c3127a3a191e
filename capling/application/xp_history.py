"""
XP History service - read-side queries for experience events with descriptions.
"""
from __future__ import annotations

import math

from sqlalchemy.orm import Session

from capling.application.errors import ValidationError
from capling.application.progression import XP_EVENT_TYPES
from capling.infrastructure.db.models import ExperienceEvent
from capling.infrastructure.eventlog.repository import ExperienceEventRepository

# event_type -> base human-readable label
XP_TYPE_LABELS: dict[str, str] = {
    "happiness_streak": "Happiness streak",
    "lesson_read": "Read a lesson",
    "responsible_purchase": "Responsible purchase",
    "goal_achieved": "Goal achieved",
    "daily_bonus": "Daily bonus",
}


def describe_xp_event(event_type: str, metadata: dict | None = None) -> str:
    """
    Build a human-readable description for an experience event.

    Example:
        >>> describe_xp_event("lesson_read", {"lesson_title": "Budgeting 101"})
        'Read a lesson: "Budgeting 101"'
    """
    base = XP_TYPE_LABELS.get(event_type, "XP awarded")
    metadata = metadata or {}

    if event_type == "lesson_read" and metadata.get("lesson_title"):
        return f'{base}: "{metadata["lesson_title"]}"'
    if event_type == "responsible_purchase" and metadata.get("merchant"):
        return f"{base} at {metadata['merchant']}"
    if event_type == "happiness_streak" and metadata.get("consecutive_days"):
        return f"{base}: day {metadata['consecutive_days']}"
    if event_type == "goal_achieved" and metadata.get("goal_title"):
        return f'{base}: "{metadata["goal_title"]}"'

    return base


class XpHistoryService:
    def __init__(self, db: Session):
        self.db = db
        self.event_repo = ExperienceEventRepository(db)

    def list_paginated(
        self,
        user_id: int,
        page: int = 1,
        page_size: int = 20,
        event_type: str | None = None,
    ) -> tuple[list[dict], int, int]:
        """Return (items, total_count, total_pages), newest first."""
        if page_size < 1:
            raise ValidationError("page_size must be >= 1")
        if event_type is not None and event_type not in XP_EVENT_TYPES:
            raise ValidationError(f"Unknown XP event type: {event_type!r}")

        event_types = [event_type] if event_type else None
        total = self.event_repo.count_events(user_id, event_types)
        total_pages = max(1, math.ceil(total / page_size))
        page = max(1, min(page, total_pages))

        rows = self.event_repo.list_events(
            user_id, event_types, limit=page_size, offset=(page - 1) * page_size
        )
        return [self._to_dict(e) for e in rows], total, total_pages

    @staticmethod
    def _to_dict(event: ExperienceEvent) -> dict:
        return {
            "id": event.id,
            "event_type": event.event_type,
            "xp_amount": event.xp_amount,
            "description": event.description or describe_xp_event(event.event_type, event.metadata_json),
            "label": describe_xp_event(event.event_type, event.metadata_json),
            "metadata": event.metadata_json or {},
            "created_at": event.created_at,
        }
