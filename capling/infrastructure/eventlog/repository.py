"""
Experience event log - append-only source of truth for XP grants.

Events are never updated or deleted; ProgressionAccount totals are a
projection over this log.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session
from sqlalchemy import func, select

from capling.infrastructure.db.models import ExperienceEvent
from capling.infrastructure.db.upsert import insert_ignore


class ExperienceEventRepository:
    """
    Repository for the experience_events table
    """

    def __init__(self, db: Session):
        self.db = db

    def append_event(
        self,
        user_id: int,
        event_type: str,
        xp_amount: int,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Append an experience event

        Args:
            user_id: Owner
            event_type: happiness_streak / lesson_read / responsible_purchase / ...
            xp_amount: XP granted (>= 0)
            description: Human readable reason
            metadata: Free-form payload (stored as JSONB)
            idempotency_key: Optional key, unique per user; a second append
                by the same user with the same key is ignored
            created_at: Event time (default: database now())

        Returns:
            event id, or None if idempotency_key was already used

        Example:
            >>> repo = ExperienceEventRepository(db)
            >>> repo.append_event(
            ...     user_id=1,
            ...     event_type="lesson_read",
            ...     xp_amount=25,
            ...     description='Read lesson: "Budgeting 101"',
            ...     metadata={"lesson_id": 7},
            ... )
        """
        values = {
            "user_id": user_id,
            "event_type": event_type,
            "xp_amount": xp_amount,
            "description": description,
            "metadata_json": metadata or {},
            "idempotency_key": idempotency_key,
        }
        if created_at is not None:
            values["created_at"] = created_at

        if idempotency_key is not None:
            if not insert_ignore(self.db, ExperienceEvent, values, ["user_id", "idempotency_key"]):
                return None
            return self.db.execute(
                select(ExperienceEvent.id).where(
                    ExperienceEvent.user_id == user_id,
                    ExperienceEvent.idempotency_key == idempotency_key,
                )
            ).scalar_one()

        event = ExperienceEvent(**values)
        self.db.add(event)
        self.db.flush()  # get the id without committing
        return event.id

    def list_events(
        self,
        user_id: int,
        event_types: Optional[List[str]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ExperienceEvent]:
        """Newest first."""
        query = self.db.query(ExperienceEvent).filter(ExperienceEvent.user_id == user_id)

        if event_types:
            query = query.filter(ExperienceEvent.event_type.in_(event_types))

        return (
            query.order_by(ExperienceEvent.created_at.desc(), ExperienceEvent.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count_events(self, user_id: int, event_types: Optional[List[str]] = None) -> int:
        query = self.db.query(ExperienceEvent).filter(ExperienceEvent.user_id == user_id)

        if event_types:
            query = query.filter(ExperienceEvent.event_type.in_(event_types))

        return query.count()

    def sum_xp(self, user_id: int) -> int:
        """Total XP in the log (audit counterpart of ProgressionAccount.total_xp)."""
        total = (
            self.db.query(func.coalesce(func.sum(ExperienceEvent.xp_amount), 0))
            .filter(ExperienceEvent.user_id == user_id)
            .scalar()
        )
        return int(total or 0)
