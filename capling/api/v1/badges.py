"""
Badge API endpoints
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capling.api.deps import get_current_user, get_db
from capling.application.badges import BadgeEngine
from capling.infrastructure.db.models import User


router = APIRouter(prefix="/api/v1/badges", tags=["badges"])


class BadgeResponse(BaseModel):
    badge_id: str
    title: str
    description: str
    emoji: str
    category: str
    earned: bool
    newly_earned: bool
    unlocked_at: Optional[datetime]


@router.get("", response_model=list[BadgeResponse])
def list_badges(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Evaluate and list all badges; newly_earned is set once per badge"""
    return [
        BadgeResponse(**status.__dict__)
        for status in BadgeEngine(db).evaluate_badges(user.id)
    ]
