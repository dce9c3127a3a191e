"""
Progression API endpoints (level / XP, lessons, happiness streak)
"""
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capling.api.deps import get_current_user, get_db
from capling.application.errors import ValidationError
from capling.application.progression import ProgressionLedger, ProgressionSnapshot, XpAward
from capling.application.streaks import StreakTracker
from capling.application.xp_history import XpHistoryService
from capling.config import get_settings
from capling.infrastructure.db.models import User
from capling.utils.dates import logical_day, utc_now


router = APIRouter(prefix="/api/v1", tags=["progression"])


# === Request/Response models ===

class ProgressionResponse(BaseModel):
    level: int
    current_xp: int
    total_xp: int
    consecutive_happy_days: int
    lessons_read: int
    xp_for_next_level: int
    progress_percent: float
    last_happiness_check: Optional[datetime]


class AwardXpRequest(BaseModel):
    event_type: str
    goal_title: str = ""


class XpAwardResponse(BaseModel):
    awarded: bool
    xp_amount: int
    previous_level: int
    new_level: int
    leveled_up: bool
    total_xp: int


class LessonReadResponse(BaseModel):
    lesson_id: int
    xp_awarded: bool
    award: Optional[XpAwardResponse]
    error: Optional[str]


class HappinessRequest(BaseModel):
    mood: str


class HappinessResponse(BaseModel):
    updated: bool
    consecutive_happy_days: int
    xp_awarded: int
    leveled_up: bool
    progression: ProgressionResponse


class XpHistoryItem(BaseModel):
    id: int
    event_type: str
    xp_amount: int
    description: str
    label: str
    metadata: dict[str, Any]
    created_at: datetime


class XpHistoryResponse(BaseModel):
    items: list[XpHistoryItem]
    total: int
    page: int
    total_pages: int


# === Helpers ===

def progression_response(snapshot: ProgressionSnapshot) -> ProgressionResponse:
    return ProgressionResponse(
        level=snapshot.level,
        current_xp=snapshot.current_xp,
        total_xp=snapshot.total_xp,
        consecutive_happy_days=snapshot.consecutive_happy_days,
        lessons_read=snapshot.lessons_read,
        xp_for_next_level=snapshot.xp_for_next_level,
        progress_percent=snapshot.progress_percent,
        last_happiness_check=snapshot.last_happiness_check,
    )


def _award_response(award: XpAward) -> XpAwardResponse:
    return XpAwardResponse(
        awarded=award.awarded,
        xp_amount=award.xp_amount,
        previous_level=award.previous_level,
        new_level=award.new_level,
        leveled_up=award.leveled_up,
        total_xp=award.total_xp,
    )


# === Endpoints ===

@router.get("/progression", response_model=ProgressionResponse)
def get_progression(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return progression_response(ProgressionLedger(db).get_progression(user.id))


@router.post("/progression/xp", response_model=XpAwardResponse)
def award_xp(
    req: AwardXpRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Award a named XP event with its fixed amount (goal_achieved, daily_bonus)"""
    ledger = ProgressionLedger(db)
    if req.event_type == "goal_achieved":
        award = ledger.award_goal_achieved(user.id, req.goal_title)
    elif req.event_type == "daily_bonus":
        today = logical_day(utc_now(), get_settings().TIMEZONE)
        award = ledger.award_daily_bonus(user.id, today)
    else:
        # lesson_read, happiness_streak and responsible_purchase are gated by their own operations
        raise ValidationError(f"{req.event_type} XP cannot be awarded through this endpoint")
    return _award_response(award)


@router.get("/progression/history", response_model=XpHistoryResponse)
def xp_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    event_type: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, total, total_pages = XpHistoryService(db).list_paginated(
        user.id, page=page, page_size=page_size, event_type=event_type
    )
    return XpHistoryResponse(
        items=[XpHistoryItem(**item) for item in items],
        total=total,
        page=min(page, total_pages),
        total_pages=total_pages,
    )


@router.post("/lessons/{lesson_id}/read", response_model=LessonReadResponse)
def mark_lesson_read(
    lesson_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = ProgressionLedger(db).mark_lesson_read(user.id, lesson_id)
    return LessonReadResponse(
        lesson_id=result.lesson_id,
        xp_awarded=result.xp_awarded,
        award=_award_response(result.award) if result.award else None,
        error=result.error,
    )


@router.post("/progression/happiness", response_model=HappinessResponse)
def update_happiness(
    req: HappinessRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Daily mood check; at most one evaluation per logical day"""
    result = StreakTracker(db).update_happiness_streak(user.id, req.mood)
    return HappinessResponse(
        updated=result.updated,
        consecutive_happy_days=result.consecutive_happy_days,
        xp_awarded=result.xp_awarded,
        leveled_up=result.leveled_up,
        progression=progression_response(result.snapshot),
    )
