"""
Admin endpoints.

Access: only users with is_admin=True.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capling.api.deps import get_db, require_admin
from capling.api.v1.progression import ProgressionResponse, progression_response
from capling.application.progression import ProgressionLedger
from capling.infrastructure.db.models import User

router = APIRouter(prefix="/admin", tags=["admin"])


class SetLevelRequest(BaseModel):
    level: int
    total_xp: int
    current_xp: int


@router.post("/progression/{user_id}", response_model=ProgressionResponse)
def set_level(
    user_id: int,
    req: SetLevelRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Override level / XP verbatim (support and testing)"""
    snapshot = ProgressionLedger(db).set_level(user_id, req.level, req.total_xp, req.current_xp)
    return progression_response(snapshot)
