"""
FastAPI dependencies (DB session, current user, collaborators)
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from capling.infrastructure.db.models import User
from capling.infrastructure.db.session import get_db as _get_db
from capling.infrastructure.llm.client import build_classifier, build_evaluator
from capling.infrastructure.llm.contracts import JustificationEvaluator, TransactionClassifier


# Re-export get_db
get_db = _get_db


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Current user from the signed session cookie

    Raises:
        HTTPException(401): not logged in / unknown user
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Current user if admin, otherwise 403."""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def get_classifier() -> TransactionClassifier:
    return build_classifier()


def get_evaluator() -> JustificationEvaluator:
    return build_evaluator()
