"""
Insert-or-detect-conflict helper.

PostgreSQL in production, SQLite in tests: both support
INSERT ... ON CONFLICT DO NOTHING, but through dialect-specific constructs.
"""
from typing import Any, Dict, List

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_ignore(db: Session, model, values: Dict[str, Any], conflict_columns: List[str]) -> bool:
    """
    INSERT a row unless it collides with the unique key.

    Args:
        db: SQLAlchemy session (statement runs in its current transaction)
        model: ORM class
        values: column values
        conflict_columns: columns of the unique constraint

    Returns:
        True if the row was inserted, False if it already existed
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model.__table__)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model.__table__)
    else:
        raise NotImplementedError(f"insert_ignore is not supported for dialect {dialect!r}")

    stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    result = db.execute(stmt)
    return result.rowcount == 1
