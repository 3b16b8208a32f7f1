from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.orm.exc import StaleDataError

from consign.errors import NotFound, StateConflict
from consign.extensions import db


def load_for_update(model, row_id: int | None, *, label: str):
    """Row-lock where the backend supports it; version columns catch the rest."""
    if row_id is None:
        raise NotFound(f"{label} not found")
    row = (
        db.session.query(model)
        .filter(model.id == int(row_id))
        .with_for_update()
        .populate_existing()
        .first()
    )
    if row is None:
        raise NotFound(f"{label} not found")
    return row


def flush_or_conflict() -> None:
    try:
        db.session.flush()
    except StaleDataError as e:
        raise StateConflict() from e


@contextmanager
def transition_scope():
    """One database transaction per state change; losers get StateConflict."""
    try:
        yield db.session
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        raise StateConflict() from e
    except Exception:
        db.session.rollback()
        raise
