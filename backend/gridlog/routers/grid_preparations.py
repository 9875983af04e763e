import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from ..db import get_db
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api/grid-preparations", tags=["grid-preparations"])


def _set_state(db: Session, prep_id: int, flag: str, value: bool) -> models.GridPreparation:
    """Set ``trashed``/``shipped`` and stamp or clear the matching ``*_at`` column."""
    obj = db.get(models.GridPreparation, prep_id)
    if obj is None:
        raise HTTPException(404, "Grid preparation not found")
    setattr(obj, flag, value)
    setattr(obj, f"{flag}_at", datetime.now() if value else None)
    db.commit()
    logger.info(f"Grid preparation {prep_id}: {flag}={value}")
    return obj


@router.patch("/{prep_id}/trash", response_model=schemas.StateChange)
def trash_grid(prep_id: int, db: Session = Depends(get_db)):
    _set_state(db, prep_id, "trashed", True)
    return schemas.StateChange(message="Grid preparation marked as trashed successfully")


@router.patch("/{prep_id}/untrash", response_model=schemas.StateChange)
def untrash_grid(prep_id: int, db: Session = Depends(get_db)):
    _set_state(db, prep_id, "trashed", False)
    return schemas.StateChange(message="Grid preparation untrashed successfully")


@router.patch("/{prep_id}/ship", response_model=schemas.StateChange)
def ship_grid(prep_id: int, db: Session = Depends(get_db)):
    _set_state(db, prep_id, "shipped", True)
    return schemas.StateChange(message="Grid preparation marked as shipped successfully")


@router.patch("/{prep_id}/unship", response_model=schemas.StateChange)
def unship_grid(prep_id: int, db: Session = Depends(get_db)):
    _set_state(db, prep_id, "shipped", False)
    return schemas.StateChange(message="Grid preparation unshipped successfully")
