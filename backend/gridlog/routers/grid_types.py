import logging
from collections import Counter
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Any, Dict
from ..db import get_db
from ..dependencies import validated_record
from ..overrides import resolve
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api/grid-types", tags=["grid-types"])


def _get_grid_type_or_404(db: Session, grid_type_id: int) -> models.GridType:
    obj = db.get(models.GridType, grid_type_id)
    if obj is None:
        raise HTTPException(404, "Grid type not found")
    return obj


def batch_usage(db: Session) -> Counter:
    """Used grids per batch, counting a slot's batch override before the box's batch."""
    rows = (
        db.query(models.GridPreparation.grid_batch_override, models.GridInfo.grid_batch)
        .join(models.GridInfo, models.GridPreparation.grid_id == models.GridInfo.grid_id)
        .filter(models.GridPreparation.include_in_session.is_(True))
        .all()
    )
    usage = Counter()
    for override, batch in rows:
        effective = resolve(override, batch, default=None)
        if effective is not None:
            usage[effective] += 1
    return usage


@router.get("", response_model=list[schemas.GridTypeOut])
def list_grid_types(db: Session = Depends(get_db)):
    q = db.query(models.GridType).order_by(models.GridType.grid_type_name, models.GridType.grid_batch)
    return q.all()


@router.get("/batches", response_model=list[schemas.GridBatchOut])
def list_batches(
    grid_type_name: str = Query(...),
    db: Session = Depends(get_db)
):
    usage = batch_usage(db)
    q = db.query(models.GridType).filter(models.GridType.grid_type_name == grid_type_name)
    result = []
    for obj in q.order_by(models.GridType.created_at.desc()).all():
        used = usage.get(obj.grid_batch, 0)
        remaining = 0 if obj.marked_as_empty else (obj.quantity or 0) - used
        result.append(schemas.GridBatchOut(
            **schemas.GridTypeOut.model_validate(obj).model_dump(),
            used_grids=used,
            remaining_grids=remaining,
        ))
    return result


@router.post("", response_model=schemas.GridTypeOut, status_code=201)
def create_grid_type(
    grid_type: Dict[str, Any] = Depends(validated_record("grid_types")),
    db: Session = Depends(get_db)
):
    duplicate = db.query(models.GridType).filter_by(
        grid_type_name=grid_type["grid_type_name"], grid_batch=grid_type.get("grid_batch")
    ).first()
    if duplicate:
        raise HTTPException(400, "Grid type with this batch already exists")

    obj = models.GridType(
        grid_type_name=grid_type["grid_type_name"],
        grid_batch=grid_type.get("grid_batch"),
        manufacturer=grid_type.get("manufacturer"),
        specifications=grid_type.get("specifications"),
        quantity=grid_type.get("quantity"),
        marked_as_empty=False,
    )
    db.add(obj); db.commit(); db.refresh(obj)
    logger.info(f"Created grid type {obj.grid_type_id} ({obj.grid_type_name} / {obj.grid_batch})")
    return obj


@router.patch("/{grid_type_id}/empty", response_model=schemas.GridTypeOut)
def mark_empty(grid_type_id: int, db: Session = Depends(get_db)):
    obj = _get_grid_type_or_404(db, grid_type_id)
    obj.marked_as_empty = True
    db.commit(); db.refresh(obj)
    return obj


@router.patch("/{grid_type_id}/in-use", response_model=schemas.GridTypeOut)
def mark_in_use(grid_type_id: int, db: Session = Depends(get_db)):
    obj = _get_grid_type_or_404(db, grid_type_id)
    obj.marked_as_empty = False
    db.commit(); db.refresh(obj)
    return obj
