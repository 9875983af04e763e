import logging
from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
from ..config import GRID_BOX_SLOTS
from ..db import get_db
from ..dependencies import validated_record, validated_session_payload
from ..overrides import is_grid_box_trashed, resolve, resolve_grid_box
from ..validation import inline_sample, parse_integer, sanitize_record
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api", tags=["sessions"])

SESSION_FIELDS = ("user_name", "grid_box_name", "loading_order", "puck_name", "puck_position")
SETTINGS_FIELDS = ("humidity_percent", "temperature_c", "blot_force", "blot_time_seconds", "wait_time_seconds")
GRID_INFO_FIELDS = ("grid_type", "grid_batch", "glow_discharge_current", "glow_discharge_time")
PREP_FIELDS = (
    "volume_ul_override", "incubation_time_seconds", "blot_time_override", "blot_force_override",
    "grid_batch_override", "additives_override", "comments",
)


def _get_session_or_404(db: Session, session_id: int) -> models.GridSession:
    obj = db.get(models.GridSession, session_id)
    if obj is None:
        raise HTTPException(404, "Session not found")
    return obj


def _grid_row(prep: models.GridPreparation, grid_info: Dict[str, Any]) -> Dict[str, Any]:
    row = models.to_dict(prep)
    sample = models.to_dict(prep.sample)
    for key in ("sample_name", "sample_concentration", "additives", "default_volume_ul"):
        row[key] = sample.get(key)
    row["grid_type"] = grid_info.get("grid_type")
    row["grid_batch"] = grid_info.get("grid_batch")
    return row


def session_detail(obj: models.GridSession) -> Dict[str, Any]:
    """Stored session with its settings, grid info, slots and the resolved 4-slot view."""
    grid_info = models.to_dict(obj.grid_info)
    detail = {
        "session": models.to_dict(obj),
        "settings": models.to_dict(obj.settings),
        "grid_info": grid_info,
        "grids": [_grid_row(p, grid_info) for p in obj.grid_preparations],
    }
    detail["slots"] = [slot.to_dict() for slot in resolve_grid_box(detail)]
    return detail


def session_summary(obj: models.GridSession) -> schemas.SessionSummary:
    preps = obj.grid_preparations
    names = sorted({p.sample.sample_name for p in preps if p.sample is not None})
    return schemas.SessionSummary(
        session_id=obj.session_id,
        user_name=obj.user_name,
        date=obj.date,
        grid_box_name=obj.grid_box_name,
        puck_name=obj.puck_name,
        puck_position=obj.puck_position,
        grid_count=sum(1 for p in preps if p.include_in_session),
        humidity_percent=obj.settings.humidity_percent if obj.settings else None,
        temperature_c=obj.settings.temperature_c if obj.settings else None,
        sample_names=", ".join(names) or None,
        trashed=is_grid_box_trashed([models.to_dict(p) for p in preps]),
    )


def _resolve_sample_id(db: Session, grid: Dict[str, Any], sample_section: Dict[str, Any]) -> Optional[int]:
    """Sample of a slot: looked up by name, created when new, else the given sample_id."""
    raw = inline_sample(grid)
    if raw is None or not raw.get("sample_name"):
        return parse_integer(grid.get("sample_id"))

    sample = sanitize_record("samples", raw)
    existing = db.query(models.Sample).filter_by(sample_name=sample["sample_name"]).first()
    if existing is not None:
        return existing.sample_id

    obj = models.Sample(
        sample_name=sample["sample_name"],
        sample_concentration=sample["sample_concentration"],
        additives=sample["additives"],
        default_volume_ul=resolve(sample["default_volume_ul"], sample_section.get("default_volume_ul"), default=None),
        buffer=sample_section.get("buffer"),
    )
    db.add(obj); db.flush()
    logger.info(f"Created sample {obj.sample_id} for {obj.sample_name!r}")
    return obj.sample_id


def _write_session(db: Session, obj: models.GridSession, payload: Dict[str, Any]) -> None:
    """Copy a sanitized session payload onto ``obj`` and its children, replacing the slots."""
    session = payload["session"]
    for field in SESSION_FIELDS:
        setattr(obj, field, session.get(field))
    obj.date = date.fromisoformat(session["date"])

    settings = payload.get("vitrobot_settings") or {}
    if obj.settings is None:
        obj.settings = models.VitrobotSettings()
    for field in SETTINGS_FIELDS:
        setattr(obj.settings, field, settings.get(field))
    obj.settings.glow_discharge_applied = bool(settings.get("glow_discharge_applied"))

    grid_info = payload.get("grid_info") or {}
    if obj.grid_info is None:
        obj.grid_info = models.GridInfo()
    for field in GRID_INFO_FIELDS:
        setattr(obj.grid_info, field, grid_info.get(field))
    obj.grid_info.glow_discharge_applied = bool(grid_info.get("glow_discharge_applied"))

    db.add(obj); db.flush()

    previous = {p.slot_number: p for p in obj.grid_preparations}
    sample_section = payload.get("sample") or {}
    preps = []
    for grid in payload.get("grids") or []:
        if not grid.get("include_in_session"):
            continue
        slot_number = grid["slot_number"]
        old = previous.get(slot_number)
        prep = models.GridPreparation(
            slot_number=slot_number,
            sample_id=_resolve_sample_id(db, grid, sample_section),
            grid_id=obj.grid_info.grid_id,
            include_in_session=True,
            trashed=old.trashed if old is not None else False,
            trashed_at=old.trashed_at if old is not None else None,
            shipped=old.shipped if old is not None else False,
            shipped_at=old.shipped_at if old is not None else None,
        )
        for field in PREP_FIELDS:
            setattr(prep, field, grid.get(field))
        preps.append(prep)
    obj.grid_preparations = preps


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Error while trying to {action}")
        raise


@router.get("/sessions", response_model=list[schemas.SessionSummary])
def list_sessions(db: Session = Depends(get_db)):
    q = db.query(models.GridSession).order_by(
        models.GridSession.date.desc(), models.GridSession.created_at.desc()
    )
    return [session_summary(obj) for obj in q.all()]


@router.get("/sessions/{session_id}")
def get_session(session_id: int, db: Session = Depends(get_db)):
    return session_detail(_get_session_or_404(db, session_id))


@router.post("/sessions", response_model=schemas.SessionCreated, status_code=201)
def create_session(
    payload: Dict[str, Any] = Depends(validated_session_payload),
    db: Session = Depends(get_db)
):
    obj = models.GridSession()
    try:
        _write_session(db, obj, payload)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error creating session")
        raise
    _commit(db, "create session")
    logger.info(f"Created session {obj.session_id} with {len(obj.grid_preparations)} grid(s)")
    return schemas.SessionCreated(session_id=obj.session_id, message="Session created successfully")


@router.put("/sessions/{session_id}", response_model=schemas.SessionCreated)
def update_session(
    session_id: int,
    payload: Dict[str, Any] = Depends(validated_session_payload),
    db: Session = Depends(get_db)
):
    obj = _get_session_or_404(db, session_id)
    try:
        _write_session(db, obj, payload)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Error updating session {session_id}")
        raise
    _commit(db, f"update session {session_id}")
    logger.info(f"Updated session {session_id}")
    return schemas.SessionCreated(session_id=session_id, message="Session updated successfully")


@router.delete("/sessions/{session_id}", response_model=schemas.StateChange)
def delete_session(session_id: int, db: Session = Depends(get_db)):
    obj = _get_session_or_404(db, session_id)
    db.delete(obj)
    _commit(db, f"delete session {session_id}")
    logger.info(f"Deleted session {session_id}")
    return schemas.StateChange(message="Session deleted successfully")


@router.patch("/sessions/{session_id}/trash-all-grids", response_model=schemas.StateChange)
def trash_all_grids(session_id: int, db: Session = Depends(get_db)):
    obj = _get_session_or_404(db, session_id)
    now = datetime.now()
    affected = 0
    for prep in obj.grid_preparations:
        if prep.include_in_session and not prep.trashed:
            prep.trashed, prep.trashed_at = True, now
            affected += 1
    _commit(db, f"trash grids of session {session_id}")
    return schemas.StateChange(
        message=f"All grids in grid box have been trashed ({affected} grids affected)",
        affected_rows=affected,
    )


@router.post("/sessions/{session_id}/grid-preparations", response_model=schemas.Created, status_code=201)
def add_grid_preparation(
    session_id: int,
    grid: Dict[str, Any] = Depends(validated_record("grid_preparations")),
    db: Session = Depends(get_db)
):
    """Put a grid into a slot that was not used when the box was prepared."""
    obj = _get_session_or_404(db, session_id)
    slot_number = grid.get("slot_number")
    if slot_number is None:
        raise HTTPException(400, "slot_number is required")
    if not 1 <= slot_number <= GRID_BOX_SLOTS:
        raise HTTPException(400, f"slot_number must be between 1 and {GRID_BOX_SLOTS}")
    if any(p.slot_number == slot_number for p in obj.grid_preparations):
        raise HTTPException(400, f"Slot {slot_number} is already in use")

    prep = models.GridPreparation(
        session_id=session_id,
        slot_number=slot_number,
        grid_id=obj.grid_info.grid_id if obj.grid_info else None,
        include_in_session=True,
    )
    for field in PREP_FIELDS:
        setattr(prep, field, grid.get(field))
    db.add(prep)
    _commit(db, f"add grid to session {session_id}")
    db.refresh(prep)
    return schemas.Created(id=prep.prep_id, message="Grid preparation added successfully")


@router.get("/users/{user_name}/sessions", response_model=list[schemas.SessionSummary])
def list_user_sessions(user_name: str, db: Session = Depends(get_db)):
    q = db.query(models.GridSession).filter(models.GridSession.user_name == user_name)
    q = q.order_by(models.GridSession.date.desc(), models.GridSession.created_at.desc())
    return [session_summary(obj) for obj in q.all()]
