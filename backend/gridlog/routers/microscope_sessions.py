import logging
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
from ..db import get_db
from ..dependencies import validated_microscope_payload
from ..overrides import parse_grid_identifier
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api/microscope-sessions", tags=["microscope-sessions"])

SESSION_FLAGS = ("overnight", "clipped_at_microscope")
DETAIL_FLAGS = ("atlas", "collected", "multigrid", "rescued")
DETAIL_FIELDS = (
    "screened", "px_size", "magnification", "exposure_e", "exposure_time", "spot_size",
    "illumination_area", "exp_per_hole", "images", "comments", "nominal_defocus", "objective",
    "slit_width", "particle_number", "ice_quality", "grid_quality",
)


def find_prep_id(db: Session, grid_identifier: str) -> Optional[int]:
    """Grid preparation named by ``<grid box>g<slot>``, taken from the latest box of that name."""
    parsed = parse_grid_identifier(grid_identifier)
    if parsed is None:
        return None
    box_name, slot_number = parsed
    session = (
        db.query(models.GridSession)
        .filter(models.GridSession.grid_box_name == box_name)
        .order_by(models.GridSession.updated_at.desc(), models.GridSession.session_id.desc())
        .first()
    )
    if session is None:
        return None
    prep = db.query(models.GridPreparation).filter_by(
        session_id=session.session_id, slot_number=slot_number
    ).first()
    return prep.prep_id if prep else None


def _detail_row(db: Session, detail: models.MicroscopeDetail) -> Dict[str, Any]:
    row = models.to_dict(detail)
    prep = db.get(models.GridPreparation, detail.prep_id) if detail.prep_id else None
    session = db.get(models.GridSession, prep.session_id) if prep else None
    row["user_name"] = session.user_name if session else None
    row["grid_box_name"] = session.grid_box_name if session else None
    row["sample_name"] = prep.sample.sample_name if prep and prep.sample else None
    row["grid_type"] = session.grid_info.grid_type if session and session.grid_info else None
    return row


def _write_microscope_session(db: Session, obj: models.MicroscopeSession, payload: Dict[str, Any]) -> list:
    obj.date = date.fromisoformat(payload["date"])
    obj.microscope = payload["microscope"]
    obj.issues = payload.get("issues")
    for flag in SESSION_FLAGS:
        setattr(obj, flag, bool(payload.get(flag)))

    details = []
    for item in payload.get("details") or []:
        detail = models.MicroscopeDetail(
            microscope_slot=item["microscope_slot"],
            grid_identifier=item["grid_identifier"],
            prep_id=item.get("prep_id") or find_prep_id(db, item["grid_identifier"]),
        )
        for flag in DETAIL_FLAGS:
            setattr(detail, flag, bool(item.get(flag)))
        for field in DETAIL_FIELDS:
            setattr(detail, field, item.get(field))
        details.append(detail)
    obj.details = details
    return [d.microscope_slot for d in details]


def _save(db: Session, obj: models.MicroscopeSession, payload: Dict[str, Any], action: str) -> list:
    try:
        slots = _write_microscope_session(db, obj, payload)
        db.add(obj); db.commit(); db.refresh(obj)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to {action} microscope session")
        raise
    return slots


@router.get("", response_model=list[schemas.MicroscopeSessionOut])
def list_microscope_sessions(db: Session = Depends(get_db)):
    q = db.query(models.MicroscopeSession).order_by(
        models.MicroscopeSession.date.desc(), models.MicroscopeSession.created_at.desc()
    )
    return [
        schemas.MicroscopeSessionOut(
            **schemas.MicroscopeSessionOut.model_validate(obj).model_dump(exclude={"grid_count"}),
            grid_count=len(obj.details),
        )
        for obj in q.all()
    ]


@router.get("/microscopes", response_model=list[str])
def list_microscopes(db: Session = Depends(get_db)):
    q = db.query(models.MicroscopeSession.microscope).filter(
        models.MicroscopeSession.microscope.isnot(None), models.MicroscopeSession.microscope != ""
    )
    return [name for (name,) in q.distinct().order_by(models.MicroscopeSession.microscope).all()]


@router.get("/{microscope_session_id}")
def get_microscope_session(microscope_session_id: int, db: Session = Depends(get_db)):
    obj = db.get(models.MicroscopeSession, microscope_session_id)
    if obj is None:
        raise HTTPException(404, "Microscope session not found")
    result = models.to_dict(obj)
    result["details"] = [_detail_row(db, d) for d in obj.details]
    result["grid_count"] = len(result["details"])
    return result


@router.post("", response_model=schemas.MicroscopeSaved, status_code=201)
def create_microscope_session(
    payload: Dict[str, Any] = Depends(validated_microscope_payload),
    db: Session = Depends(get_db)
):
    obj = models.MicroscopeSession()
    slots = _save(db, obj, payload, "create")
    logger.info(f"Created microscope session {obj.microscope_session_id} with slots {slots}")
    return schemas.MicroscopeSaved(
        id=obj.microscope_session_id, message="Microscope session saved successfully", slots=slots
    )


@router.put("/{microscope_session_id}", response_model=schemas.MicroscopeSaved)
def update_microscope_session(
    microscope_session_id: int,
    payload: Dict[str, Any] = Depends(validated_microscope_payload),
    db: Session = Depends(get_db)
):
    obj = db.get(models.MicroscopeSession, microscope_session_id)
    if obj is None:
        raise HTTPException(404, "Microscope session not found")
    slots = _save(db, obj, payload, "update")
    logger.info(f"Updated microscope session {microscope_session_id}")
    return schemas.MicroscopeSaved(
        id=microscope_session_id, message="Microscope session updated successfully", slots=slots
    )
