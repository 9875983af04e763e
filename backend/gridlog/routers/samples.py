import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
from ..db import get_db
from ..dependencies import validated_record
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api/samples", tags=["samples"])

@router.post("", response_model=schemas.SampleOut, status_code=201)
def create_sample(
    sample: Dict[str, Any] = Depends(validated_record("samples")),
    db: Session = Depends(get_db)
):
    if db.query(models.Sample).filter_by(sample_name=sample["sample_name"]).first():
        raise HTTPException(400, "Sample name already exists")

    obj = models.Sample(
        sample_name=sample["sample_name"],
        sample_concentration=sample.get("sample_concentration"),
        additives=sample.get("additives"),
        buffer=sample.get("buffer"),
        default_volume_ul=sample.get("default_volume_ul"),
    )
    db.add(obj); db.commit(); db.refresh(obj)
    logger.info(f"Created sample {obj.sample_id} ({obj.sample_name})")
    return obj

@router.get("", response_model=list[schemas.SampleOut])
def list_samples(
    name: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    q = db.query(models.Sample)
    if name: q = q.filter(models.Sample.sample_name.ilike(f"%{name}%"))
    return q.order_by(models.Sample.sample_name).all()
