import logging
from datetime import date, datetime, timedelta, timezone
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from ..config import DASHBOARD_WINDOW_DAYS, RECENT_SESSIONS_LIMIT
from ..db import get_db
from .sessions import session_summary
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=500, content={"status": "unhealthy", "error": str(e)})
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/dashboard", response_model=schemas.Dashboard)
def dashboard(db: Session = Depends(get_db)):
    since = date.today() - timedelta(days=DASHBOARD_WINDOW_DAYS)
    recent = db.query(models.GridSession).filter(models.GridSession.date >= since)

    total_grids = (
        db.query(func.count(models.GridPreparation.prep_id))
        .join(models.GridSession, models.GridPreparation.session_id == models.GridSession.session_id)
        .filter(models.GridSession.date >= since, models.GridPreparation.include_in_session.is_(True))
        .scalar()
    )
    avg_humidity, avg_temperature = (
        db.query(func.avg(models.VitrobotSettings.humidity_percent), func.avg(models.VitrobotSettings.temperature_c))
        .join(models.GridSession, models.VitrobotSettings.session_id == models.GridSession.session_id)
        .filter(models.GridSession.date >= since)
        .one()
    )
    stats = schemas.DashboardStats(
        total_sessions=recent.count(),
        total_grids=total_grids or 0,
        active_users=recent.with_entities(func.count(func.distinct(models.GridSession.user_name))).scalar() or 0,
        avg_humidity=avg_humidity,
        avg_temperature=avg_temperature,
    )

    latest = (
        db.query(models.GridSession)
        .order_by(models.GridSession.date.desc(), models.GridSession.created_at.desc())
        .limit(RECENT_SESSIONS_LIMIT)
        .all()
    )
    return schemas.Dashboard(stats=stats, recent_sessions=[session_summary(obj) for obj in latest])
