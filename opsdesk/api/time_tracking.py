import logging
from datetime import date, timedelta
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, func
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, is_admin
from opsdesk.core.pagination import paginate
from opsdesk.models.models import TimeLog, User
from opsdesk.api.common import get_payload, respond, ensure_object, require_fields, parse_date, to_float, to_int, iso

router = APIRouter(prefix="/api/v1/time-logs", tags=["time-logs"])

logger = logging.getLogger(__name__)


def _serialize_time_log(t: TimeLog) -> dict:
    return {
        "id": t.id,
        "company_id": t.company_id,
        "user_id": t.user_id,
        "user_name": t.user.name if t.user else None,
        "project_id": t.project_id,
        "task_id": t.task_id,
        "hours": t.hours,
        "date": iso(t.date),
        "description": t.description,
        "created_at": iso(t.created_at),
        "updated_at": iso(t.updated_at),
    }


def _visible_logs(user: User, db: Session):
    q = db.query(TimeLog).filter(TimeLog.company_id == get_company_id(user), TimeLog.is_deleted == False)
    if not is_admin(user):
        q = q.filter(TimeLog.user_id == user.id)
    return q


def _get_log_or_404(log_id: int, user: User, db: Session) -> TimeLog:
    log = _visible_logs(user, db).filter(TimeLog.id == log_id).first()
    if not log:
        raise HTTPException(status_code=404, detail="Time log not found")
    return log


def _valid_hours(value):
    hours = to_float(value, "hours")
    if hours is None or hours <= 0 or hours > 24:
        raise HTTPException(status_code=400, detail="hours must be greater than 0 and at most 24")
    return hours


def _sum_hours(q, since: date = None) -> float:
    if since is not None:
        q = q.filter(TimeLog.date >= since)
    total = q.with_entities(func.coalesce(func.sum(TimeLog.hours), 0)).scalar()
    return round(float(total or 0), 2)


@router.get("")
def list_time_logs(
    user_id: str = Query(None),
    project_id: str = Query(None),
    page: str = Query(None),
    page_size: str = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    q = _visible_logs(user, db)
    if user_id:
        q = q.filter(TimeLog.user_id == to_int(user_id, "user_id"))
    if project_id:
        q = q.filter(TimeLog.project_id == to_int(project_id, "project_id"))
    rows, meta = paginate(q.order_by(desc(TimeLog.date), desc(TimeLog.id)), page, page_size)
    return respond([_serialize_time_log(t) for t in rows], pagination=meta)


@router.get("/stats")
def time_log_stats(user_id: str = Query(None), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    q = _visible_logs(user, db)
    if user_id:
        q = q.filter(TimeLog.user_id == to_int(user_id, "user_id"))
    today = date.today()
    return respond({
        "total_logs": q.count(),
        "total_hours": _sum_hours(q),
        "today_hours": _sum_hours(q.filter(TimeLog.date == today)),
        "week_hours": _sum_hours(q, today - timedelta(days=today.weekday())),
        "month_hours": _sum_hours(q, today.replace(day=1)),
    })


@router.get("/{log_id}")
def get_time_log(log_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return respond(_serialize_time_log(_get_log_or_404(log_id, user, db)))


@router.post("", status_code=201)
def create_time_log(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["hours", "date"])

    log = TimeLog(
        company_id=company_id,
        user_id=user.id,
        project_id=to_int(data.get("project_id"), "project_id"),
        task_id=to_int(data.get("task_id"), "task_id"),
        hours=_valid_hours(data["hours"]),
        date=parse_date(data["date"], "date"),
        description=data.get("description") or None,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    logger.info("User %s logged %s hours on %s", user.id, log.hours, log.date)
    return respond(_serialize_time_log(log), message="Time log created successfully")


@router.put("/{log_id}")
def update_time_log(log_id: int, payload=Depends(get_payload), user: User = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    data = ensure_object(payload)
    log = _get_log_or_404(log_id, user, db)

    if "hours" in data:
        log.hours = _valid_hours(data["hours"])
    if "date" in data:
        value = parse_date(data["date"], "date")
        if value is None:
            raise HTTPException(status_code=400, detail="date cannot be empty")
        log.date = value
    for field in ["project_id", "task_id"]:
        if field in data:
            setattr(log, field, to_int(data[field], field))
    if "description" in data:
        log.description = data["description"] or None

    db.commit()
    db.refresh(log)
    return respond(_serialize_time_log(log), message="Time log updated successfully")


@router.delete("/{log_id}")
def delete_time_log(log_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    log = _get_log_or_404(log_id, user, db)
    log.is_deleted = True
    db.commit()
    return {"success": True, "message": "Time log deleted successfully"}
