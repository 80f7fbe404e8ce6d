import logging
from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, is_admin
from opsdesk.models.models import Attendance, AttendanceStatus, User
from opsdesk.services.attendance_service import (
    month_bounds, worked_minutes, worked_hours, format_duration, attendance_percentage
)
from opsdesk.api.common import respond, to_int, iso, hhmm

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])

logger = logging.getLogger(__name__)


def _serialize_attendance(a: Attendance) -> dict:
    return {
        "id": a.id,
        "company_id": a.company_id,
        "user_id": a.user_id,
        "date": iso(a.date),
        "check_in": hhmm(a.check_in),
        "check_out": hhmm(a.check_out),
        "status": a.status,
        "notes": a.notes,
        "employee_name": a.user.name if a.user else None,
        "employee_email": a.user.email if a.user else None,
        "total_hours": worked_hours(a.check_in, a.check_out),
        "created_at": iso(a.created_at),
        "updated_at": iso(a.updated_at),
    }


def _target_user_id(user: User, user_id, company_id: int, db: Session) -> int:
    """Admins may look at anyone in the tenant; everyone else only at themselves."""
    requested = to_int(user_id, "user_id")
    if requested is None or requested == user.id:
        return user.id
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="You can only view your own attendance")
    target = db.query(User).filter(
        User.id == requested, User.company_id == company_id, User.is_deleted == False
    ).first()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    return requested


def _required_month(month, year):
    if not month or not year:
        raise HTTPException(status_code=400, detail="Month and year are required")
    try:
        return month_bounds(to_int(month, "month"), to_int(year, "year"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _month_rows(db: Session, company_id: int, user_id: int, start: date, end: date):
    return db.query(Attendance).filter(
        Attendance.company_id == company_id,
        Attendance.user_id == user_id,
        Attendance.date >= start,
        Attendance.date <= end,
    ).order_by(Attendance.date).all()


@router.get("")
def list_attendance(
    user_id: str = Query(None),
    month: str = Query(None),
    year: str = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = db.query(Attendance).filter(Attendance.company_id == company_id)
    if user_id or not is_admin(user):
        q = q.filter(Attendance.user_id == _target_user_id(user, user_id, company_id, db))
    if month and year:
        start, end = _required_month(month, year)
        q = q.filter(Attendance.date >= start, Attendance.date <= end)
    rows = q.order_by(desc(Attendance.date), desc(Attendance.id)).all()
    return respond([_serialize_attendance(a) for a in rows])


@router.get("/calendar")
def monthly_calendar(
    month: str = Query(None),
    year: str = Query(None),
    user_id: str = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    start, end = _required_month(month, year)
    target_id = _target_user_id(user, user_id, company_id, db)
    rows = _month_rows(db, company_id, target_id, start, end)

    total_days = end.day
    present_days = len([a for a in rows if a.status == AttendanceStatus.PRESENT.value])
    return respond({
        "calendar": [{
            "date": iso(a.date),
            "check_in": hhmm(a.check_in),
            "check_out": hhmm(a.check_out),
            "status": a.status,
            "total_hours": worked_hours(a.check_in, a.check_out),
        } for a in rows],
        "attendance_percentage": attendance_percentage(present_days, total_days),
        "total_days": total_days,
        "present_days": present_days,
        "absent_days": total_days - present_days,
    })


@router.get("/percentage")
def monthly_percentage(
    month: str = Query(None),
    year: str = Query(None),
    user_id: str = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    start, end = _required_month(month, year)
    target_id = _target_user_id(user, user_id, company_id, db)
    rows = _month_rows(db, company_id, target_id, start, end)

    counts = {s.value: 0 for s in AttendanceStatus}
    for a in rows:
        if a.status in counts:
            counts[a.status] += 1
    total_days = end.day
    present_days = counts[AttendanceStatus.PRESENT.value]
    return respond({
        "attendance_percentage": attendance_percentage(present_days, total_days),
        "total_days": total_days,
        "present_days": present_days,
        "absent_days": counts[AttendanceStatus.ABSENT.value],
        "late_days": counts[AttendanceStatus.LATE.value],
        "half_days": counts[AttendanceStatus.HALF_DAY.value],
    })


@router.get("/today")
def today_status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    record = db.query(Attendance).filter(
        Attendance.company_id == company_id, Attendance.user_id == user.id, Attendance.date == date.today()
    ).first()
    if not record:
        return respond({"checked_in": False, "checked_out": False, "check_in": None, "check_out": None})
    return respond({
        "checked_in": record.check_in is not None,
        "checked_out": record.check_out is not None,
        "check_in": hhmm(record.check_in),
        "check_out": hhmm(record.check_out),
        "status": record.status,
    })


@router.post("/check-in")
def check_in(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    now = datetime.now().replace(microsecond=0)
    record = db.query(Attendance).filter(
        Attendance.company_id == company_id, Attendance.user_id == user.id, Attendance.date == now.date()
    ).first()
    if record:
        record.check_in = now.time()
        record.status = AttendanceStatus.PRESENT.value
    else:
        record = Attendance(
            company_id=company_id,
            user_id=user.id,
            date=now.date(),
            check_in=now.time(),
            status=AttendanceStatus.PRESENT.value,
        )
        db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("User %s checked in at %s", user.id, now.isoformat())
    return respond(_serialize_attendance(record), message="Checked in successfully")


@router.post("/check-out")
def check_out(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    now = datetime.now().replace(microsecond=0)
    record = db.query(Attendance).filter(
        Attendance.company_id == company_id, Attendance.user_id == user.id, Attendance.date == now.date()
    ).first()
    if not record or record.check_in is None:
        raise HTTPException(status_code=400, detail="You have not checked in today")
    record.check_out = now.time()
    db.commit()
    return respond({
        "check_out": hhmm(record.check_out),
        "total_hours": format_duration(worked_minutes(record.check_in, record.check_out)),
        "date": iso(record.date),
    }, message="Checked out successfully")


@router.get("/{attendance_id}")
def get_attendance(attendance_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    q = db.query(Attendance).filter(Attendance.id == attendance_id, Attendance.company_id == company_id)
    if not is_admin(user):
        q = q.filter(Attendance.user_id == user.id)
    record = q.first()
    if not record:
        raise HTTPException(status_code=404, detail="Attendance record not found")
    return respond(_serialize_attendance(record))
