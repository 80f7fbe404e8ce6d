import logging
import re
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import Event, EventEmployee, EventDepartment, Department, User
from opsdesk.api.common import (
    get_payload, respond, ensure_object, require_fields, is_blank, parse_date, parse_time, to_id_list, iso, hhmm,
    to_text
)

router = APIRouter(prefix="/api/v1/events", tags=["events"])

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _serialize_event(e: Event) -> dict:
    return {
        "id": e.id,
        "company_id": e.company_id,
        "event_name": e.event_name,
        "description": e.description,
        "where": e.where,
        "starts_on_date": iso(e.starts_on_date),
        "starts_on_time": hhmm(e.starts_on_time),
        "ends_on_date": iso(e.ends_on_date),
        "ends_on_time": hhmm(e.ends_on_time),
        "label_color": e.label_color,
        "created_by": e.created_by,
        "employees": [
            {"user_id": ee.user_id, "name": ee.user.name if ee.user else None} for ee in e.employees
        ],
        "departments": [
            {"department_id": ed.department_id, "name": ed.department.name if ed.department else None}
            for ed in e.departments
        ],
        "created_at": iso(e.created_at),
        "updated_at": iso(e.updated_at),
    }


def _get_event_or_404(event_id: int, company_id: int, db: Session) -> Event:
    event = db.query(Event).filter(
        Event.id == event_id, Event.company_id == company_id, Event.is_deleted == False
    ).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _attendee_ids(data: dict, company_id: int, db: Session):
    """Validated (user ids, department ids) from the payload; None when a list was not supplied."""
    user_ids = dept_ids = None
    if "employees" in data or "employee_ids" in data:
        user_ids = sorted(set(to_id_list(data.get("employees", data.get("employee_ids")), "employees")))
        found = db.query(User.id).filter(
            User.id.in_(user_ids), User.company_id == company_id, User.is_deleted == False
        ).count() if user_ids else 0
        if found != len(user_ids):
            raise HTTPException(status_code=400, detail="One or more employees not found in this company")
    if "departments" in data or "department_ids" in data:
        dept_ids = sorted(set(to_id_list(data.get("departments", data.get("department_ids")), "departments")))
        found = db.query(Department.id).filter(
            Department.id.in_(dept_ids), Department.company_id == company_id, Department.is_deleted == False
        ).count() if dept_ids else 0
        if found != len(dept_ids):
            raise HTTPException(status_code=400, detail="One or more departments not found in this company")
    return user_ids, dept_ids


def _sync_links(links: list, attr: str, wanted: list, make):
    """Drop join rows no longer wanted and add missing ones, leaving kept rows untouched."""
    wanted_set = set(wanted)
    for link in list(links):
        if getattr(link, attr) not in wanted_set:
            links.remove(link)
    present = {getattr(link, attr) for link in links}
    for value in wanted:
        if value not in present:
            links.append(make(value))


def _check_color(value):
    if value is not None and not (isinstance(value, str) and _COLOR_RE.match(value)):
        raise HTTPException(status_code=400, detail="label_color must be a hex color like #3B82F6")
    return value


def _check_range(event: Event):
    if event.ends_on_date and event.ends_on_date < event.starts_on_date:
        raise HTTPException(status_code=400, detail="ends_on_date cannot be before starts_on_date")


@router.get("")
def list_events(
    start: str = Query(None),
    end: str = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = db.query(Event).filter(Event.company_id == company_id, Event.is_deleted == False)
    if start:
        q = q.filter(Event.starts_on_date >= parse_date(start, "start"))
    if end:
        q = q.filter(Event.starts_on_date <= parse_date(end, "end"))
    events = q.order_by(desc(Event.starts_on_date), desc(Event.id)).all()
    return respond([_serialize_event(e) for e in events])


@router.get("/{event_id}")
def get_event(event_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_event(_get_event_or_404(event_id, company_id, db)))


@router.post("", status_code=201)
def create_event(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                 db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["event_name", "starts_on_date"])
    user_ids, dept_ids = _attendee_ids(data, company_id, db)

    event = Event(
        company_id=company_id,
        event_name=to_text(data["event_name"], "event_name"),
        description=data.get("description") or None,
        where=data.get("where") or None,
        starts_on_date=parse_date(data["starts_on_date"], "starts_on_date"),
        starts_on_time=parse_time(data.get("starts_on_time"), "starts_on_time"),
        ends_on_date=parse_date(data.get("ends_on_date"), "ends_on_date"),
        ends_on_time=parse_time(data.get("ends_on_time"), "ends_on_time"),
        label_color=_check_color(data.get("label_color") or "#3B82F6"),
        created_by=user.id,
    )
    _check_range(event)
    try:
        db.add(event)
        db.flush()
        for uid in user_ids or []:
            db.add(EventEmployee(event_id=event.id, user_id=uid))
        for did in dept_ids or []:
            db.add(EventDepartment(event_id=event.id, department_id=did))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(event)
    logger.info("Event %s created with %d employees and %d departments", event.id,
                len(user_ids or []), len(dept_ids or []))
    return respond(_serialize_event(event), message="Event created successfully")


@router.put("/{event_id}")
def update_event(event_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                 db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    event = _get_event_or_404(event_id, company_id, db)
    user_ids, dept_ids = _attendee_ids(data, company_id, db)

    if "event_name" in data:
        if is_blank(data["event_name"]):
            raise HTTPException(status_code=400, detail="event_name cannot be empty")
        event.event_name = to_text(data["event_name"], "event_name")
    if "starts_on_date" in data:
        value = parse_date(data["starts_on_date"], "starts_on_date")
        if value is None:
            raise HTTPException(status_code=400, detail="starts_on_date cannot be empty")
        event.starts_on_date = value
    if "ends_on_date" in data:
        event.ends_on_date = parse_date(data["ends_on_date"], "ends_on_date")
    for field in ["starts_on_time", "ends_on_time"]:
        if field in data:
            setattr(event, field, parse_time(data[field], field))
    for field in ["description", "where"]:
        if field in data:
            setattr(event, field, data[field] or None)
    if "label_color" in data:
        event.label_color = _check_color(data["label_color"] or None)
    _check_range(event)

    try:
        if user_ids is not None:
            _sync_links(event.employees, "user_id", user_ids, lambda uid: EventEmployee(user_id=uid))
        if dept_ids is not None:
            _sync_links(event.departments, "department_id", dept_ids,
                        lambda did: EventDepartment(department_id=did))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(event)
    return respond(_serialize_event(event), message="Event updated successfully")


@router.delete("/{event_id}")
def delete_event(event_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    event = _get_event_or_404(event_id, company_id, db)
    event.is_deleted = True
    db.commit()
    return {"success": True, "message": "Event deleted successfully"}
