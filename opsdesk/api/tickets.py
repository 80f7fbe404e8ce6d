import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, is_admin
from opsdesk.core.pagination import paginate
from opsdesk.models.models import Ticket, TicketComment, TicketStatus, TicketPriority, RoleName, User
from opsdesk.services.client_service import find_client
from opsdesk.services.numbering_service import next_ticket_number
from opsdesk.api.common import get_payload, respond, ensure_object, require_fields, is_blank, to_int, iso, to_text

router = APIRouter(prefix="/api/v1/tickets", tags=["tickets"])

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in TicketStatus]
VALID_PRIORITIES = [p.value for p in TicketPriority]


def _serialize_comment(c: TicketComment) -> dict:
    return {
        "id": c.id,
        "ticket_id": c.ticket_id,
        "comment": c.comment,
        "file_path": c.file_path,
        "created_by": c.created_by,
        "created_by_name": c.author.name if c.author else None,
        "created_at": iso(c.created_at),
    }


def _serialize_ticket(t: Ticket, with_comments: bool = False) -> dict:
    data = {
        "id": t.id,
        "company_id": t.company_id,
        "ticket_id": t.ticket_id,
        "subject": t.subject,
        "client_id": t.client_id,
        "client_name": t.client.company_name if t.client else None,
        "priority": t.priority,
        "description": t.description,
        "status": t.status,
        "assigned_to_id": t.assigned_to_id,
        "assigned_to_name": t.assignee.name if t.assignee else None,
        "created_by": t.created_by,
        "created_at": iso(t.created_at),
        "updated_at": iso(t.updated_at),
    }
    if with_comments:
        data["comments"] = [_serialize_comment(c) for c in t.comments]
    return data


def _visible_tickets(user: User, db: Session):
    q = db.query(Ticket).filter(Ticket.company_id == get_company_id(user), Ticket.is_deleted == False)
    if user.role == RoleName.CLIENT.value:
        q = q.filter(Ticket.created_by == user.id)
    return q


def _get_ticket_or_404(ticket_id: int, user: User, db: Session) -> Ticket:
    ticket = _visible_tickets(user, db).filter(Ticket.id == ticket_id).first()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def _check_choice(value, choices, field):
    if value not in choices:
        raise HTTPException(status_code=400, detail=f"Invalid {field}. Must be one of: {', '.join(choices)}")
    return value


def _resolve_refs(data: dict, company_id: int, db: Session) -> dict:
    refs = {}
    if "client_id" in data:
        client_id = to_int(data["client_id"], "client_id")
        if client_id is not None and not find_client(db, company_id, client_id):
            raise HTTPException(status_code=400, detail="Client not found in this company")
        refs["client_id"] = client_id
    if "assigned_to_id" in data:
        assignee_id = to_int(data["assigned_to_id"], "assigned_to_id")
        if assignee_id is not None:
            assignee = db.query(User).filter(
                User.id == assignee_id, User.company_id == company_id, User.is_deleted == False
            ).first()
            if not assignee:
                raise HTTPException(status_code=400, detail="Assignee not found in this company")
        refs["assigned_to_id"] = assignee_id
    return refs


@router.get("")
def list_tickets(
    status: str = Query(None),
    priority: str = Query(None),
    page: str = Query(None),
    page_size: str = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    q = _visible_tickets(user, db)
    if status:
        q = q.filter(Ticket.status == status)
    if priority:
        q = q.filter(Ticket.priority == priority)
    rows, meta = paginate(q.order_by(desc(Ticket.created_at), desc(Ticket.id)), page, page_size)
    return respond([_serialize_ticket(t) for t in rows], pagination=meta)


@router.get("/{ticket_id}")
def get_ticket(ticket_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return respond(_serialize_ticket(_get_ticket_or_404(ticket_id, user, db), with_comments=True))


@router.post("", status_code=201)
def create_ticket(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["subject"])

    ticket = Ticket(
        company_id=company_id,
        ticket_id=next_ticket_number(db, company_id),
        subject=to_text(data["subject"], "subject"),
        priority=_check_choice(data.get("priority") or TicketPriority.MEDIUM.value, VALID_PRIORITIES, "priority"),
        description=data.get("description") or None,
        status=_check_choice(data.get("status") or TicketStatus.OPEN.value, VALID_STATUSES, "status"),
        created_by=user.id,
        **_resolve_refs(data, company_id, db),
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    logger.info("Ticket %s (%s) opened by %s", ticket.id, ticket.ticket_id, user.id)
    return respond(_serialize_ticket(ticket), message="Ticket created successfully")


@router.put("/{ticket_id}")
def update_ticket(ticket_id: int, payload=Depends(get_payload), user: User = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    ticket = _get_ticket_or_404(ticket_id, user, db)
    if not is_admin(user) and ticket.created_by != user.id and ticket.assigned_to_id != user.id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    if "subject" in data:
        if is_blank(data["subject"]):
            raise HTTPException(status_code=400, detail="subject cannot be empty")
        ticket.subject = to_text(data["subject"], "subject")
    if "description" in data:
        ticket.description = data["description"] or None
    if "priority" in data:
        ticket.priority = _check_choice(data["priority"], VALID_PRIORITIES, "priority")
    if "status" in data:
        ticket.status = _check_choice(data["status"], VALID_STATUSES, "status")
    for field, value in _resolve_refs(data, company_id, db).items():
        setattr(ticket, field, value)

    db.commit()
    db.refresh(ticket)
    return respond(_serialize_ticket(ticket), message="Ticket updated successfully")


@router.delete("/{ticket_id}")
def delete_ticket(ticket_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ticket = _get_ticket_or_404(ticket_id, user, db)
    if not is_admin(user) and ticket.created_by != user.id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    ticket.is_deleted = True
    db.commit()
    return {"success": True, "message": "Ticket deleted successfully"}


@router.post("/{ticket_id}/comments", status_code=201)
def add_comment(ticket_id: int, payload=Depends(get_payload), user: User = Depends(get_current_user),
                db: Session = Depends(get_db)):
    data = ensure_object(payload)
    require_fields(data, ["comment"])
    ticket = _get_ticket_or_404(ticket_id, user, db)
    comment = TicketComment(
        ticket_id=ticket.id,
        comment=data["comment"],
        file_path=data.get("file_path") or None,
        created_by=user.id,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return respond(_serialize_comment(comment), message="Comment added successfully")
