import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, or_, and_
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id
from opsdesk.models.models import Message, User, RoleName, UserStatus
from opsdesk.api.common import get_payload, respond, ensure_object, require_fields, to_int, to_bool, iso

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])

logger = logging.getLogger(__name__)


def _serialize_message(m: Message) -> dict:
    return {
        "id": m.id,
        "company_id": m.company_id,
        "from_user_id": m.from_user_id,
        "from_user_name": m.from_user.name if m.from_user else None,
        "from_user_email": m.from_user.email if m.from_user else None,
        "to_user_id": m.to_user_id,
        "to_user_name": m.to_user.name if m.to_user else None,
        "to_user_email": m.to_user.email if m.to_user else None,
        "subject": m.subject,
        "message": m.message,
        "file_path": m.file_path,
        "is_read": m.is_read,
        "read_at": iso(m.read_at),
        "created_at": iso(m.created_at),
        "updated_at": iso(m.updated_at),
    }


def _my_messages(user: User, db: Session):
    return db.query(Message).filter(
        Message.company_id == get_company_id(user),
        Message.is_deleted == False,
        or_(Message.from_user_id == user.id, Message.to_user_id == user.id),
    )


def _conversations(user: User, messages: list) -> list:
    """Collapse messages (newest first) into one entry per counterpart."""
    by_user = {}
    for m in messages:
        mine = m.from_user_id == user.id
        other = m.to_user if mine else m.from_user
        other_id = m.to_user_id if mine else m.from_user_id
        entry = by_user.get(other_id)
        if entry is None:
            entry = by_user[other_id] = {
                "other_user_id": other_id,
                "other_user_name": other.name if other else None,
                "other_user_email": other.email if other else None,
                "last_message": m.message,
                "last_message_time": iso(m.created_at),
                "unread_count": 0,
            }
        if m.to_user_id == user.id and not m.is_read:
            entry["unread_count"] += 1
    return list(by_user.values())


@router.get("")
def list_messages(conversation_with: str = Query(None), user: User = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    if conversation_with:
        other_id = to_int(conversation_with, "conversation_with")
        rows = _my_messages(user, db).filter(
            or_(
                and_(Message.from_user_id == user.id, Message.to_user_id == other_id),
                and_(Message.from_user_id == other_id, Message.to_user_id == user.id),
            )
        ).order_by(Message.created_at, Message.id).all()
        return respond([_serialize_message(m) for m in rows])

    rows = _my_messages(user, db).order_by(desc(Message.created_at), desc(Message.id)).all()
    return respond(_conversations(user, rows))


@router.get("/available-users")
def available_users(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    q = db.query(User).filter(
        User.company_id == company_id,
        User.id != user.id,
        User.is_deleted == False,
        User.status == UserStatus.ACTIVE.value,
    )
    # clients only talk to staff
    if user.role == RoleName.CLIENT.value:
        q = q.filter(User.role.in_([RoleName.ADMIN.value, RoleName.EMPLOYEE.value]))
    users = q.order_by(User.name).all()
    return respond([{"id": u.id, "name": u.name, "email": u.email, "role": u.role} for u in users])


@router.get("/{message_id}")
def get_message(message_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    message = _my_messages(user, db).filter(Message.id == message_id).first()
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.to_user_id == user.id and not message.is_read:
        message.is_read = True
        message.read_at = datetime.utcnow()
        db.commit()
        db.refresh(message)
    return respond(_serialize_message(message))


@router.post("", status_code=201)
def send_message(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["to_user_id", "message"])
    to_user_id = to_int(data["to_user_id"], "to_user_id")

    recipient = db.query(User).filter(
        User.id == to_user_id, User.company_id == company_id, User.is_deleted == False
    ).first()
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")

    message = Message(
        company_id=company_id,
        from_user_id=user.id,
        to_user_id=to_user_id,
        subject=data.get("subject") or "No Subject",
        message=data["message"],
        file_path=data.get("file_path") or None,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info("Message %s sent from %s to %s", message.id, user.id, to_user_id)
    return respond(_serialize_message(message), message="Message sent successfully")


@router.put("/{message_id}")
def update_message(message_id: int, payload=Depends(get_payload), user: User = Depends(get_current_user),
                   db: Session = Depends(get_db)):
    data = ensure_object(payload)
    if "is_read" not in data:
        raise HTTPException(status_code=400, detail="No fields to update")
    message = _my_messages(user, db).filter(Message.id == message_id, Message.to_user_id == user.id).first()
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    message.is_read = to_bool(data["is_read"])
    message.read_at = datetime.utcnow() if message.is_read else None
    db.commit()
    db.refresh(message)
    return respond(_serialize_message(message), message="Message updated successfully")


@router.delete("/{message_id}")
def delete_message(message_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    message = _my_messages(user, db).filter(Message.id == message_id).first()
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    message.is_deleted = True
    db.commit()
    return {"success": True, "message": "Message deleted successfully"}
