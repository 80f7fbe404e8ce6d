import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role, hash_password, generate_password
from opsdesk.core.pagination import paginate
from opsdesk.models.models import User, RoleName, UserStatus
from opsdesk.schemas.schemas import ResetPasswordRequest
from opsdesk.api.common import get_payload, respond, require_fields, ensure_object, parse_model, iso, to_text

router = APIRouter(prefix="/api/v1/users", tags=["users"])

logger = logging.getLogger(__name__)

VALID_ROLES = [r.value for r in RoleName]
VALID_STATUSES = [s.value for s in UserStatus]


def _serialize_user(u: User) -> dict:
    return {
        "id": u.id,
        "company_id": u.company_id,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "status": u.status,
        "phone": u.phone,
        "address": u.address,
        "avatar": u.avatar,
        "created_at": iso(u.created_at),
        "updated_at": iso(u.updated_at),
    }


@router.get("")
def list_users(
    role: str = Query(None),
    status: str = Query(None),
    search: str = Query(None),
    page: str = Query(None),
    page_size: str = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = db.query(User).filter(User.company_id == company_id, User.is_deleted == False)
    if role:
        q = q.filter(User.role == role.upper())
    if status:
        q = q.filter(User.status == status)
    if search:
        q = q.filter((User.name.ilike(f"%{search}%")) | (User.email.ilike(f"%{search}%")))
    rows, meta = paginate(q.order_by(desc(User.created_at), desc(User.id)), page, page_size)
    return respond([_serialize_user(u) for u in rows], pagination=meta)


@router.post("", status_code=201)
def create_user(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["name", "email", "role"])

    role = str(data["role"]).upper()
    if role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    status = data.get("status") or UserStatus.ACTIVE.value
    if status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")

    email = to_text(data["email"], "email")
    existing = db.query(User).filter(User.email == email, User.company_id == company_id).first()
    if existing:
        raise HTTPException(status_code=400, detail="User with this email already exists")

    password = data.get("password") or generate_password()
    new_user = User(
        company_id=company_id,
        name=to_text(data["name"], "name"),
        email=email,
        password=hash_password(password),
        role=role,
        status=status,
        phone=data.get("phone"),
        address=data.get("address"),
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    logger.info("User %s created in company %s by %s", new_user.id, company_id, user.id)

    result = _serialize_user(new_user)
    if not data.get("password"):
        result["generated_password"] = password
    return respond(result, message="User created successfully")


@router.post("/{user_id}/reset-password")
def reset_password(user_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                   db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    body = parse_model(ResetPasswordRequest, payload)
    target = db.query(User).filter(
        User.id == user_id, User.company_id == company_id, User.is_deleted == False
    ).first()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    new_password = body.new_password or generate_password()
    target.password = hash_password(new_password)
    db.commit()
    logger.info("Password reset for user %s by %s", target.id, user.id)

    data = {"id": target.id}
    if not body.new_password:
        data["new_password"] = new_password
    return respond(data, message="Password reset successfully")
