import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, func
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_company_id, require_role, hash_password
from opsdesk.models.models import Client, Order, Subscription, User, RoleName, UserStatus
from opsdesk.api.common import get_payload, respond, ensure_object, is_blank, iso, to_text

router = APIRouter(prefix="/api/v1/clients", tags=["clients"])

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in UserStatus]
UPDATABLE_FIELDS = ["client_name", "company_name", "phone", "address", "website", "status"]


def _count(db: Session, model, client_id: int) -> int:
    return db.query(func.count(model.id)).filter(model.client_id == client_id, model.is_deleted == False).scalar() or 0


def _serialize_client(c: Client, db: Session) -> dict:
    owner = c.owner
    return {
        "id": c.id,
        "company_id": c.company_id,
        "owner_id": c.owner_id,
        "company_name": c.company_name,
        "client_name": owner.name if owner else c.company_name,
        "email": owner.email if owner else c.email,
        "phone": c.phone,
        "address": c.address,
        "website": c.website,
        "status": c.status,
        "total_orders": _count(db, Order, c.id),
        "total_subscriptions": _count(db, Subscription, c.id),
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def _check_status(value):
    if value not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return value


def _get_client_or_404(client_id: int, company_id: int, db: Session) -> Client:
    client = db.query(Client).filter(
        Client.id == client_id, Client.company_id == company_id, Client.is_deleted == False
    ).first()
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("")
def list_clients(
    status: str = Query(None),
    search: str = Query(None),
    user: User = Depends(require_role(["ADMIN", "EMPLOYEE"])),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = db.query(Client).filter(Client.company_id == company_id, Client.is_deleted == False)
    if status:
        q = q.filter(Client.status == status)
    if search:
        q = q.filter((Client.company_name.ilike(f"%{search}%")) | (Client.phone.ilike(f"%{search}%")))
    clients = q.order_by(desc(Client.created_at), desc(Client.id)).all()
    return respond([_serialize_client(c, db) for c in clients])


@router.get("/{client_id}")
def get_client(client_id: int, user: User = Depends(require_role(["ADMIN", "EMPLOYEE"])),
               db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_client(_get_client_or_404(client_id, company_id, db), db))


@router.post("", status_code=201)
def create_client(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                  db: Session = Depends(get_db)):
    """Create a client together with the CLIENT user that owns it."""
    company_id = get_company_id(user)
    data = ensure_object(payload)
    name = to_text(data.get("client_name") or data.get("company_name"), "client_name")
    email = to_text(data.get("email"), "email")
    password = data.get("password")
    if not name or not email or is_blank(password):
        raise HTTPException(status_code=400, detail="client_name, email, and password are required")
    status = _check_status(data.get("status") or UserStatus.ACTIVE.value)

    existing = db.query(User).filter(User.email == email, User.company_id == company_id).first()
    if existing:
        raise HTTPException(status_code=400, detail="User with this email already exists")

    try:
        owner = User(
            company_id=company_id,
            name=name,
            email=email,
            password=hash_password(str(password)),
            role=RoleName.CLIENT.value,
            status=status,
            phone=data.get("phone"),
        )
        db.add(owner)
        db.flush()

        client = Client(
            company_id=company_id,
            owner_id=owner.id,
            company_name=name,
            email=email,
            phone=data.get("phone"),
            address=data.get("address"),
            website=data.get("website"),
            status=status,
        )
        db.add(client)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(client)
    logger.info("Client %s (owner user %s) created in company %s", client.id, owner.id, company_id)
    return respond(_serialize_client(client, db), message="Client created successfully")


@router.put("/{client_id}")
def update_client(client_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                  db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    client = _get_client_or_404(client_id, company_id, db)
    if not any(f in data for f in UPDATABLE_FIELDS):
        raise HTTPException(status_code=400, detail="No valid fields to update")

    for key in ["client_name", "company_name"]:
        if key in data:
            name = to_text(data[key], key)
            if not name:
                raise HTTPException(status_code=400, detail="client_name cannot be empty")
            client.company_name = name
    for f in ["phone", "address", "website"]:
        if f in data:
            setattr(client, f, data[f] or None)
    if "status" in data:
        client.status = _check_status(data["status"])

    db.commit()
    db.refresh(client)
    return respond(_serialize_client(client, db), message="Client updated successfully")


@router.delete("/{client_id}")
def delete_client(client_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    client = _get_client_or_404(client_id, company_id, db)
    client.is_deleted = True
    db.commit()
    logger.info("Client %s soft-deleted by %s", client_id, user.id)
    return {"success": True, "message": "Client deleted successfully"}
