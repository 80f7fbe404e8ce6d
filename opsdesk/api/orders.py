import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import Order, OrderStatus, RoleName, User
from opsdesk.services.client_service import resolve_client, find_client_by_owner
from opsdesk.api.common import (
    get_payload, respond, ensure_object, require_fields, is_blank, to_float, to_int, iso, to_text
)

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in OrderStatus]


def _serialize_order(o: Order) -> dict:
    return {
        "id": o.id,
        "company_id": o.company_id,
        "client_id": o.client_id,
        "client_name": o.client.company_name if o.client else None,
        "invoice_id": o.invoice_id,
        "title": o.title,
        "description": o.description,
        "amount": o.amount,
        "status": o.status,
        "order_date": iso(o.order_date),
        "created_at": iso(o.created_at),
        "updated_at": iso(o.updated_at),
    }


def _validate_status(status):
    if status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return status


def _visible_orders(user: User, db: Session):
    company_id = get_company_id(user)
    q = db.query(Order).filter(Order.company_id == company_id, Order.is_deleted == False)
    if user.role == RoleName.CLIENT.value:
        client = find_client_by_owner(db, company_id, user.id)
        q = q.filter(Order.client_id == (client.id if client else None))
    return q


def _get_order_or_404(order_id: int, user: User, db: Session) -> Order:
    order = _visible_orders(user, db).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("")
def list_orders(
    status: str = Query(None),
    client_id: str = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = _visible_orders(user, db)
    if client_id:
        client = resolve_client(db, company_id, to_int(client_id, "client_id"))
        if not client:
            return respond([])
        q = q.filter(Order.client_id == client.id)
    if status:
        q = q.filter(Order.status == status)
    orders = q.order_by(desc(Order.created_at), desc(Order.id)).all()
    return respond([_serialize_order(o) for o in orders])


@router.get("/{order_id}")
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return respond(_serialize_order(_get_order_or_404(order_id, user, db)))


@router.post("", status_code=201)
def create_order(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    if is_blank(data.get("title")):
        raise HTTPException(status_code=400, detail="Title is required")

    if user.role == RoleName.CLIENT.value:
        client = find_client_by_owner(db, company_id, user.id)
    else:
        raw_client = to_int(data.get("client_id"), "client_id")
        client = resolve_client(db, company_id, raw_client) if raw_client is not None else None
        if raw_client is not None and client is None:
            raise HTTPException(status_code=400, detail="Client not found in this company")

    order = Order(
        company_id=company_id,
        client_id=client.id if client else None,
        invoice_id=to_int(data.get("invoice_id"), "invoice_id"),
        title=to_text(data["title"], "title"),
        description=data.get("description") or None,
        amount=to_float(data.get("amount"), "amount", 0),
        status=_validate_status(data.get("status") or OrderStatus.NEW.value),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Order %s created in company %s by %s", order.id, company_id, user.id)
    return respond(_serialize_order(order), message="Order created successfully")


@router.put("/{order_id}")
def update_order(order_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                 db: Session = Depends(get_db)):
    data = ensure_object(payload)
    order = _get_order_or_404(order_id, user, db)
    allowed = ["title", "description", "amount", "invoice_id", "status"]
    if not any(f in data for f in allowed):
        raise HTTPException(status_code=400, detail="No valid fields to update")

    if "title" in data:
        if is_blank(data["title"]):
            raise HTTPException(status_code=400, detail="Title is required")
        order.title = to_text(data["title"], "title")
    if "description" in data:
        order.description = data["description"] or None
    if "amount" in data:
        order.amount = to_float(data["amount"], "amount", 0)
    if "invoice_id" in data:
        order.invoice_id = to_int(data["invoice_id"], "invoice_id")
    if "status" in data:
        order.status = _validate_status(data["status"])

    db.commit()
    db.refresh(order)
    return respond(_serialize_order(order), message="Order updated successfully")


@router.patch("/{order_id}/status")
def update_order_status(order_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                        db: Session = Depends(get_db)):
    data = ensure_object(payload)
    require_fields(data, ["status"])
    status = _validate_status(data["status"])
    order = _get_order_or_404(order_id, user, db)
    order.status = status
    db.commit()
    db.refresh(order)
    return respond(_serialize_order(order), message="Order status updated successfully")


@router.delete("/{order_id}")
def delete_order(order_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    order = _get_order_or_404(order_id, user, db)
    order.is_deleted = True
    db.commit()
    return {"success": True, "message": "Order deleted successfully"}
