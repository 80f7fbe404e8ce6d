import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.core.pagination import paginate
from opsdesk.models.models import Subscription, SubscriptionStatus, BillingCycle, User
from opsdesk.services.billing_service import next_billing_date
from opsdesk.services.client_service import find_client
from opsdesk.api.common import (
    get_payload, respond, ensure_object, require_fields, is_blank, parse_date, to_float, to_int, iso, to_text
)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in SubscriptionStatus]
VALID_CYCLES = [c.value for c in BillingCycle]


def _serialize_subscription(s: Subscription) -> dict:
    return {
        "id": s.id,
        "company_id": s.company_id,
        "client_id": s.client_id,
        "client_name": s.client.company_name if s.client else None,
        "plan": s.plan,
        "amount": s.amount,
        "billing_cycle": s.billing_cycle,
        "status": s.status,
        "next_billing_date": iso(s.next_billing_date),
        "created_at": iso(s.created_at),
        "updated_at": iso(s.updated_at),
    }


def _get_subscription_or_404(subscription_id: int, company_id: int, db: Session) -> Subscription:
    sub = db.query(Subscription).filter(
        Subscription.id == subscription_id, Subscription.company_id == company_id, Subscription.is_deleted == False
    ).first()
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return sub


def _validate_cycle(cycle):
    if cycle not in VALID_CYCLES:
        raise HTTPException(status_code=400, detail=f"Invalid billing_cycle. Must be one of: {', '.join(VALID_CYCLES)}")
    return cycle


def _positive_amount(value):
    amount = to_float(value, "amount")
    if amount is None or amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be greater than 0")
    return amount


@router.get("")
def list_subscriptions(
    status: str = Query(None),
    page: str = Query(None),
    page_size: str = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = db.query(Subscription).filter(Subscription.company_id == company_id, Subscription.is_deleted == False)
    if status:
        q = q.filter(Subscription.status == status)
    rows, meta = paginate(q.order_by(desc(Subscription.created_at), desc(Subscription.id)), page, page_size)
    return respond([_serialize_subscription(s) for s in rows], pagination=meta)


@router.get("/{subscription_id}")
def get_subscription(subscription_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_subscription(_get_subscription_or_404(subscription_id, company_id, db)))


@router.post("", status_code=201)
def create_subscription(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                        db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["client_id", "plan", "amount", "billing_cycle"])

    client_id = to_int(data["client_id"], "client_id")
    if not find_client(db, company_id, client_id):
        raise HTTPException(status_code=400, detail="Client not found in this company")
    cycle = _validate_cycle(data["billing_cycle"])
    billing_date = parse_date(data.get("next_billing_date"), "next_billing_date") or next_billing_date(cycle)

    sub = Subscription(
        company_id=company_id,
        client_id=client_id,
        plan=to_text(data["plan"], "plan"),
        amount=_positive_amount(data["amount"]),
        billing_cycle=cycle,
        status=SubscriptionStatus.ACTIVE.value,
        next_billing_date=billing_date,
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    logger.info("Subscription %s created for client %s, next billing %s", sub.id, client_id, billing_date)
    return respond(_serialize_subscription(sub), message="Subscription created successfully")


@router.put("/{subscription_id}/cancel")
def cancel_subscription(subscription_id: int, user: User = Depends(require_role(["ADMIN"])),
                        db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    sub = _get_subscription_or_404(subscription_id, company_id, db)
    if sub.status == SubscriptionStatus.CANCELLED.value:
        raise HTTPException(status_code=400, detail="Subscription is already cancelled")
    sub.status = SubscriptionStatus.CANCELLED.value
    db.commit()
    db.refresh(sub)
    return respond(_serialize_subscription(sub), message="Subscription cancelled successfully")


@router.put("/{subscription_id}")
def update_subscription(subscription_id: int, payload=Depends(get_payload),
                        user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    sub = _get_subscription_or_404(subscription_id, company_id, db)
    allowed = ["plan", "amount", "billing_cycle", "status", "next_billing_date"]
    if not any(f in data for f in allowed):
        raise HTTPException(status_code=400, detail="No valid fields to update")

    if "plan" in data:
        if is_blank(data["plan"]):
            raise HTTPException(status_code=400, detail="plan cannot be empty")
        sub.plan = to_text(data["plan"], "plan")
    if "amount" in data:
        sub.amount = _positive_amount(data["amount"])
    if "billing_cycle" in data:
        sub.billing_cycle = _validate_cycle(data["billing_cycle"])
    if "status" in data:
        if data["status"] not in VALID_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
        sub.status = data["status"]
    if "next_billing_date" in data:
        sub.next_billing_date = parse_date(data["next_billing_date"], "next_billing_date")

    db.commit()
    db.refresh(sub)
    return respond(_serialize_subscription(sub), message="Subscription updated successfully")


@router.delete("/{subscription_id}")
def delete_subscription(subscription_id: int, user: User = Depends(require_role(["ADMIN"])),
                        db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    sub = _get_subscription_or_404(subscription_id, company_id, db)
    sub.is_deleted = True
    db.commit()
    return {"success": True, "message": "Subscription deleted successfully"}
