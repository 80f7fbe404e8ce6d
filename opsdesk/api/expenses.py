import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role, is_admin
from opsdesk.core.pagination import paginate
from opsdesk.models.models import Expense, ExpenseItem, ExpenseStatus, DiscountType, User
from opsdesk.services.expense_service import build_item, calculate_totals
from opsdesk.services.numbering_service import next_expense_number
from opsdesk.api.common import get_payload, respond, ensure_object, is_blank, parse_date, to_float, to_int, to_bool, iso

router = APIRouter(prefix="/api/v1/expenses", tags=["expenses"])

logger = logging.getLogger(__name__)

DEFAULT_TERMS = "Thank you for your business."
VALID_DISCOUNT_TYPES = [d.value for d in DiscountType]


def _serialize_item(i: ExpenseItem) -> dict:
    return {
        "id": i.id,
        "expense_id": i.expense_id,
        "item_name": i.item_name,
        "description": i.description,
        "quantity": i.quantity,
        "unit": i.unit,
        "unit_price": i.unit_price,
        "tax": i.tax,
        "tax_rate": i.tax_rate,
        "file_path": i.file_path,
        "amount": i.amount,
    }


def _serialize_expense(e: Expense) -> dict:
    return {
        "id": e.id,
        "company_id": e.company_id,
        "expense_number": e.expense_number,
        "lead_id": e.lead_id,
        "deal_id": e.deal_id,
        "valid_till": iso(e.valid_till),
        "currency": e.currency,
        "calculate_tax": e.calculate_tax,
        "description": e.description,
        "note": e.note,
        "terms": e.terms,
        "discount": e.discount,
        "discount_type": e.discount_type,
        "sub_total": e.sub_total,
        "discount_amount": e.discount_amount,
        "tax_amount": e.tax_amount,
        "total": e.total,
        "require_approval": e.require_approval,
        "status": e.status,
        "created_by": e.created_by,
        "items": [_serialize_item(i) for i in e.items],
        "created_at": iso(e.created_at),
        "updated_at": iso(e.updated_at),
    }


def _get_expense_or_404(expense_id: int, company_id: int, db: Session) -> Expense:
    expense = db.query(Expense).filter(
        Expense.id == expense_id, Expense.company_id == company_id, Expense.is_deleted == False
    ).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.get("")
def list_expenses(
    status: str = Query(None),
    page: str = Query(None),
    page_size: str = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = db.query(Expense).filter(Expense.company_id == company_id, Expense.is_deleted == False)
    if status:
        q = q.filter(Expense.status == status)
    rows, meta = paginate(q.order_by(desc(Expense.created_at), desc(Expense.id)), page, page_size)
    return respond([_serialize_expense(e) for e in rows], pagination=meta)


@router.get("/{expense_id}")
def get_expense(expense_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_expense(_get_expense_or_404(expense_id, company_id, db)))


@router.post("", status_code=201)
def create_expense(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise HTTPException(status_code=400, detail="items array is required")
    for index, item in enumerate(raw_items):
        if not isinstance(item, dict) or is_blank(item.get("item_name")):
            raise HTTPException(status_code=400, detail=f"items[{index}].item_name is required")
        to_float(item.get("quantity"), f"items[{index}].quantity")
        to_float(item.get("unit_price"), f"items[{index}].unit_price")
        to_float(item.get("amount"), f"items[{index}].amount")

    discount_type = data.get("discount_type") or DiscountType.PERCENT.value
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise HTTPException(
            status_code=400, detail=f"Invalid discount_type. Must be one of: {', '.join(VALID_DISCOUNT_TYPES)}"
        )
    discount = to_float(data.get("discount"), "discount", 0)
    items = [build_item(item) for item in raw_items]
    totals = calculate_totals(items, discount, discount_type)

    try:
        expense = Expense(
            company_id=company_id,
            expense_number=next_expense_number(db, company_id),
            lead_id=to_int(data.get("lead_id"), "lead_id"),
            deal_id=to_int(data.get("deal_id"), "deal_id"),
            valid_till=parse_date(data.get("valid_till"), "valid_till"),
            currency=data.get("currency") or "USD",
            calculate_tax=data.get("calculate_tax") or "After Discount",
            description=data.get("description"),
            note=data.get("note"),
            terms=data.get("terms") or DEFAULT_TERMS,
            discount=discount,
            discount_type=discount_type,
            require_approval=to_bool(data["require_approval"]) if "require_approval" in data else True,
            status=ExpenseStatus.PENDING.value,
            created_by=user.id,
            **totals,
        )
        db.add(expense)
        db.flush()
        for item in items:
            db.add(ExpenseItem(expense_id=expense.id, **item))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(expense)
    logger.info("Expense %s (%s) created with %d items, total %s", expense.id, expense.expense_number,
                len(items), expense.total)
    return respond(_serialize_expense(expense), message="Expense created successfully")


@router.post("/{expense_id}/approve")
def approve_expense(expense_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    expense = _get_expense_or_404(expense_id, company_id, db)
    if expense.status == ExpenseStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Expense is already approved")
    expense.status = ExpenseStatus.APPROVED.value
    db.commit()
    db.refresh(expense)
    return respond(_serialize_expense(expense), message="Expense approved successfully")


@router.post("/{expense_id}/reject")
def reject_expense(expense_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                   db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    expense = _get_expense_or_404(expense_id, company_id, db)
    if expense.status == ExpenseStatus.REJECTED.value:
        raise HTTPException(status_code=400, detail="Expense is already rejected")
    expense.status = ExpenseStatus.REJECTED.value
    if not is_blank(data.get("reason")):
        expense.note = data["reason"]
    db.commit()
    db.refresh(expense)
    return respond(_serialize_expense(expense), message="Expense rejected successfully")


@router.delete("/{expense_id}")
def delete_expense(expense_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    expense = _get_expense_or_404(expense_id, company_id, db)
    if not is_admin(user) and expense.created_by != user.id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    expense.is_deleted = True
    db.commit()
    return {"success": True, "message": "Expense deleted successfully"}
