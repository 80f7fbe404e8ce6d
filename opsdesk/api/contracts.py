import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import Contract, ContractStatus, User
from opsdesk.services.client_service import find_client
from opsdesk.services.numbering_service import next_contract_number
from opsdesk.api.common import (
    get_payload, respond, ensure_object, require_fields, is_blank, parse_date, to_float, to_int, iso, to_text
)

router = APIRouter(prefix="/api/v1/contracts", tags=["contracts"])

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in ContractStatus]
_TEXT_FIELDS = ["tax", "second_tax", "note", "file_path"]


def _serialize_contract(c: Contract) -> dict:
    return {
        "id": c.id,
        "company_id": c.company_id,
        "contract_number": c.contract_number,
        "title": c.title,
        "contract_date": iso(c.contract_date),
        "valid_until": iso(c.valid_until),
        "client_id": c.client_id,
        "client_name": c.client.company_name if c.client else None,
        "project_id": c.project_id,
        "lead_id": c.lead_id,
        "tax": c.tax,
        "second_tax": c.second_tax,
        "note": c.note,
        "file_path": c.file_path,
        "amount": c.amount,
        "status": c.status,
        "created_by": c.created_by,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def _get_contract_or_404(contract_id: int, company_id: int, db: Session) -> Contract:
    contract = db.query(Contract).filter(
        Contract.id == contract_id, Contract.company_id == company_id, Contract.is_deleted == False
    ).first()
    if not contract:
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract


def _validate_status(status):
    if status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return status


def _resolve_client(value, company_id: int, db: Session):
    client_id = to_int(value, "client_id")
    if client_id is None:
        return None
    if not find_client(db, company_id, client_id):
        raise HTTPException(status_code=400, detail="Client not found in this company")
    return client_id


@router.get("")
def list_contracts(status: str = Query(None), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    q = db.query(Contract).filter(Contract.company_id == company_id, Contract.is_deleted == False)
    if status:
        q = q.filter(Contract.status == status)
    contracts = q.order_by(desc(Contract.created_at), desc(Contract.id)).all()
    return respond([_serialize_contract(c) for c in contracts])


@router.get("/{contract_id}")
def get_contract(contract_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_contract(_get_contract_or_404(contract_id, company_id, db)))


@router.post("", status_code=201)
def create_contract(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["title", "contract_date", "valid_until"])

    contract_date = parse_date(data["contract_date"], "contract_date")
    valid_until = parse_date(data["valid_until"], "valid_until")
    if valid_until < contract_date:
        raise HTTPException(status_code=400, detail="valid_until cannot be before contract_date")

    contract = Contract(
        company_id=company_id,
        contract_number=next_contract_number(db, company_id),
        title=to_text(data["title"], "title"),
        contract_date=contract_date,
        valid_until=valid_until,
        client_id=_resolve_client(data.get("client_id"), company_id, db),
        project_id=to_int(data.get("project_id"), "project_id"),
        lead_id=to_int(data.get("lead_id"), "lead_id"),
        amount=to_float(data.get("amount"), "amount", 0),
        status=_validate_status(data.get("status") or ContractStatus.DRAFT.value),
        created_by=user.id,
        **{f: data.get(f) or None for f in _TEXT_FIELDS},
    )
    db.add(contract)
    db.commit()
    db.refresh(contract)
    logger.info("Contract %s (%s) created in company %s", contract.id, contract.contract_number, company_id)
    return respond(_serialize_contract(contract), message="Contract created successfully")


@router.put("/{contract_id}/status")
def update_contract_status(contract_id: int, payload=Depends(get_payload),
                           user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["status"])
    status = _validate_status(data["status"])
    contract = _get_contract_or_404(contract_id, company_id, db)
    contract.status = status
    db.commit()
    db.refresh(contract)
    return respond(_serialize_contract(contract), message="Contract status updated successfully")


@router.put("/{contract_id}")
def update_contract(contract_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    contract = _get_contract_or_404(contract_id, company_id, db)

    if "title" in data:
        if is_blank(data["title"]):
            raise HTTPException(status_code=400, detail="title cannot be empty")
        contract.title = to_text(data["title"], "title")
    for field in ["contract_date", "valid_until"]:
        if field in data:
            value = parse_date(data[field], field)
            if value is None:
                raise HTTPException(status_code=400, detail=f"{field} cannot be empty")
            setattr(contract, field, value)
    if contract.valid_until < contract.contract_date:
        raise HTTPException(status_code=400, detail="valid_until cannot be before contract_date")
    if "client_id" in data:
        contract.client_id = _resolve_client(data["client_id"], company_id, db)
    for field in ["project_id", "lead_id"]:
        if field in data:
            setattr(contract, field, to_int(data[field], field))
    if "amount" in data:
        contract.amount = to_float(data["amount"], "amount", 0)
    if "status" in data:
        contract.status = _validate_status(data["status"])
    for field in _TEXT_FIELDS:
        if field in data:
            setattr(contract, field, data[field] or None)

    db.commit()
    db.refresh(contract)
    return respond(_serialize_contract(contract), message="Contract updated successfully")


@router.delete("/{contract_id}")
def delete_contract(contract_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    contract = _get_contract_or_404(contract_id, company_id, db)
    contract.is_deleted = True
    db.commit()
    return {"success": True, "message": "Contract deleted successfully"}
