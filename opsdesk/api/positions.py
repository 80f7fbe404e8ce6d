from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import Position, Department, Employee, User
from opsdesk.api.common import get_payload, respond, ensure_object, is_blank, to_int, iso, to_text

router = APIRouter(prefix="/api/v1/positions", tags=["positions"])


def _serialize_position(p: Position, db: Session) -> dict:
    total = db.query(func.count(Employee.id)).filter(
        Employee.position_id == p.id, Employee.is_deleted == False
    ).scalar() or 0
    return {
        "id": p.id,
        "company_id": p.company_id,
        "company_name": p.company.name if p.company else None,
        "department_id": p.department_id,
        "department_name": p.department.name if p.department else None,
        "name": p.name,
        "description": p.description,
        "total_employees": total,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def _get_position_or_404(position_id: int, company_id: int, db: Session) -> Position:
    pos = db.query(Position).filter(
        Position.id == position_id, Position.company_id == company_id, Position.is_deleted == False
    ).first()
    if not pos:
        raise HTTPException(status_code=404, detail="Position not found")
    return pos


def _resolve_department(value, company_id: int, db: Session):
    department_id = to_int(value, "department_id")
    if department_id is None:
        return None
    dept = db.query(Department).filter(
        Department.id == department_id, Department.company_id == company_id, Department.is_deleted == False
    ).first()
    if not dept:
        raise HTTPException(status_code=400, detail="Department not found in this company")
    return department_id


@router.get("")
def list_positions(department_id: str = Query(None), user: User = Depends(get_current_user),
                   db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    q = db.query(Position).filter(Position.company_id == company_id, Position.is_deleted == False)
    if department_id:
        q = q.filter(Position.department_id == to_int(department_id, "department_id"))
    return respond([_serialize_position(p, db) for p in q.order_by(Position.name).all()])


@router.get("/{position_id}")
def get_position(position_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_position(_get_position_or_404(position_id, company_id, db), db))


@router.post("", status_code=201)
def create_position(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    if is_blank(data.get("name")):
        raise HTTPException(status_code=400, detail="Position name is required")
    pos = Position(
        company_id=company_id,
        department_id=_resolve_department(data.get("department_id"), company_id, db),
        name=to_text(data["name"], "name"),
        description=data.get("description"),
    )
    db.add(pos)
    db.commit()
    db.refresh(pos)
    return respond(_serialize_position(pos, db), message="Position created successfully")


@router.put("/{position_id}")
def update_position(position_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    pos = _get_position_or_404(position_id, company_id, db)
    if "name" in data:
        if is_blank(data["name"]):
            raise HTTPException(status_code=400, detail="Position name is required")
        pos.name = to_text(data["name"], "name")
    if "department_id" in data:
        pos.department_id = _resolve_department(data["department_id"], company_id, db)
    if "description" in data:
        pos.description = data["description"]
    db.commit()
    db.refresh(pos)
    return respond(_serialize_position(pos, db), message="Position updated successfully")


@router.delete("/{position_id}")
def delete_position(position_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    pos = _get_position_or_404(position_id, company_id, db)
    pos.is_deleted = True
    db.commit()
    return {"success": True, "message": "Position deleted successfully"}
