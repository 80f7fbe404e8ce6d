import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import Department, Employee, User
from opsdesk.api.common import get_payload, respond, ensure_object, is_blank, iso, to_text

router = APIRouter(prefix="/api/v1/departments", tags=["departments"])

logger = logging.getLogger(__name__)


def _employee_count(db: Session, department_id: int) -> int:
    return db.query(func.count(Employee.id)).filter(
        Employee.department_id == department_id, Employee.is_deleted == False
    ).scalar() or 0


def _serialize_department(d: Department, db: Session) -> dict:
    return {
        "id": d.id,
        "company_id": d.company_id,
        "company_name": d.company.name if d.company else None,
        "name": d.name,
        "total_employees": _employee_count(db, d.id),
        "created_at": iso(d.created_at),
        "updated_at": iso(d.updated_at),
    }


def _get_department_or_404(department_id: int, company_id: int, db: Session) -> Department:
    dept = db.query(Department).filter(
        Department.id == department_id, Department.company_id == company_id, Department.is_deleted == False
    ).first()
    if not dept:
        raise HTTPException(status_code=404, detail="Department not found")
    return dept


@router.get("")
def list_departments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    depts = db.query(Department).filter(
        Department.company_id == company_id, Department.is_deleted == False
    ).order_by(Department.name).all()
    return respond([_serialize_department(d, db) for d in depts])


@router.get("/{department_id}")
def get_department(department_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_department(_get_department_or_404(department_id, company_id, db), db))


@router.post("", status_code=201)
def create_department(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                      db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    if is_blank(data.get("name")):
        raise HTTPException(status_code=400, detail="Department name is required")
    dept = Department(company_id=company_id, name=to_text(data["name"], "name"))
    db.add(dept)
    db.commit()
    db.refresh(dept)
    logger.info("Department %s created in company %s", dept.id, company_id)
    return respond(_serialize_department(dept, db), message="Department created successfully")


@router.put("/{department_id}")
def update_department(department_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                      db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    dept = _get_department_or_404(department_id, company_id, db)
    if "name" in data:
        if is_blank(data["name"]):
            raise HTTPException(status_code=400, detail="Department name is required")
        dept.name = to_text(data["name"], "name")
    db.commit()
    db.refresh(dept)
    return respond(_serialize_department(dept, db), message="Department updated successfully")


@router.delete("/{department_id}")
def delete_department(department_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    dept = _get_department_or_404(department_id, company_id, db)
    dept.is_deleted = True
    db.commit()
    return {"success": True, "message": "Department deleted successfully"}
