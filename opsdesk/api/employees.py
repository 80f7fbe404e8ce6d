import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role, hash_password, generate_password
from opsdesk.core.pagination import paginate
from opsdesk.models.models import Employee, User, Department, Position, RoleName, UserStatus
from opsdesk.schemas.schemas import ProfileUpdate
from opsdesk.services.numbering_service import next_employee_number
from opsdesk.api.common import (
    get_payload, respond, require_fields, ensure_object, parse_model, parse_date, to_float, to_int, iso, to_text
)

router = APIRouter(prefix="/api/v1/employees", tags=["employees"])

logger = logging.getLogger(__name__)

VALID_ROLES = [r.value for r in RoleName]
VALID_STATUSES = [s.value for s in UserStatus]


def _serialize_employee(e: Employee) -> dict:
    u = e.user
    return {
        "id": e.id,
        "user_id": e.user_id,
        "company_id": u.company_id if u else None,
        "employee_number": e.employee_number,
        "department_id": e.department_id,
        "department_name": e.department.name if e.department else None,
        "position_id": e.position_id,
        "position_name": e.position.name if e.position else None,
        "role": e.role,
        "joining_date": iso(e.joining_date),
        "salary": e.salary,
        "name": u.name if u else None,
        "email": u.email if u else None,
        "phone": u.phone if u else None,
        "address": u.address if u else None,
        "user_role": u.role if u else None,
        "status": u.status if u else None,
        "created_at": iso(e.created_at),
        "updated_at": iso(e.updated_at),
    }


def _check_status(value):
    if value not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return value


def _tenant_employees(db: Session, company_id: int):
    return db.query(Employee).join(User, Employee.user_id == User.id).filter(
        User.company_id == company_id, User.is_deleted == False, Employee.is_deleted == False
    )


def _get_employee_or_404(employee_id: int, company_id: int, db: Session) -> Employee:
    employee = _tenant_employees(db, company_id).filter(Employee.id == employee_id).first()
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee


def _check_org_refs(db: Session, company_id: int, department_id, position_id):
    if department_id is not None:
        dept = db.query(Department).filter(
            Department.id == department_id, Department.company_id == company_id, Department.is_deleted == False
        ).first()
        if not dept:
            raise HTTPException(status_code=400, detail="Department not found in this company")
    if position_id is not None:
        pos = db.query(Position).filter(
            Position.id == position_id, Position.company_id == company_id, Position.is_deleted == False
        ).first()
        if not pos:
            raise HTTPException(status_code=400, detail="Position not found in this company")


@router.get("")
def list_employees(
    status: str = Query(None),
    department: str = Query(None),
    search: str = Query(None),
    page: str = Query(None),
    page_size: str = Query(None, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    company_id = get_company_id(user)
    q = _tenant_employees(db, company_id)
    if status:
        q = q.filter(User.status == status)
    if department:
        q = q.filter(Employee.department_id == to_int(department, "department"))
    if search:
        q = q.filter(
            (User.name.ilike(f"%{search}%")) |
            (User.email.ilike(f"%{search}%")) |
            (Employee.employee_number.ilike(f"%{search}%"))
        )
    rows, meta = paginate(q.order_by(desc(Employee.created_at), desc(Employee.id)), page, page_size)
    return respond([_serialize_employee(e) for e in rows], pagination=meta)


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    employee = db.query(Employee).filter(Employee.user_id == user.id, Employee.is_deleted == False).first()
    if not employee:
        raise HTTPException(status_code=404, detail="Employee profile not found")
    return respond(_serialize_employee(employee))


@router.put("/profile")
def update_profile(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    employee = db.query(Employee).filter(Employee.user_id == user.id, Employee.is_deleted == False).first()
    if not employee:
        raise HTTPException(status_code=404, detail="Employee profile not found")
    updates = parse_model(ProfileUpdate, payload).model_dump(exclude_unset=True)
    if "name" in updates and not (updates["name"] or "").strip():
        raise HTTPException(status_code=400, detail="name cannot be empty")
    for field, value in updates.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(employee)
    return respond(_serialize_employee(employee), message="Profile updated successfully")


@router.get("/{employee_id}")
def get_employee(employee_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond(_serialize_employee(_get_employee_or_404(employee_id, company_id, db)))


@router.post("", status_code=201)
def create_employee(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["name", "email", "role"])

    role = str(data["role"]).upper()
    if role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    status = _check_status(data.get("status") or UserStatus.ACTIVE.value)

    email = to_text(data["email"], "email")
    existing = db.query(User).filter(User.email == email, User.company_id == company_id).first()
    if existing:
        raise HTTPException(status_code=400, detail="User with this email already exists")

    department_id = to_int(data.get("department_id"), "department_id")
    position_id = to_int(data.get("position_id"), "position_id")
    _check_org_refs(db, company_id, department_id, position_id)
    joining_date = parse_date(data.get("joining_date"), "joining_date")
    salary = to_float(data.get("salary"), "salary")

    password = data.get("password") or generate_password()
    try:
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
        db.flush()

        employee = Employee(
            user_id=new_user.id,
            employee_number=data.get("employee_number") or next_employee_number(db, company_id),
            department_id=department_id,
            position_id=position_id,
            role=role,
            joining_date=joining_date,
            salary=salary,
        )
        db.add(employee)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(employee)
    logger.info("Employee %s (user %s) created in company %s", employee.id, new_user.id, company_id)

    result = _serialize_employee(employee)
    if not data.get("password"):
        result["generated_password"] = password
    return respond(result, message="Employee created successfully")


@router.put("/{employee_id}")
def update_employee(employee_id: int, payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    employee = _get_employee_or_404(employee_id, company_id, db)
    target = employee.user

    if "email" in data:
        email = to_text(data["email"], "email")
        if not email:
            raise HTTPException(status_code=400, detail="email cannot be empty")
        clash = db.query(User).filter(
            User.email == email, User.company_id == company_id, User.id != target.id
        ).first()
        if clash:
            raise HTTPException(status_code=400, detail="User with this email already exists")
        target.email = email
    if "name" in data:
        name = to_text(data["name"], "name")
        if not name:
            raise HTTPException(status_code=400, detail="name cannot be empty")
        target.name = name
    if "status" in data:
        target.status = _check_status(data["status"])
    for f in ["phone", "address"]:
        if f in data:
            setattr(target, f, data[f])
    if "role" in data:
        role = str(data["role"] or "").upper()
        if role not in VALID_ROLES:
            raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
        target.role = role
        employee.role = role

    if "department_id" in data or "position_id" in data:
        department_id = to_int(data.get("department_id", employee.department_id), "department_id")
        position_id = to_int(data.get("position_id", employee.position_id), "position_id")
        _check_org_refs(db, company_id, department_id, position_id)
        employee.department_id = department_id
        employee.position_id = position_id
    if "employee_number" in data:
        employee.employee_number = data["employee_number"]
    if "joining_date" in data:
        employee.joining_date = parse_date(data["joining_date"], "joining_date")
    if "salary" in data:
        employee.salary = to_float(data["salary"], "salary")

    db.commit()
    db.refresh(employee)
    return respond(_serialize_employee(employee), message="Employee updated successfully")


@router.delete("/{employee_id}")
def delete_employee(employee_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    employee = _get_employee_or_404(employee_id, company_id, db)
    if employee.user_id == user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own employee record")
    employee.is_deleted = True
    employee.user.is_deleted = True
    db.commit()
    logger.info("Employee %s soft-deleted by %s", employee_id, user.id)
    return {"success": True, "message": "Employee deleted successfully"}
