from sqlalchemy import func
from sqlalchemy.orm import Session
from opsdesk.models.models import Contract, Ticket, Expense, Employee, User


def _tenant_count(db: Session, model, company_id: int) -> int:
    return db.query(func.count(model.id)).filter(model.company_id == company_id).scalar() or 0


def next_contract_number(db: Session, company_id: int) -> str:
    """Next ``CONTRACT #<n>`` for the tenant, counting soft-deleted rows too."""
    return f"CONTRACT #{_tenant_count(db, Contract, company_id) + 1}"


def next_ticket_number(db: Session, company_id: int) -> str:
    return f"TKT-{_tenant_count(db, Ticket, company_id) + 1:03d}"


def next_expense_number(db: Session, company_id: int) -> str:
    return f"EXP#{_tenant_count(db, Expense, company_id) + 1:03d}"


def next_employee_number(db: Session, company_id: int) -> str:
    count = db.query(func.count(Employee.id)).join(User, Employee.user_id == User.id).filter(
        User.company_id == company_id
    ).scalar() or 0
    return f"EMP-{count + 1:04d}"
