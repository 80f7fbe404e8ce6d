"""
Shared fixtures: an in-memory SQLite database rebuilt for every test, a
TestClient bound to the app, and two seeded tenants with one user per role.
"""

import os
import tempfile
from types import SimpleNamespace

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="opsdesk_test_")
os.environ["SEED_DEMO_DATA"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from main import app
from opsdesk.core.auth import hash_password, create_access_token
from opsdesk.db.session import engine, SessionLocal
from opsdesk.models.base import Base
from opsdesk.models.models import Company, User, Employee, Department, Client, JobCard

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def _auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def _user(db, company, name, email, role, **extra):
    user = User(company_id=company.id, name=name, email=email, password=PASSWORD_HASH, role=role, **extra)
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def tenants():
    """Two companies. Company A has an admin, an employee, a client user, a
    department, a client record owned by the client user and a job card
    assigned to the employee. Company B has only an admin."""
    db = SessionLocal()
    try:
        company_a = Company(name="Acme Services")
        company_b = Company(name="Other Co")
        db.add_all([company_a, company_b])
        db.flush()

        admin = _user(db, company_a, "Alice Admin", "admin@acme.test", "ADMIN")
        employee = _user(db, company_a, "Eve Employee", "eve@acme.test", "EMPLOYEE")
        client_user = _user(db, company_a, "Carl Client", "carl@acme.test", "CLIENT")
        other_admin = _user(db, company_b, "Bob Admin", "admin@other.test", "ADMIN")

        department = Department(company_id=company_a.id, name="Workshop")
        db.add(department)
        db.flush()

        db.add(Employee(user_id=admin.id, employee_number="EMP-0001", role="ADMIN"))
        db.add(Employee(user_id=employee.id, employee_number="EMP-0002", role="EMPLOYEE",
                        department_id=department.id))

        client_record = Client(company_id=company_a.id, owner_id=client_user.id, company_name="Carl's Garage")
        db.add(client_record)
        db.flush()

        job_card = JobCard(company_id=company_a.id, job_no="JC-100", customer_name="Carl's Garage",
                           brand="Bosch", job_type="Injector Service", technician_id=employee.id)
        db.add(job_card)
        db.commit()

        return SimpleNamespace(
            company_a=company_a.id,
            company_b=company_b.id,
            admin_id=admin.id,
            employee_id=employee.id,
            client_user_id=client_user.id,
            other_admin_id=other_admin.id,
            department_id=department.id,
            client_id=client_record.id,
            job_card_id=job_card.id,
            admin=_auth(admin),
            employee=_auth(employee),
            client=_auth(client_user),
            other_admin=_auth(other_admin),
        )
    finally:
        db.close()
