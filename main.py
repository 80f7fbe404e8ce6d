import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opsdesk.core.config import CORS_ORIGINS, SEED_DEMO_DATA, UPLOAD_DIR
from opsdesk.core.errors import register_exception_handlers
from opsdesk.core.logging import setup_logging, RequestLoggingMiddleware, NoCacheMiddleware
from opsdesk.db.session import engine, SessionLocal
from opsdesk.models.base import Base
from opsdesk.models.models import Company, User, Employee, SystemSetting, JobCard, RoleName
from opsdesk.api import (
    auth, users, employees, departments, positions, clients, attendance, documents, contracts,
    expenses, messages, orders, subscriptions, settings, testing_records, tickets,
    time_tracking, events, custom_fields
)

logger = logging.getLogger("opsdesk")

app = FastAPI(title="OpsDesk", version="1.0.0")

app.add_middleware(NoCacheMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(employees.router)
app.include_router(departments.router)
app.include_router(positions.router)
app.include_router(clients.router)
app.include_router(attendance.router)
app.include_router(documents.router)
app.include_router(contracts.router)
app.include_router(expenses.router)
app.include_router(messages.router)
app.include_router(orders.router)
app.include_router(subscriptions.router)
app.include_router(settings.router)
app.include_router(testing_records.router)
app.include_router(tickets.router)
app.include_router(time_tracking.router)
app.include_router(events.router)
app.include_router(custom_fields.router)


@app.on_event("startup")
def startup():
    import os
    setup_logging()
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    Base.metadata.create_all(bind=engine)
    if SEED_DEMO_DATA:
        _seed_defaults()


GLOBAL_DEFAULTS = {
    "general_currency": "USD",
    "general_date_format": "DD MMM YYYY",
    "general_timezone": "UTC",
    "invoice_terms": "Thank you for your business.",
}


def _seed_defaults():
    from opsdesk.core.auth import hash_password
    db = SessionLocal()
    try:
        for key, value in GLOBAL_DEFAULTS.items():
            exists = db.query(SystemSetting).filter(
                SystemSetting.company_id.is_(None), SystemSetting.setting_key == key
            ).first()
            if not exists:
                db.add(SystemSetting(company_id=None, setting_key=key, setting_value=value))

        if db.query(User).count() == 0:
            company = Company(name="Demo Company", email="info@demo.opsdesk.local")
            db.add(company)
            db.flush()

            admin = User(
                company_id=company.id,
                name="Admin User",
                email="admin@demo.opsdesk.local",
                password=hash_password("admin123"),
                role=RoleName.ADMIN.value,
            )
            tech = User(
                company_id=company.id,
                name="Demo Technician",
                email="tech@demo.opsdesk.local",
                password=hash_password("tech123"),
                role=RoleName.EMPLOYEE.value,
            )
            db.add_all([admin, tech])
            db.flush()

            db.add(Employee(user_id=admin.id, employee_number="EMP-0001", role=RoleName.ADMIN.value))
            db.add(Employee(user_id=tech.id, employee_number="EMP-0002", role=RoleName.EMPLOYEE.value))
            db.add(JobCard(
                company_id=company.id,
                job_no="JC-0001",
                customer_name="Demo Customer",
                brand="Bosch",
                job_type="Injector Service",
                technician_id=tech.id,
            ))
            logger.info("Seeded demo company %s with admin %s", company.id, admin.email)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Seeding default data failed")
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
