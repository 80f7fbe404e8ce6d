import json
import logging
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import TestingRecord, JobCard, PassFail, RoleName, User
from opsdesk.schemas.schemas import TestingRecordCreate, TestingRecordUpdate
from opsdesk.api.common import get_payload, respond, ensure_object, parse_model, parse_date, iso

router = APIRouter(prefix="/api/v1/testing-records", tags=["testing-records"])

logger = logging.getLogger(__name__)

NESTED_KEYS = ("beforeRepair", "afterRepair", "injectorParams", "before_repair", "after_repair", "injector_params")
PASS_FAIL = [p.value for p in PassFail]

# nested schema field -> column, per section
_READING_COLUMNS = {"pressure": "pressure", "leak": "leak", "calibration": "calibration", "pass_fail": "pass_fail"}
_INJECTOR_COLUMNS = {
    "pilot_injection": "pilot_injection",
    "main_injection": "main_injection",
    "return_flow": "return_flow",
    "pressure": "injector_pressure",
    "leak_test": "leak_test",
}


def _serialize_record(tr: TestingRecord) -> dict:
    jc = tr.job_card
    return {
        "id": tr.id,
        "jobCardId": tr.job_card_id,
        "jobCardNumber": jc.job_no if jc else None,
        "customerName": jc.customer_name if jc else None,
        "jobType": jc.job_type if jc else None,
        "brand": jc.brand if jc else None,
        "technicianName": jc.technician.name if jc and jc.technician else None,
        "beforeRepair": {
            "pressure": tr.before_pressure,
            "leak": tr.before_leak,
            "calibration": tr.before_calibration,
            "passFail": tr.before_pass_fail,
        },
        "afterRepair": {
            "pressure": tr.after_pressure,
            "leak": tr.after_leak,
            "calibration": tr.after_calibration,
            "passFail": tr.after_pass_fail,
        },
        "injectorParams": {
            "pilotInjection": tr.pilot_injection,
            "mainInjection": tr.main_injection,
            "returnFlow": tr.return_flow,
            "pressure": tr.injector_pressure,
            "leakTest": tr.leak_test,
        },
        "testDate": iso(tr.test_date),
        "createdAt": iso(tr.created_at),
        "updatedAt": iso(tr.updated_at),
    }


def _decode_nested(data: dict) -> dict:
    """Form submissions carry the nested sections as JSON strings."""
    data = dict(data)
    for key in NESTED_KEYS:
        if isinstance(data.get(key), str):
            try:
                data[key] = json.loads(data[key]) if data[key].strip() else None
            except ValueError:
                raise HTTPException(status_code=400, detail=f"{key} must be valid JSON")
    return data


def _check_pass_fail(value, field: str):
    if value is not None and value not in PASS_FAIL:
        raise HTTPException(status_code=400, detail=f"{field} must be one of: {', '.join(PASS_FAIL)}")
    return value


def _record_query(user: User, db: Session):
    return db.query(TestingRecord).join(JobCard, TestingRecord.job_card_id == JobCard.id).filter(
        JobCard.company_id == get_company_id(user), JobCard.is_deleted == False
    )


def _get_record_or_404(record_id: int, user: User, db: Session) -> TestingRecord:
    record = _record_query(user, db).filter(TestingRecord.id == record_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Testing record not found")
    return record


def _check_ownership(user: User, job_card: JobCard, action: str):
    if user.role == RoleName.EMPLOYEE.value and job_card.technician_id != user.id:
        raise HTTPException(
            status_code=403, detail=f"You can only {action} testing records for your assigned job cards"
        )


def _apply_sections(record: TestingRecord, body, fill_defaults: bool) -> int:
    """Copy supplied nested values onto the record; returns how many columns changed."""
    changed = 0
    sections = [
        ("before_", body.before_repair, _READING_COLUMNS),
        ("after_", body.after_repair, _READING_COLUMNS),
        ("", body.injector_params, _INJECTOR_COLUMNS),
    ]
    for prefix, section, columns in sections:
        values = section.model_dump(exclude_unset=True) if section is not None else {}
        for field, column in columns.items():
            if field in values:
                value = values[field]
                if field in ("pass_fail", "leak_test"):
                    value = _check_pass_fail(value, f"{prefix}{column}")
                setattr(record, f"{prefix}{column}", value)
                changed += 1
            elif fill_defaults and field in ("pass_fail", "leak_test"):
                setattr(record, f"{prefix}{column}", PassFail.FAIL.value)
    return changed


@router.get("")
def list_testing_records(technician: str = Query(None), user: User = Depends(get_current_user),
                         db: Session = Depends(get_db)):
    q = _record_query(user, db)
    if technician:
        q = q.join(User, JobCard.technician_id == User.id).filter(User.name == technician)
    records = q.order_by(desc(TestingRecord.created_at), desc(TestingRecord.id)).all()
    data = [_serialize_record(r) for r in records]
    return respond(data, count=len(data))


@router.get("/{record_id}")
def get_testing_record(record_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return respond(_serialize_record(_get_record_or_404(record_id, user, db)))


@router.post("", status_code=201)
def create_testing_record(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN", "EMPLOYEE"])),
                          db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    body = parse_model(TestingRecordCreate, _decode_nested(ensure_object(payload)))

    job_card = db.query(JobCard).filter(
        JobCard.company_id == company_id, JobCard.job_no == body.job_card_number, JobCard.is_deleted == False
    ).first()
    if not job_card:
        raise HTTPException(status_code=404, detail="Job card not found")
    _check_ownership(user, job_card, "create")

    record = TestingRecord(
        job_card_id=job_card.id,
        test_date=parse_date(body.test_date, "testDate") or date.today(),
    )
    _apply_sections(record, body, fill_defaults=True)
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("Testing record %s created for job card %s", record.id, job_card.job_no)
    return respond(_serialize_record(record), message="Testing record created successfully")


@router.put("/{record_id}")
def update_testing_record(record_id: int, payload=Depends(get_payload),
                          user: User = Depends(require_role(["ADMIN", "EMPLOYEE"])), db: Session = Depends(get_db)):
    body = parse_model(TestingRecordUpdate, _decode_nested(ensure_object(payload)))
    record = _get_record_or_404(record_id, user, db)
    _check_ownership(user, record.job_card, "update")

    changed = _apply_sections(record, body, fill_defaults=False)
    test_date = parse_date(body.test_date, "testDate")
    if test_date:
        record.test_date = test_date
        changed += 1
    if not changed:
        raise HTTPException(status_code=400, detail="No fields to update")

    db.commit()
    db.refresh(record)
    return respond(_serialize_record(record), message="Testing record updated successfully")


@router.delete("/{record_id}")
def delete_testing_record(record_id: int, user: User = Depends(require_role(["ADMIN", "EMPLOYEE"])),
                          db: Session = Depends(get_db)):
    record = _get_record_or_404(record_id, user, db)
    _check_ownership(user, record.job_card, "delete")
    db.delete(record)
    db.commit()
    return {"success": True, "message": "Testing record deleted successfully"}
