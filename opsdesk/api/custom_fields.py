import re
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.models.models import CustomField, User
from opsdesk.api.common import get_payload, respond, ensure_object, require_fields, iso, to_text

router = APIRouter(prefix="/api/v1/custom-fields", tags=["custom-fields"])

FIELD_TYPES = ["text", "textarea", "number", "date", "select", "checkbox", "email", "phone"]
_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")


def _serialize_field(f: CustomField) -> dict:
    return {
        "id": f.id,
        "company_id": f.company_id,
        "name": f.name,
        "label": f.label,
        "type": f.type,
        "module": f.module,
        "created_at": iso(f.created_at),
        "updated_at": iso(f.updated_at),
    }


@router.get("")
def list_custom_fields(module: str = Query(None), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    q = db.query(CustomField).filter(CustomField.company_id == company_id, CustomField.is_deleted == False)
    if module:
        q = q.filter(CustomField.module == module)
    fields = q.order_by(desc(CustomField.created_at), desc(CustomField.id)).all()
    return respond([_serialize_field(f) for f in fields])


@router.post("", status_code=201)
def create_custom_field(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                        db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    require_fields(data, ["name", "label", "module"])

    name = to_text(data["name"], "name")
    if not _NAME_RE.match(name):
        raise HTTPException(status_code=400, detail="name must be lowercase letters, digits and underscores")
    field_type = data.get("type") or "text"
    if field_type not in FIELD_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid type. Must be one of: {', '.join(FIELD_TYPES)}")
    module = to_text(data["module"], "module")

    clash = db.query(CustomField).filter(
        CustomField.company_id == company_id, CustomField.module == module,
        CustomField.name == name, CustomField.is_deleted == False
    ).first()
    if clash:
        raise HTTPException(status_code=400, detail="A custom field with this name already exists in this module")

    field = CustomField(company_id=company_id, name=name, label=to_text(data["label"], "label"), type=field_type,
                        module=module)
    db.add(field)
    db.commit()
    db.refresh(field)
    return respond(_serialize_field(field), message="Custom field created successfully")


@router.delete("/{field_id}")
def delete_custom_field(field_id: int, user: User = Depends(require_role(["ADMIN"])), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    field = db.query(CustomField).filter(
        CustomField.id == field_id, CustomField.company_id == company_id, CustomField.is_deleted == False
    ).first()
    if not field:
        raise HTTPException(status_code=404, detail="Custom field not found")
    field.is_deleted = True
    db.commit()
    return {"success": True, "message": "Custom field deleted successfully"}
