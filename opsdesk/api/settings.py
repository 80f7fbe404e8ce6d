import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, require_role
from opsdesk.core.config import MAX_LOGO_MB
from opsdesk.models.models import SystemSetting, User
from opsdesk.schemas.schemas import SettingItem
from opsdesk.services.settings_service import effective_settings, upsert_setting
from opsdesk.services.storage_service import save_upload
from opsdesk.api.common import get_payload, respond, ensure_object, parse_model, is_blank, iso

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])

logger = logging.getLogger(__name__)


def _serialize_setting(s: SystemSetting) -> dict:
    return {
        "id": s.id,
        "company_id": s.company_id,
        "setting_key": s.setting_key,
        "setting_value": s.setting_value,
        "created_at": iso(s.created_at),
        "updated_at": iso(s.updated_at),
    }


def _apply_many(db: Session, company_id: int, items: list) -> list:
    results = []
    try:
        for raw in items:
            if not isinstance(raw, dict):
                continue
            item = parse_model(SettingItem, raw)
            if is_blank(item.setting_key):
                continue
            upsert_setting(db, company_id, item.setting_key, item.setting_value)
            results.append({"setting_key": item.setting_key, "success": True})
        db.commit()
    except Exception:
        db.rollback()
        raise
    return results


@router.get("")
def get_settings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond([_serialize_setting(s) for s in effective_settings(db, company_id)])


@router.get("/category/{category}")
def get_settings_by_category(category: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    return respond([_serialize_setting(s) for s in effective_settings(db, company_id, prefix=category)])


@router.put("/bulk")
def bulk_update_settings(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                         db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    data = ensure_object(payload)
    if not isinstance(data.get("settings"), list):
        raise HTTPException(status_code=400, detail="Settings must be an array")
    results = _apply_many(db, company_id, data["settings"])
    logger.info("Company %s bulk-updated %d settings", company_id, len(results))
    return respond(results, message="Settings updated successfully")


@router.put("")
def update_settings(payload=Depends(get_payload), user: User = Depends(require_role(["ADMIN"])),
                    db: Session = Depends(get_db)):
    company_id = get_company_id(user)
    if isinstance(payload, list):
        return respond(_apply_many(db, company_id, payload), message="Settings updated successfully")

    data = ensure_object(payload)
    upload = next((v for v in data.values() if isinstance(v, UploadFile)), None)
    if upload is not None:
        key = data.get("setting_key") if isinstance(data.get("setting_key"), str) else None
        key = key or "logo"
        file_path, _ = save_upload(upload, f"logos/{company_id}", MAX_LOGO_MB, content_type_prefix="image/")
        value = "/" + file_path.replace("\\", "/").lstrip("/")
    else:
        item = parse_model(SettingItem, data)
        key, value = item.setting_key, item.setting_value
        if is_blank(key):
            raise HTTPException(status_code=400, detail="setting_key is required")

    setting = upsert_setting(db, company_id, key, value)
    db.commit()
    db.refresh(setting)
    return respond(_serialize_setting(setting), message="Settings updated")
