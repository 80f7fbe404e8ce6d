import json
from typing import Any, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from opsdesk.models.models import SystemSetting


def encode_value(value: Any) -> Optional[str]:
    """Stored form of a setting value; objects and lists become JSON."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def effective_settings(db: Session, company_id: int, prefix: Optional[str] = None) -> List[SystemSetting]:
    """Tenant rows plus global defaults (company_id NULL) the tenant has not overridden."""
    q = db.query(SystemSetting).filter(
        or_(SystemSetting.company_id == company_id, SystemSetting.company_id.is_(None))
    )
    if prefix:
        q = q.filter(SystemSetting.setting_key.startswith(prefix, autoescape=True))
    rows = q.order_by(SystemSetting.setting_key, SystemSetting.company_id.is_(None)).all()

    picked = {}
    for row in rows:
        current = picked.get(row.setting_key)
        if current is None or (current.company_id is None and row.company_id is not None):
            picked[row.setting_key] = row
    return [picked[key] for key in sorted(picked)]


def upsert_setting(db: Session, company_id: int, key: str, value: Any) -> SystemSetting:
    """Insert or update one tenant setting. The caller commits."""
    stored = encode_value(value)
    setting = db.query(SystemSetting).filter(
        SystemSetting.company_id == company_id, SystemSetting.setting_key == key
    ).first()
    if setting:
        setting.setting_value = stored
    else:
        setting = SystemSetting(company_id=company_id, setting_key=key, setting_value=stored)
        db.add(setting)
    db.flush()
    return setting
