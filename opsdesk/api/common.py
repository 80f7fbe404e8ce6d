import json
from datetime import date, datetime, time
from fastapi import HTTPException, Request
from pydantic import ValidationError

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def get_payload(request: Request):
    """Request body as a dict (or list), accepting JSON and form encodings."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items()}
    body = await request.body()
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Malformed JSON body")


def respond(data=None, message: str = None, pagination: dict = None, **extra) -> dict:
    body = {"success": True, "data": data}
    if pagination is not None:
        body["pagination"] = pagination
    if message:
        body["message"] = message
    body.update(extra)
    return body


def ensure_object(data) -> dict:
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")
    return data


def _join_fields(fields: list[str]) -> str:
    if len(fields) == 1:
        return fields[0]
    if len(fields) == 2:
        return f"{fields[0]} and {fields[1]}"
    return ", ".join(fields[:-1]) + f", and {fields[-1]}"


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require_fields(data: dict, fields: list[str]):
    if any(is_blank(data.get(f)) for f in fields):
        verb = "is" if len(fields) == 1 else "are"
        raise HTTPException(status_code=400, detail=f"{_join_fields(fields)} {verb} required")


def to_text(value, field: str):
    """Stripped string value; anything else sent for a text field is a 400."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{field} must be a string")
    return value.strip()


def parse_date(value, field: str):
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be a valid date (YYYY-MM-DD)")


def parse_time(value, field: str):
    if is_blank(value):
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be a valid time (HH:MM)")


def to_float(value, field: str, default=None):
    if is_blank(value):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be a number")


def to_int(value, field: str, default=None):
    if is_blank(value):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be an integer")


def to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def to_id_list(value, field: str) -> list[int]:
    if is_blank(value):
        return []
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [to_int(v, field) for v in value]


def iso(value):
    return value.isoformat() if value else None


def hhmm(value):
    return value.strftime("%H:%M") if value else None


def parse_model(model, data):
    """Validate a payload against a pydantic model, turning failures into a 400."""
    try:
        return model.model_validate(ensure_object(data))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        message = first.get("msg", "invalid value")
        raise HTTPException(status_code=400, detail=f"{field}: {message}" if field else message)
