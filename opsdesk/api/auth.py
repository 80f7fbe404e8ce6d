import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import hash_password, verify_password, create_access_token, get_current_user
from opsdesk.models.models import User, UserStatus
from opsdesk.schemas.schemas import LoginRequest, ChangePasswordRequest, ProfileUpdate, UserResponse
from opsdesk.api.common import get_payload, respond, parse_model, require_fields, ensure_object

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

logger = logging.getLogger(__name__)


def _serialize_me(user: User) -> dict:
    data = UserResponse.model_validate(user).model_dump()
    data["created_at"] = user.created_at.isoformat() if user.created_at else None
    return data


@router.post("/login")
def login(payload=Depends(get_payload), db: Session = Depends(get_db)):
    data = ensure_object(payload)
    require_fields(data, ["email", "password"])
    if not data.get("role"):
        raise HTTPException(status_code=400, detail="Role is required (ADMIN, EMPLOYEE, or CLIENT)")
    creds = parse_model(LoginRequest, data)

    # Email is unique per company only, so every tenant's account is a candidate.
    candidates = db.query(User).filter(
        User.email == creds.email,
        func.upper(User.role) == creds.role,
        User.is_deleted == False
    ).order_by(User.id).all()
    if not candidates:
        other = db.query(User).filter(User.email == creds.email, User.is_deleted == False).first()
        if other:
            raise HTTPException(
                status_code=401,
                detail=f"User exists but role mismatch. Expected: {creds.role}, Found: {other.role}"
            )
        raise HTTPException(status_code=401, detail="Invalid email, password, or role")

    user = next((u for u in candidates if verify_password(creds.password, u.password)), None)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email, password, or role")
    if user.status != UserStatus.ACTIVE.value:
        raise HTTPException(status_code=403, detail="User account is inactive")

    logger.info("User %s logged in to company %s", user.id, user.company_id)
    return {
        "success": True,
        "token": create_access_token(user),
        "token_type": "bearer",
        "user": {
            "id": user.id,
            "company_id": user.company_id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
        },
    }


@router.post("/logout")
def logout():
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return respond(_serialize_me(user))


@router.put("/me")
def update_me(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updates = parse_model(ProfileUpdate, payload).model_dump(exclude_unset=True)
    if "name" in updates and not (updates["name"] or "").strip():
        raise HTTPException(status_code=400, detail="name cannot be empty")
    for field, value in updates.items():
        setattr(user, field, value.strip() if field == "name" else value)
    db.commit()
    db.refresh(user)
    return respond(_serialize_me(user), message="Profile updated successfully")


@router.put("/change-password")
def change_password(payload=Depends(get_payload), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = ensure_object(payload)
    require_fields(data, ["current_password", "new_password"])
    body = parse_model(ChangePasswordRequest, data)
    if not verify_password(body.current_password, user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password = hash_password(body.new_password)
    db.commit()
    return {"success": True, "message": "Password changed successfully"}
