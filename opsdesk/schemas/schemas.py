from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional


class LoginRequest(BaseModel):
    email: str
    password: str
    role: str

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v: str) -> str:
        return v.strip().upper()


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class ResetPasswordRequest(BaseModel):
    new_password: Optional[str] = Field(default=None, min_length=6)


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    company_id: Optional[int] = None
    name: str
    email: str
    role: str
    status: str
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None

    class Config:
        from_attributes = True


class RepairReading(BaseModel):
    pressure: Optional[str] = None
    leak: Optional[str] = None
    calibration: Optional[str] = None
    pass_fail: Optional[str] = Field(default=None, alias="passFail")

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True


class InjectorParams(BaseModel):
    pilot_injection: Optional[str] = Field(default=None, alias="pilotInjection")
    main_injection: Optional[str] = Field(default=None, alias="mainInjection")
    return_flow: Optional[str] = Field(default=None, alias="returnFlow")
    pressure: Optional[str] = None
    leak_test: Optional[str] = Field(default=None, alias="leakTest")

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True


class TestingRecordCreate(BaseModel):
    job_card_number: str = Field(alias="jobCardNumber")
    before_repair: Optional[RepairReading] = Field(default=None, alias="beforeRepair")
    after_repair: Optional[RepairReading] = Field(default=None, alias="afterRepair")
    injector_params: Optional[InjectorParams] = Field(default=None, alias="injectorParams")
    test_date: Optional[str] = Field(default=None, alias="testDate")

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True


class TestingRecordUpdate(BaseModel):
    before_repair: Optional[RepairReading] = Field(default=None, alias="beforeRepair")
    after_repair: Optional[RepairReading] = Field(default=None, alias="afterRepair")
    injector_params: Optional[InjectorParams] = Field(default=None, alias="injectorParams")
    test_date: Optional[str] = Field(default=None, alias="testDate")

    class Config:
        populate_by_name = True


class SettingItem(BaseModel):
    setting_key: Optional[str] = None
    setting_value: Any = None
