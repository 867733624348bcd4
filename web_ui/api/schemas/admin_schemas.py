"""Admin API request schemas (camelCase on the wire)"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

TrimmedName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value == "":
        return None
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class NotificationSettingsUpdate(CamelModel):
    """Empty strings clear a value"""
    sender_email: Optional[EmailStr] = None
    email_auth_code: Optional[str] = None
    smtp_host: Optional[str] = Field(None, min_length=1)
    smtp_port: int = Field(..., ge=1, le=65535)
    smtp_secure: bool
    ingestion_push_enabled: bool

    @field_validator("sender_email", "email_auth_code", "smtp_host", mode="before")
    @classmethod
    def _clear_blank(cls, value):
        return _blank_to_none(value)


class ExpireJobSettingsUpdate(CamelModel):
    expire_job_cron: str = Field(..., min_length=1)


class CreateEmbyUserRequest(CamelModel):
    username: TrimmedName
    password: Optional[TrimmedName] = None
    local_email: Optional[EmailStr] = None
    email_push_enabled: Optional[bool] = None

    @field_validator("local_email", mode="before")
    @classmethod
    def _clear_blank(cls, value):
        return _blank_to_none(value)


class UpdatePolicyRequest(CamelModel):
    """
    ``localEmail`` may be explicitly null to clear the stored address; check
    ``model_fields_set`` to tell "null" from "absent".
    """
    policy: Dict[str, Any]
    emby_username: Optional[str] = Field(None, min_length=1)
    local_email: Optional[EmailStr] = None
    email_push_enabled: Optional[bool] = None


class UpdatePasswordRequest(CamelModel):
    password: TrimmedName


class UpsertUserRequest(CamelModel):
    emby_user_id: str = Field(..., min_length=1)
    emby_username: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None


class ManualRechargeRequest(CamelModel):
    emby_user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    months: int = Field(..., gt=0, le=36)
    note: Optional[str] = Field(None, max_length=500)


class SetMembershipEndAtRequest(CamelModel):
    end_at: datetime
