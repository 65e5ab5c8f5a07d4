from datetime import date, datetime
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from app.models import RenewalStatus

T = TypeVar("T")

# Fields that must be present on create and may not be nulled on update
REQUIRED_RENEWAL_FIELDS = (
    "service_name",
    "service_type",
    "provider",
    "start_date",
    "end_date",
    "cost",
    "reminder_type",
)


class LoginRequest(BaseModel):
    """
    Login payload validation.

    Rejects obviously malformed requests (422) before any credential check.
    """
    email: EmailStr
    password: str = Field(min_length=1)


class UserSummary(BaseModel):
    """
    Safe user representation for API responses.

    Critical: Never include password_hash in any response.
    """
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class UserResponse(UserSummary):
    is_admin: bool
    created_at: datetime


class LoginResponse(BaseModel):
    status: str = "success"
    user_type: str
    token: str
    user: UserSummary


class MessageResponse(BaseModel):
    """
    Generic message response for operations without specific return data.
    """
    status: str = "success"
    message: str


class Envelope(BaseModel, Generic[T]):
    status: str = "success"
    message: str
    data: Optional[T] = None


def _check_date_order(end_date: Optional[date], info: ValidationInfo) -> Optional[date]:
    start_date = info.data.get("start_date")
    if end_date is not None and start_date is not None and end_date < start_date:
        raise PydanticCustomError(
            "date_order",
            "The end date must be a date after or equal to start date.",
        )
    return end_date


class RenewalCreate(BaseModel):
    """Fields accepted when creating a renewal. All errors are reported together."""
    model_config = ConfigDict(str_strip_whitespace=True)

    service_name: str = Field(min_length=1, max_length=255)
    service_type: str = Field(min_length=1, max_length=255)
    provider: str = Field(min_length=1, max_length=255)
    start_date: date
    end_date: date
    cost: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    reminder_type: str = Field(min_length=1, max_length=255)
    notes: Optional[str] = None

    @field_validator("end_date")
    @classmethod
    def end_date_not_before_start(cls, v: date, info: ValidationInfo) -> date:
        return _check_date_order(v, info)


class RenewalUpdate(BaseModel):
    """
    Partial update. Only fields present in the payload are validated and applied;
    the date order of the merged record is checked by the repository.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    service_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    service_type: Optional[str] = Field(default=None, min_length=1, max_length=255)
    provider: Optional[str] = Field(default=None, min_length=1, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    cost: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    reminder_type: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[RenewalStatus] = None
    notes: Optional[str] = None

    @field_validator(*REQUIRED_RENEWAL_FIELDS, "status")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        # Only runs for values actually sent, so None here means an explicit null
        if v is None:
            raise PydanticCustomError(
                "not_null", "The {field} field may not be null.", {"field": info.field_name}
            )
        return v

    @field_validator("end_date")
    @classmethod
    def end_date_not_before_start(cls, v: date, info: ValidationInfo) -> date:
        return _check_date_order(v, info)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class RenewalOut(BaseModel):
    id: int
    user_id: int
    service_name: str
    service_type: str
    provider: str
    start_date: date
    end_date: date
    cost: Decimal
    reminder_type: str
    status: RenewalStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RenewalStatistics(BaseModel):
    active_count: int
    expiring_soon_count: int
    expired_count: int
    cancelled_count: int
    total_count: int
    total_cost: int
