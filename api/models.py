from pydantic import BaseModel, ConfigDict, conint, field_validator
from datetime import datetime
from typing import Optional
from db.models.user import SubscriptionTier
from db.validation import NameStr, PasswordStr, normalize_email, check_email


class UserUpdate(BaseModel):
    name: Optional[NameStr] = None  # type: ignore
    email: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def lowercase_email(cls, email):
        return normalize_email(email)

    @field_validator("email")
    @classmethod
    def validate_email(cls, email):
        if email is None:
            return email
        return check_email(email)


class PasswordChange(BaseModel):
    current_password: str
    new_password: PasswordStr  # type: ignore


class PasswordReset(BaseModel):
    token: str
    new_password: PasswordStr  # type: ignore


class SubscriptionUpdate(BaseModel):
    subscription: SubscriptionTier
    subscription_expiry: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    ai_credits: Optional[conint(ge=0)] = None  # type: ignore


class ReportCountResponse(BaseModel):
    free: int
    basic: int
    ai: int


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    subscription: SubscriptionTier
    subscription_expiry: Optional[datetime]
    stripe_customer_id: Optional[str]
    report_count: ReportCountResponse
    ai_credits: int
    is_email_verified: bool
    last_login: Optional[datetime]
    created_at: Optional[datetime]


class EntitlementResponse(BaseModel):
    user_id: int
    subscription: SubscriptionTier
    report_type: str
    allowed: bool
