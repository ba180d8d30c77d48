"""
Write-time field rules for user records.

The rules are declared once as pydantic types so the request schemas in
``api.models`` and the repository's pre-persist check agree with each other.
"""
from pydantic import BaseModel, ValidationError, field_validator, constr
from typing import Optional
import re
from db.models.user import User, SubscriptionTier

NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 6

# local@domain.tld, written without nested quantifiers so a long invalid
# address fails in linear time
EMAIL_PATTERN = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*(?:\.\w{2,3})+$", re.ASCII)

NameStr = constr(strip_whitespace=True, min_length=1, max_length=NAME_MAX_LENGTH)
PasswordStr = constr(min_length=PASSWORD_MIN_LENGTH)

FIELD_MESSAGES = {
    ("name", "missing"): "Please provide a name",
    ("name", "string_type"): "Please provide a name",
    ("name", "string_too_short"): "Please provide a name",
    ("name", "string_too_long"): f"Name cannot be longer than {NAME_MAX_LENGTH} characters",
    ("email", "missing"): "Please provide an email",
    ("email", "string_type"): "Please provide an email",
    ("password", "missing"): "Please provide a password",
    ("password", "string_type"): "Please provide a password",
    ("password", "string_too_short"): f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
    ("subscription", "enum"): "Subscription must be one of: "
    + ", ".join(tier.value for tier in SubscriptionTier),
}


def normalize_email(email):
    if isinstance(email, str):
        return email.strip().lower()
    return email


def check_email(email: str) -> str:
    if not email:
        raise ValueError("Please provide an email")
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please provide a valid email")
    return email


class UserRecord(BaseModel):
    name: NameStr  # type: ignore
    email: str
    password: Optional[PasswordStr] = None  # type: ignore
    subscription: SubscriptionTier = SubscriptionTier.FREE

    @field_validator("email", mode="before")
    @classmethod
    def lowercase_email(cls, email):
        return normalize_email(email)

    @field_validator("email")
    @classmethod
    def validate_email(cls, email):
        return check_email(email)


def collect_field_errors(exc: ValidationError) -> dict:
    """Flatten a pydantic ValidationError into ``{field: message}``."""
    errors = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error.get("loc") else "__root__"
        if field in errors:
            continue
        message = FIELD_MESSAGES.get((field, error["type"]))
        if message is None:
            message = error["msg"]
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors[field] = message
    return errors


def validate_user(user: User) -> dict:
    """
    Check a user about to be written. Returns the field errors (empty when
    valid) and, on success, writes the normalised name, email and
    subscription back onto the instance.

    The password is only checked while a new plaintext value is pending;
    a stored hash is never re-validated.
    """
    data = {
        "name": user.name,
        "email": user.email,
        "subscription": user.subscription,
    }
    errors = {}
    if user.password_is_dirty:
        if user.password is None or user.password == "":
            errors["password"] = FIELD_MESSAGES[("password", "missing")]
        else:
            data["password"] = user.password
    elif user.id is None:
        errors["password"] = FIELD_MESSAGES[("password", "missing")]

    try:
        record = UserRecord.model_validate(data)
    except ValidationError as e:
        field_errors = collect_field_errors(e)
        field_errors.update(errors)
        return field_errors

    if errors:
        return errors
    user.name = record.name
    user.email = record.email
    user.subscription = record.subscription
    return {}
