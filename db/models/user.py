from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum, inspect
from sqlalchemy.orm import deferred, reconstructor
from datetime import datetime, timezone
import enum
import logging
from db.base import Base
from db.exceptions import CredentialsNotLoadedError
from db.security import verify_password

logger = logging.getLogger(__name__)

# Free tier allowance, counted in report_count_free
FREE_REPORT_LIMIT = 2
AI_REPORT_TYPE = "ai"
DEFAULT_REPORT_TYPE = "basic"

# Columns left out of default reads; load them with include_secrets=True
SECRET_FIELDS = (
    "password",
    "email_verification_token",
    "reset_password_token",
    "reset_password_expire",
)


class SubscriptionTier(str, enum.Enum):
    """Subscription tiers"""

    FREE = "free"
    BASIC = "basic"
    AI_ENHANCED = "ai_enhanced"


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password = deferred(Column(String, nullable=False), group="secrets", raiseload=True)
    subscription = Column(
        SQLEnum(
            SubscriptionTier,
            name="subscription_tier",
            values_callable=lambda tiers: [tier.value for tier in tiers],
        ),
        default=SubscriptionTier.FREE,
        nullable=False,
    )
    subscription_expiry = Column(DateTime(timezone=True), nullable=True, default=None)
    stripe_customer_id = Column(String, nullable=True, default=None, index=True)
    report_count_free = Column(Integer, nullable=False, default=0)
    report_count_basic = Column(Integer, nullable=False, default=0)
    report_count_ai = Column(Integer, nullable=False, default=0)  # stored, never read by quota checks
    ai_credits = Column(Integer, nullable=False, default=0)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    email_verification_token = deferred(Column(String, nullable=True), group="secrets", raiseload=True)
    reset_password_token = deferred(Column(String, nullable=True), group="secrets", raiseload=True)
    reset_password_expire = deferred(
        Column(DateTime(timezone=True), nullable=True), group="secrets", raiseload=True
    )
    last_login = Column(DateTime(timezone=True), default=_utcnow)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __init__(self, password=None, **kwargs):
        kwargs.setdefault("subscription", SubscriptionTier.FREE)
        kwargs.setdefault("report_count_free", 0)
        kwargs.setdefault("report_count_basic", 0)
        kwargs.setdefault("report_count_ai", 0)
        kwargs.setdefault("ai_credits", 0)
        kwargs.setdefault("is_email_verified", False)
        super().__init__(**kwargs)
        self._password_dirty = False
        if password is not None:
            self.set_password(password)

    @reconstructor
    def _init_on_load(self):
        self._password_dirty = False

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, subscription={self.subscription})>"

    @property
    def report_count(self) -> dict:
        return {
            "free": self.report_count_free,
            "basic": self.report_count_basic,
            "ai": self.report_count_ai,
        }

    # Credentials

    @property
    def password_is_dirty(self) -> bool:
        """True while ``password`` holds plaintext that has not been hashed yet."""
        return getattr(self, "_password_dirty", False)

    def set_password(self, raw: str) -> None:
        """Stage a new plaintext password; the repository hashes it on save."""
        self.password = raw
        self._password_dirty = True

    def mark_password_hashed(self, hashed: str) -> None:
        self.password = hashed
        self._password_dirty = False

    def discard_pending_password(self) -> None:
        self._password_dirty = False

    def check_password(self, candidate: str) -> bool:
        """
        Compare ``candidate`` against the stored bcrypt hash.

        Returns False on a mismatch. Raises CredentialsNotLoadedError when the
        hash was not selected (default reads leave it out), was never saved,
        or cannot be parsed.
        """
        if "password" in inspect(self).unloaded:
            raise CredentialsNotLoadedError(
                "Password hash not loaded; fetch the user with include_secrets=True"
            )
        if self.password_is_dirty or not self.password:
            raise CredentialsNotLoadedError("No stored password hash to compare against")
        try:
            return verify_password(candidate, self.password)
        except (ValueError, TypeError) as e:
            raise CredentialsNotLoadedError(f"Stored password hash is unreadable: {e}")

    # Entitlements

    def can_generate_report(self, report_type: str = DEFAULT_REPORT_TYPE) -> bool:
        if self.subscription == SubscriptionTier.FREE:
            return self.report_count_free < FREE_REPORT_LIMIT
        elif self.subscription == SubscriptionTier.BASIC:
            return True
        elif self.subscription == SubscriptionTier.AI_ENHANCED:
            if report_type == AI_REPORT_TYPE:
                return self.ai_credits > 0
            return True
        return False

    def increment_report_count(self, report_type: str = DEFAULT_REPORT_TYPE) -> None:
        """
        Consume one unit of entitlement in memory. Callers persist the change.

        There is no floor on ai_credits: consuming without a prior
        can_generate_report check can drive the balance negative.
        """
        if self.subscription == SubscriptionTier.FREE:
            self.report_count_free += 1
        elif report_type == AI_REPORT_TYPE and self.subscription == SubscriptionTier.AI_ENHANCED:
            self.ai_credits -= 1
            if self.ai_credits < 0:
                logger.warning(f"User {self.id} AI credit balance went negative ({self.ai_credits})")
