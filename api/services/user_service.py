from db.models.user import User, SubscriptionTier, DEFAULT_REPORT_TYPE
from db.repositories.user_repository import UserRepository, EMAIL_TAKEN
from db.exceptions import (
    UserNotFoundException,
    UserValidationError,
    EntitlementError,
)
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
import secrets
import logging

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL_MINUTES = 60


class UserServiceException(Exception):
    def __init__(self, detail):
        super().__init__(detail)
        self.detail = detail

    def __str__(self):
        return str(self.detail)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    def get_by_id(self, user_id: int, include_secrets: bool = False) -> User:
        user = self.user_repo.get_user_by_id(user_id, include_secrets=include_secrets)
        if not user:
            logger.error(f"User with ID {user_id} not found")
            raise UserNotFoundException(f"User with ID {user_id} not found")
        return user

    def signup(self, name: str, email: str, password: str) -> User:
        if email and self.user_repo.email_taken(email):
            logger.error(f"Email already registered: {email}")
            raise UserValidationError({"email": EMAIL_TAKEN})
        user = User(name=name, email=email, password=password)
        user.email_verification_token = secrets.token_urlsafe(32)
        self.user_repo.create_user(user)
        logger.info(f"Created user {user.id} with email {user.email}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        """Check credentials and stamp last_login. Issues no session or token."""
        user = self.user_repo.get_user_by_email(email, include_secrets=True)
        if not user or not user.check_password(password):
            logger.error(f"Login failed for email {email}: Invalid credentials")
            raise UserServiceException("Invalid credentials")
        user.last_login = datetime.now(timezone.utc)
        self.user_repo.save(user)
        logger.info(f"User {user.id} authenticated")
        return user

    def change_password(self, user_id: int, current_password: str, new_password: str) -> User:
        user = self.get_by_id(user_id, include_secrets=True)
        if not user.check_password(current_password):
            logger.error(f"Password change rejected for user {user_id}: wrong current password")
            raise UserServiceException("Current password is incorrect")
        user.set_password(new_password)
        user.reset_password_token = None
        user.reset_password_expire = None
        self.user_repo.save(user)
        logger.info(f"Password changed for user {user_id}")
        return user

    def update_profile(
        self, user_id: int, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        update_data = {}
        if name is not None:
            update_data["name"] = name
        if email is not None:
            update_data["email"] = email
        user = self.user_repo.update_user(user_id, update_data)
        if not user:
            raise UserNotFoundException(f"User with ID {user_id} not found")
        logger.info(f"Updated profile fields {sorted(update_data)} for user {user_id}")
        return user

    def update_subscription(
        self,
        user_id: int,
        subscription: Union[SubscriptionTier, str],
        subscription_expiry: Optional[datetime] = None,
        stripe_customer_id: Optional[str] = None,
        ai_credits: Optional[int] = None,
    ) -> User:
        """Mutation surface for the billing collaborator."""
        update_data = {
            "subscription": subscription,
            "subscription_expiry": subscription_expiry,
        }
        if stripe_customer_id is not None:
            update_data["stripe_customer_id"] = stripe_customer_id
        if ai_credits is not None:
            update_data["ai_credits"] = ai_credits
        user = self.user_repo.update_user(user_id, update_data)
        if not user:
            raise UserNotFoundException(f"User with ID {user_id} not found")
        logger.info(f"User {user_id} moved to subscription {user.subscription.value}")
        return user

    def add_ai_credits(self, user_id: int, amount: int) -> User:
        if amount <= 0:
            raise UserServiceException("Credit amount must be positive")
        user = self.get_by_id(user_id)
        user.ai_credits += amount
        self.user_repo.save(user)
        logger.info(f"Added {amount} AI credits to user {user_id}, balance {user.ai_credits}")
        return user

    def check_entitlement(self, user_id: int, report_type: str = DEFAULT_REPORT_TYPE) -> bool:
        user = self.get_by_id(user_id)
        return user.can_generate_report(report_type)

    def record_report(self, user_id: int, report_type: str = DEFAULT_REPORT_TYPE) -> User:
        """
        Check and consume one entitlement in a single call. The row is locked
        for the duration where the database supports SELECT ... FOR UPDATE.
        """
        user = self.user_repo.get_user_by_id(user_id, for_update=True)
        if not user:
            raise UserNotFoundException(f"User with ID {user_id} not found")
        if not user.can_generate_report(report_type):
            logger.error(
                f"User {user_id} ({user.subscription.value}) not entitled to a {report_type} report"
            )
            raise EntitlementError(f"Report limit reached for {report_type} reports")
        self.user_repo.increment_report_count(user, report_type)
        logger.info(f"Recorded {report_type} report for user {user_id}")
        return user

    def issue_email_verification_token(self, user_id: int) -> str:
        user = self.get_by_id(user_id)
        token = secrets.token_urlsafe(32)
        user.email_verification_token = token
        self.user_repo.save(user)
        logger.info(f"Issued email verification token for user {user_id}")
        return token

    def verify_email(self, token: str) -> User:
        user = self.user_repo.get_user_by_verification_token(token) if token else None
        if not user:
            logger.error("Email verification failed: unknown token")
            raise UserServiceException("Invalid verification token")
        user.is_email_verified = True
        user.email_verification_token = None
        self.user_repo.save(user)
        logger.info(f"Email verified for user {user.id}")
        return user

    def issue_password_reset_token(
        self, email: str, ttl_minutes: int = RESET_TOKEN_TTL_MINUTES
    ) -> str:
        user = self.user_repo.get_user_by_email(email)
        if not user:
            logger.error(f"Password reset requested for unknown email {email}")
            raise UserNotFoundException(f"No user with email {email}")
        token = secrets.token_urlsafe(32)
        user.reset_password_token = token
        user.reset_password_expire = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)
        self.user_repo.save(user)
        logger.info(f"Issued password reset token for user {user.id}")
        return token

    def reset_password(self, token: str, new_password: str) -> User:
        user = self.user_repo.get_user_by_reset_token(token) if token else None
        expire = _as_utc(user.reset_password_expire) if user else None
        if not user or expire is None or expire < datetime.now(timezone.utc):
            logger.error("Password reset failed: invalid or expired token")
            raise UserServiceException("Reset token is invalid or has expired")
        user.set_password(new_password)
        user.reset_password_token = None
        user.reset_password_expire = None
        self.user_repo.save(user)
        logger.info(f"Password reset for user {user.id}")
        return user

    def delete_user(self, user_id: int) -> None:
        if not self.user_repo.delete_user(user_id):
            raise UserNotFoundException(f"User with ID {user_id} not found")
        logger.info(f"Deleted user {user_id}")
