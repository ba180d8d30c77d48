from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, undefer_group
from typing import Optional
import logging
from db.models.user import User, DEFAULT_REPORT_TYPE
from db.exceptions import UserValidationError
from db.security import hash_password
from db.validation import validate_user

logger = logging.getLogger(__name__)

EMAIL_TAKEN = "Email already registered"


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def _query(self, include_secrets: bool = False):
        query = self.db.query(User)
        if include_secrets:
            query = query.options(undefer_group("secrets"))
        return query

    def save(self, user: User) -> User:
        """
        Validate, hash a pending password and commit.

        The password is hashed only when a new plaintext value was staged
        with ``User.set_password``; saving other fields leaves the stored
        hash untouched.
        """
        with self.db.no_autoflush:
            errors = validate_user(user)
            if "email" not in errors and user.email and self.email_taken(user.email, exclude_id=user.id):
                errors["email"] = EMAIL_TAKEN
        if errors:
            logger.error(f"Rejected write for user {user.email}: {', '.join(errors)}")
            if inspect(user).persistent:
                # drop the rejected changes so the session stays clean
                self.db.rollback()
                user.discard_pending_password()
            raise UserValidationError(errors)

        staged_password = None
        if user.password_is_dirty:
            staged_password = user.password
            user.mark_password_hashed(hash_password(staged_password))

        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if staged_password is not None:
                # keep the plaintext staged so a corrected retry hashes it again
                user.set_password(staged_password)
            logger.error(f"Unique constraint rejected write for email {user.email}")
            raise UserValidationError({"email": EMAIL_TAKEN})
        self.db.refresh(user)
        return user

    def create_user(self, user: User) -> User:
        return self.save(user)

    def email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(User.id).filter(User.email == email.strip().lower())
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    def get_user_by_id(
        self, user_id: int, include_secrets: bool = False, for_update: bool = False
    ) -> User | None:
        query = self._query(include_secrets).filter(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_user_by_email(self, email: str, include_secrets: bool = False) -> User | None:
        if not email:
            return None
        return self._query(include_secrets).filter(User.email == email.strip().lower()).first()

    def get_user_by_stripe_customer_id(self, customer_id: str) -> User | None:
        return self.db.query(User).filter(User.stripe_customer_id == customer_id).first()

    def get_user_by_verification_token(self, token: str) -> User | None:
        return (
            self._query(include_secrets=True)
            .filter(User.email_verification_token == token)
            .first()
        )

    def get_user_by_reset_token(self, token: str) -> User | None:
        return (
            self._query(include_secrets=True)
            .filter(User.reset_password_token == token)
            .first()
        )

    def update_user(self, user_id: int, update_data: dict) -> User | None:
        """Update user with dict of fields. The password is not assignable here."""
        existing_user = self.get_user_by_id(user_id)
        if not existing_user:
            return None
        columns = User.__table__.columns.keys()
        for key, value in update_data.items():
            if key in ("id", "password"):
                continue
            if key in columns:
                setattr(existing_user, key, value)
        return self.save(existing_user)

    def increment_report_count(self, user: User, report_type: str = DEFAULT_REPORT_TYPE) -> User:
        user.increment_report_count(report_type)
        return self.save(user)

    def list_users(self, limit: int = None):
        """Get all users, optionally limited"""
        query = self.db.query(User)
        if limit:
            query = query.limit(limit)
        return query.all()

    def delete_user(self, user_id: int):
        """Delete a user"""
        user = self.get_user_by_id(user_id)
        if user:
            self.db.delete(user)
            self.db.commit()
            return True
        return False
