"""Account store: lookup, atomic create-if-absent, delete and confirm."""

from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.app_exceptions import AccountCreationError, AccountExistsError
from app.core.logging import get_logger
from app.core.redis_lock import redis_lock
from app.core.security import hash_password
from app.models.user import User

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityProvider:
    """Accounts are global: one email maps to at most one account across all tenants."""

    def __init__(self, db: Session):
        self.db = db

    def find_user_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def get_user(self, user_id: UUID) -> User | None:
        return self.db.get(User, user_id)

    def create_user_if_absent(
        self,
        email: str,
        password: str | None,
        metadata: dict[str, Any] | None = None,
        confirmed: bool = False,
    ) -> User:
        """
        Create an account unless one already exists for the email.

        Concurrent calls for the same email are serialized by a Redis lock;
        the unique index on ``users.email`` settles any race the lock misses.

        Raises:
            AccountExistsError: an account with this email exists (or is being created)
            AccountCreationError: the write failed
        """
        email = normalize_email(email)
        with redis_lock(f"signup:email:{email}") as acquired:
            if not acquired:
                raise AccountExistsError()
            if self.find_user_by_email(email) is not None:
                raise AccountExistsError()

            user = User(
                email=email,
                password_hash=hash_password(password) if password else None,
                email_confirmed_at=utcnow() if confirmed else None,
                user_metadata=metadata or {},
            )
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise AccountExistsError(cause=e) from e
            except SQLAlchemyError as e:
                self.db.rollback()
                raise AccountCreationError(cause=e) from e

        logger.info("Account created", extra={"user_id": str(user.id), "confirmed": confirmed})
        return user

    def delete_user(self, user_id: UUID) -> bool:
        """Delete an account and everything that cascades from it."""
        user = self.db.get(User, user_id)
        if user is None:
            return False
        try:
            self.db.delete(user)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Account deleted", extra={"user_id": str(user_id)})
        return True

    def confirm_user(self, user: User) -> User:
        if user.email_confirmed_at is None:
            user.email_confirmed_at = utcnow()
        return user
