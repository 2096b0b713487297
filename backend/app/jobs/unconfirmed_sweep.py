"""Removes accounts that never confirmed their email.

Signup deletes its own account when a later step fails, but that deletion
can fail too. This sweep is the backstop for those leftovers and for
abandoned signups.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.config import settings
from app.core.logging import get_logger
from app.models.otp import OtpToken
from app.models.user import User

logger = get_logger(__name__)

JOB_KEY = "unconfirmed_account_sweep"


def sweep_unconfirmed_accounts(
    db: Session,
    older_than: timedelta | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """
    Delete unconfirmed accounts created before ``now - older_than`` and
    retire their unused codes.

    Returns:
        Stats dict (scanned, deleted, codes_retired, failed)
    """
    now = now or utcnow()
    cutoff = now - (older_than or timedelta(hours=settings.UNCONFIRMED_ACCOUNT_TTL_HOURS))
    stale = (
        db.query(User)
        .filter(User.email_confirmed_at.is_(None), User.created_at < cutoff)
        .order_by(User.created_at)
        .all()
    )
    stats = {"scanned": len(stale), "deleted": 0, "codes_retired": 0, "failed": 0}
    if dry_run:
        return stats

    for user in stale:
        user_id = user.id
        try:
            retired = db.execute(
                update(OtpToken)
                .where(OtpToken.email == user.email, OtpToken.is_used.is_(False))
                .values(is_used=True, used_at=now)
                .returning(OtpToken.id)
                .execution_options(synchronize_session="fetch")
            ).all()
            db.delete(user)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            stats["failed"] += 1
            logger.error(
                "Failed to sweep unconfirmed account",
                extra={"user_id": str(user_id), "error": str(e)},
            )
            continue
        stats["deleted"] += 1
        stats["codes_retired"] += len(retired)

    logger.info("Unconfirmed account sweep finished", extra={"job_key": JOB_KEY, **stats})
    return stats
