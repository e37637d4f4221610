"""
Best-effort submission of background work.

Request paths hand work to Celery through these helpers. A failure to
enqueue is logged and dropped so the calling operation is never aborted.
Work tied to database writes is registered with ``on_commit`` and only
submitted once the session's transaction commits; a rollback discards it.
"""

import logging
from functools import partial
from typing import Any, Callable

from sqlalchemy.event import listens_for
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

ON_COMMIT_KEY = "dispatch_on_commit"


def on_commit(db: AsyncSession | Session, callback: Callable[..., Any], *args, **kwargs) -> None:
    """Run ``callback`` after the current transaction of ``db`` commits."""
    session = db.sync_session if isinstance(db, AsyncSession) else db
    session.info.setdefault(ON_COMMIT_KEY, []).append(partial(callback, *args, **kwargs))


@listens_for(Session, "after_commit")
def _run_on_commit(session: Session) -> None:
    # Releasing a savepoint also fires after_commit
    if session.in_nested_transaction():
        return
    for callback in session.info.pop(ON_COMMIT_KEY, []):
        try:
            callback()
        except Exception as e:
            logger.error(f"Post-commit dispatch failed: {e}")


@listens_for(Session, "after_transaction_end")
def _discard_on_commit(session: Session, transaction: SessionTransaction) -> None:
    # Anything still queued when the outermost transaction ends was rolled back
    if transaction.parent is None and session.info.pop(ON_COMMIT_KEY, None):
        logger.info("Discarded background work from a rolled back transaction")


def schedule_click_increment(link_id: str) -> None:
    try:
        from affiliate_hub.workers.tasks.affiliate import increment_link_clicks_task

        increment_link_clicks_task.delay(link_id)
    except Exception as e:
        logger.warning(f"Failed to enqueue click increment for link {link_id}: {e}")


def schedule_conversion_increment(link_id: str) -> None:
    try:
        from affiliate_hub.workers.tasks.affiliate import increment_link_conversions_task

        increment_link_conversions_task.delay(link_id)
    except Exception as e:
        logger.warning(f"Failed to enqueue conversion increment for link {link_id}: {e}")


def enqueue_email(
    to_email: str,
    template: str,
    context: dict[str, Any] | None = None,
    name: str | None = None,
) -> bool:
    try:
        from affiliate_hub.workers.tasks.notifications import send_email_task

        send_email_task.delay(to_email=to_email, template=template, context=context, name=name)
        return True
    except Exception as e:
        logger.error(f"Failed to enqueue {template} email to {to_email}: {e}")
        return False
