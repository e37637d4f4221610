import logging

from celery import Celery
from celery.signals import task_failure

from affiliate_hub.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "affiliate_hub",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "affiliate_hub.workers.tasks.affiliate",
        "affiliate_hub.workers.tasks.notifications",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,
    task_soft_time_limit=300,
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "check-link-health-daily": {
        "task": "affiliate.run_link_health_check",
        "schedule": 86400.0,
    },
    "monitor-fraud-hourly": {
        "task": "affiliate.run_fraud_monitoring",
        "schedule": 3600.0,
    },
    "update-campaign-statuses-hourly": {
        "task": "affiliate.update_campaign_statuses",
        "schedule": 3600.0,
    },
    "check-campaigns-ending-daily": {
        "task": "affiliate.check_campaigns_ending_soon",
        "schedule": 86400.0,
    },
    "check-milestones-daily": {
        "task": "affiliate.check_milestones",
        "schedule": 86400.0,
    },
}


@task_failure.connect
def handle_task_failure(
    sender=None,
    task_id=None,
    exception=None,
    args=None,
    kwargs=None,
    traceback=None,
    einfo=None,
    **kw,
):
    task_name = sender.name if sender else "unknown"
    logger.error(
        f"Task {task_name} ({task_id or 'N/A'}) failed: {exception} "
        f"args={args} kwargs={kwargs}"
    )
