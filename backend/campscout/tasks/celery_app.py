"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from campscout.config import get_settings

settings = get_settings()

celery_app = Celery(
    "campscout",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "campscout.tasks.scrape_tasks",
        "campscout.tasks.development_tasks",
        "campscout.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="US/Central",
    task_track_started=True,
    task_time_limit=1800,
    task_soft_time_limit=1740,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Pool size is the hard bound on concurrent scrapes; the in-flight count
    # in launch_pending_job can be passed by two launchers at once.
    # Scrapes worker, one slot per workflow:
    #   celery -A campscout.tasks.celery_app worker -Q scrapes
    # The development worker overrides it on the command line:
    #   celery -A campscout.tasks.celery_app worker -Q development --concurrency=2
    worker_concurrency=settings.max_concurrent_workflows,
    task_routes={
        "campscout.tasks.scrape_tasks.run_scrape_job": {"queue": "scrapes"},
        "campscout.tasks.development_tasks.*": {"queue": "development"},
    },
)

celery_app.conf.beat_schedule = {
    "dispatch-due-sources": {
        "task": "campscout.tasks.scrape_tasks.dispatch_due_sources",
        "schedule": crontab(minute="*/15"),
    },
    "relaunch-orphaned-jobs": {
        "task": "campscout.tasks.scrape_tasks.relaunch_orphaned_jobs",
        "schedule": crontab(minute="*/5"),
    },
    "fail-stale-jobs": {
        "task": "campscout.tasks.scrape_tasks.fail_stale_jobs",
        "schedule": crontab(minute=10),
    },
    "process-development-queue": {
        "task": "campscout.tasks.development_tasks.process_development_queue",
        "schedule": crontab(minute="*"),
    },
    "recover-stuck-requests": {
        "task": "campscout.tasks.development_tasks.recover_stuck_requests",
        "schedule": crontab(minute="*/10"),
    },
    "auto-queue-development": {
        "task": "campscout.tasks.development_tasks.auto_queue_development",
        "schedule": crontab(minute=20, hour="*/6"),
    },
    "cleanup-stale-requests": {
        "task": "campscout.tasks.development_tasks.cleanup_stale_requests",
        "schedule": crontab(minute=0, hour=4, day_of_week="sunday"),
    },
    "detect-cross-source-duplicates": {
        "task": "campscout.tasks.maintenance_tasks.detect_cross_source_duplicates",
        "schedule": crontab(minute=30, hour=3),
    },
    "recover-disabled-sources": {
        "task": "campscout.tasks.maintenance_tasks.recover_disabled_sources",
        "schedule": crontab(minute=0, hour=5, day_of_week="monday"),
    },
}
