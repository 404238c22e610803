"""Celery application configuration."""

from celery import Celery

from src.config import get_settings

settings = get_settings()

app = Celery(
    "recipe_import",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["src.tasks.recipe_import"],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # A run interrupted by a lost worker is redelivered and resumes its batch
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_time_limit=3600,  # 1 hour max per import run
    task_soft_time_limit=3300,
)
