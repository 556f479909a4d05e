from celery import Celery
from synapse.config import settings

celery_app = Celery(
    "synapse_analysis",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["synapse.tasks"],   # <<-- ensure tasks module is imported on worker start
)

celery_app.conf.task_routes = {
    "synapse.tasks.analyze_document_task": {"queue": settings.celery_queue}
}

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # model timeout plus storage/db round trips
    task_soft_time_limit=int(settings.model_timeout) + 120,
)
