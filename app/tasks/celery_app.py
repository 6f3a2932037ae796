import ssl

from celery import Celery

from app.core.config import settings

celery = Celery(
    "luggage_delivery",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.jobs"],
)

celery.conf.update(
    timezone="Asia/Manila",
    # pushes are fire-and-forget; nothing reads task results
    task_ignore_result=True,
    # local/dev and tests run pushes inline instead of through Redis
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)

# hosted Redis over TLS (rediss://) needs explicit cert settings for both broker and backend
if settings.REDIS_URL.strip().lower().startswith("rediss://"):
    celery.conf.broker_use_ssl = {"ssl_cert_reqs": ssl.CERT_NONE}
    celery.conf.redis_backend_use_ssl = {"ssl_cert_reqs": ssl.CERT_NONE}
