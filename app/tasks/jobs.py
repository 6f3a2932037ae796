from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.send_push_to_user")
def send_push_to_user(user_id: str, title: str, body: str, data: dict | None = None):
    return worker_jobs.send_push_to_user(user_id, title, body, data)

@celery.task(name="app.tasks.jobs.send_push_to_admins")
def send_push_to_admins(title: str, body: str, data: dict | None = None):
    return worker_jobs.send_push_to_admins(title, body, data)
