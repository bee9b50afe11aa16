from villa_api.tasks.celery_app import celery
from villa_api.tasks import worker_jobs

@celery.task(name="villa_api.tasks.jobs.expire_checkout_sessions")
def expire_checkout_sessions():
    return worker_jobs.expire_checkout_sessions()


@celery.task(name="villa_api.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
