from rentchain.tasks.celery_app import celery
from rentchain.tasks import worker_jobs


@celery.task(name="rentchain.tasks.jobs.process_settlement_queue")
def process_settlement_queue(limit: int = 50):
    return worker_jobs.process_settlement_queue(limit=limit)


@celery.task(name="rentchain.tasks.jobs.retry_settlement")
def retry_settlement(booking_id: str):
    return worker_jobs.retry_settlement(booking_id)
