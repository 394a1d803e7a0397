from celery import Celery
from recovery_match.settings import settings

celery = Celery("recovery_match", include=["recovery_match.tasks"])
celery.conf.broker_url = settings.REDIS_URL
celery.conf.result_backend = settings.REDIS_URL
celery.conf.task_routes = {"recovery_match.tasks.*": {"queue": "default"}}
