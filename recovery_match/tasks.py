from celery import shared_task

from recovery_match.scheduler import get_matching_service

@shared_task(name="recovery_match.tasks.run_matching_scan")
def run_matching_scan() -> dict:
    # shares the Redis run lock with the web app scheduler
    return get_matching_service().run().to_dict()
