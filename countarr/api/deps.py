from fastapi import Request

from countarr.services.scheduler import SyncScheduler


def get_scheduler(request: Request) -> SyncScheduler:
    """Der im Lifespan erzeugte Scheduler"""
    return request.app.state.scheduler
