"""FastAPI dependencies resolving services created in the app lifespan."""
from fastapi import Request

from .services import SchedulerService, Storage


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_scheduler(request: Request) -> SchedulerService:
    return request.app.state.scheduler
