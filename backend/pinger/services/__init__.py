"""Services for storage, probing, and scheduling."""
from .storage import Storage
from .prober import Prober
from .scheduler import SchedulerService, SchedulerState

__all__ = ["Storage", "Prober", "SchedulerService", "SchedulerState"]
