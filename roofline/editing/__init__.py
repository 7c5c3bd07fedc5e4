"""Interactive polygon editing."""

from .debounce import Debouncer, LoopScheduler, ManualScheduler, Scheduler
from .controller import EditController

__all__ = [
    "Debouncer",
    "LoopScheduler",
    "ManualScheduler",
    "Scheduler",
    "EditController",
]
