# app/infrastructure/scheduling/threading_scheduler.py
import threading
from typing import Callable

from app.domain.ports.scheduler import ScheduledTask, Scheduler


class TimerTask(ScheduledTask):
    def __init__(self, timer: threading.Timer):
        self.timer = timer

    def cancel(self) -> None:
        self.timer.cancel()


class ThreadingScheduler(Scheduler):
    """Programa cada ejecución en un `threading.Timer` demonio."""

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledTask:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True
        timer.start()
        return TimerTask(timer)
