# app/domain/ports/scheduler.py
from abc import ABC, abstractmethod
from typing import Callable


class ScheduledTask(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Evita la ejecución futura; no interrumpe una ejecución en curso."""
        pass


class Scheduler(ABC):
    """Puerto para programar ejecuciones diferidas y cancelables."""

    @abstractmethod
    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledTask:
        pass
