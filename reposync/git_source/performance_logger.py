"""Timing of synchronization phases."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Optional, Any, Generator, List


@dataclass
class PhaseTiming:
    """Timing for one synchronization phase."""
    operation: str
    duration: float
    success: bool = True
    context: Optional[Dict[str, Any]] = None


class PerformanceLogger:
    """Collects and logs how long each phase of a sync takes."""

    def __init__(self, logger_name: str = 'reposync.git_source.performance'):
        self.logger = logging.getLogger(logger_name)
        self.timings: List[PhaseTiming] = []

    @contextmanager
    def time_operation(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Context manager for timing operations.

        Failures are recorded and re-raised unchanged.
        """
        start_time = time.monotonic()
        self.logger.log(log_level, f"Starting {operation}")

        success = True
        try:
            yield
        except Exception as e:
            success = False
            self.logger.log(log_level, f"{operation} failed after {time.monotonic() - start_time:.3f}s: {e}")
            raise
        finally:
            duration = time.monotonic() - start_time
            self.timings.append(PhaseTiming(operation=operation, duration=duration,
                                            success=success, context=context))
            if success:
                self.logger.log(log_level, f"Completed {operation} in {duration:.3f}s")

    def summary(self) -> Dict[str, float]:
        return {timing.operation: round(timing.duration, 3) for timing in self.timings}
