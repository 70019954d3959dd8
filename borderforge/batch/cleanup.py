"""Resource reclaim between files and between chunks."""

import gc
import time
from typing import Callable, Optional

from borderforge.logger import LOGGER
from borderforge.processing.engine import ImageEngine


class ResourceReclaimer:
    """Light cleanup after every file, deep cleanup between chunks and before retries."""

    def __init__(self, engine: Optional[ImageEngine] = None):
        self.engine = engine
        self.light_runs = 0
        self.deep_runs = 0

    def light(self) -> None:
        """Collect young garbage and drop short-lived engine caches."""
        self.light_runs += 1
        gc.collect(0)
        if self.engine is not None:
            self.engine.reclaim(deep=False)

    def deep(self) -> None:
        """Full collection plus a deep engine reclaim."""
        self.deep_runs += 1
        gc.collect()
        if self.engine is not None:
            self.engine.reclaim(deep=True)
        LOGGER.debug(f"Deep cleanup #{self.deep_runs}")


def sleep_ms(ms: int, sleep: Callable[[float], None] = time.sleep) -> None:
    """Sleep for ms milliseconds; zero or less returns immediately."""
    if ms > 0:
        sleep(ms / 1000)
