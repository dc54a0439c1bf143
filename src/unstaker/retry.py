import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

log = logging.getLogger("unstaker.retry")

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class RetryLimitExceeded(RuntimeError):
    def __init__(self, label: str, attempts: int):
        super().__init__(f"{label}: gave up after {attempts} attempts")
        self.label = label
        self.attempts = attempts


@dataclass(slots=True)
class RetryPolicy:
    """Fixed-delay retry. ``limit=None`` retries forever, which is what unattended runs want.

    ``sleep`` is injectable so tests can count waits without actually waiting.
    """

    delay: float
    limit: int | None = None
    sleep: Sleep = field(default=asyncio.sleep)

    def exhausted(self, attempts: int) -> bool:
        return self.limit is not None and attempts >= self.limit

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        retry_on: tuple[type[BaseException], ...],
        label: str,
    ) -> T:
        attempts = 0
        while True:
            try:
                return await fn()
            except retry_on as e:
                attempts += 1
                if self.exhausted(attempts):
                    log.error("%s failed %d times, giving up: %s", label, attempts, e)
                    raise RetryLimitExceeded(label, attempts) from e
                log.warning("Error %s - %s, retrying in %ss", label, e, self.delay)
                await self.sleep(self.delay)
