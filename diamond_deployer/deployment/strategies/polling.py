"""
Poll-until-terminal protocol for remote steps.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, Field

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import RemoteServiceError, RemoteStepFailedError
from diamond_deployer.core.logging import get_logger, log_remote_step
from diamond_deployer.domain.models.step import RemoteStatus, RemoteStatusKind, StepStatus
from diamond_deployer.domain.repositories.step_ledger import StepLedger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PollOptions(BaseModel):
    """Backoff schedule (seconds)."""

    max_attempts: int = Field(30, ge=1)
    initial_delay: float = Field(8.0, ge=0)
    max_delay: float = Field(60.0, ge=0)
    jitter: bool = True

    @classmethod
    def from_settings(cls) -> "PollOptions":
        return cls(
            max_attempts=settings.POLL_MAX_ATTEMPTS,
            initial_delay=settings.POLL_INITIAL_DELAY,
            max_delay=settings.POLL_MAX_DELAY,
            jitter=settings.POLL_JITTER,
        )


def jittered(delay: float, enabled: bool) -> float:
    """``delay + uniform(0, delay / 2)`` when jitter is enabled."""
    if not enabled or delay <= 0:
        return delay
    return delay + random.uniform(0, delay / 2)


async def poll_until_terminal(
    step_name: str,
    fetch_status: Callable[[], Awaitable[RemoteStatus]],
    ledger: StepLedger,
    options: Optional[PollOptions] = None,
    sleep: Sleep = asyncio.sleep,
) -> Optional[RemoteStatus]:
    """
    Poll a remote step until it completes or fails.

    Args:
        step_name: Ledger step being polled
        fetch_status: Coroutine factory returning the current remote status
        ledger: Step ledger to transition
        options: Backoff schedule
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        RemoteStatus on completion, None if attempts ran out

    Raises:
        RemoteStepFailedError: The remote service reported a terminal failure
    """
    options = options or PollOptions.from_settings()
    delay = options.initial_delay

    for attempt in range(1, options.max_attempts + 1):
        try:
            status = await fetch_status()
        except (httpx.HTTPError, RemoteServiceError) as e:
            logger.warning(
                "Error polling remote step",
                step_name=step_name,
                attempt=attempt,
                error=str(e),
            )
            if attempt >= options.max_attempts:
                raise
            status = None

        if status is not None:
            if status.status is RemoteStatusKind.COMPLETED:
                ledger.update_status(
                    step_name,
                    StepStatus.EXECUTED,
                    address=status.address,
                    tx_hash=status.tx_hash,
                )
                log_remote_step(step_name, StepStatus.EXECUTED.value, address=status.address)
                return status

            if status.status is RemoteStatusKind.FAILED:
                reason = status.error or "Unknown deployment error"
                ledger.update_status(step_name, StepStatus.FAILED, error=reason)
                log_remote_step(step_name, StepStatus.FAILED.value, error=reason)
                raise RemoteStepFailedError(step_name, reason, details=status.raw)

            logger.info(
                "Remote step not terminal yet",
                step_name=step_name,
                status=status.status.value,
                attempt=attempt,
            )

        if attempt < options.max_attempts:
            await sleep(jittered(delay, options.jitter))
            delay = min(delay * 2, options.max_delay)

    logger.warning(
        "Remote step did not reach a terminal state",
        step_name=step_name,
        attempts=options.max_attempts,
    )
    return None
