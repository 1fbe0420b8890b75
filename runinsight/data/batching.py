"""
Batch Scheduler
===============

Runs a per-user fetch over a population in fixed-size groups: members of a
group run concurrently, groups run one after another with a pause between
them to stay under upstream rate limits.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from loguru import logger

from config import get_config

T = TypeVar("T")


@dataclass
class FetchOutcome(Generic[T]):
    """Result of fetching one user's data: either a value or the error that replaced it."""

    user_id: int
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchScheduler:
    """Partition user ids into groups and fetch each group concurrently."""

    def __init__(
        self,
        config: Optional[dict] = None,
        group_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize BatchScheduler.

        Args:
            config: Configuration dictionary
            group_size: Members per group, overrides config
            delay_seconds: Pause between groups, overrides config
            sleep: Coroutine used for the pause between groups
        """
        self.config = config or get_config()
        batch_config = self.config.get("batch", {})

        self.group_size = group_size or int(batch_config.get("group_size", 3))
        self.delay_seconds = delay_seconds if delay_seconds is not None else float(batch_config.get("delay_seconds", 1.0))
        if self.group_size < 1:
            raise ValueError(f"group_size must be at least 1, got {self.group_size}")

        self._sleep = sleep

    @staticmethod
    def partition(user_ids: Sequence[int], group_size: int) -> List[List[int]]:
        """Split ids into consecutive groups of ``group_size`` (the last may be shorter)."""
        return [list(user_ids[i:i + group_size]) for i in range(0, len(user_ids), group_size)]

    async def run(
        self,
        user_ids: Sequence[int],
        fetch: Callable[[int], Awaitable[T]],
        label: str = "items",
    ) -> List[FetchOutcome[T]]:
        """
        Fetch every user, group by group.

        Args:
            user_ids: Population to fetch
            fetch: Coroutine function fetching one user's data
            label: Name used in log messages

        Returns:
            One FetchOutcome per user id, in input order
        """
        groups = self.partition(list(user_ids), self.group_size)
        outcomes: List[FetchOutcome[T]] = []

        logger.info(f"Fetching {label} for {len(user_ids)} users in {len(groups)} groups of {self.group_size}")

        for index, group in enumerate(groups):
            results = await asyncio.gather(*(self._fetch_member(user_id, fetch, label) for user_id in group))
            outcomes.extend(results)

            if index < len(groups) - 1 and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        logger.info(f"Fetched {label}: {len(outcomes) - failed} ok, {failed} failed")
        return outcomes

    async def _fetch_member(
        self,
        user_id: int,
        fetch: Callable[[int], Awaitable[T]],
        label: str,
    ) -> FetchOutcome[T]:
        try:
            return FetchOutcome(user_id=user_id, value=await fetch(user_id))
        except Exception as e:
            logger.error(f"Error fetching {label} for user {user_id}: {e}")
            return FetchOutcome(user_id=user_id, error=e)
