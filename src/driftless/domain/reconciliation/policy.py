"""Execution policies: parallelism, retry backoff and propagation polling."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

DEFAULT_PARALLELISM = 10


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Exponential backoff for transient provider errors.

    ``attempts`` counts the first call, so ``attempts=1`` disables retries.
    """

    attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: float = 0.2

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("Backoff attempts must be at least 1")

    def delay(self, attempt: int, *, retry_after: float | None = None) -> float:
        """Seconds to wait after the ``attempt``-th failed call (1-based)."""

        backoff = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if retry_after is not None:
            backoff = min(self.max_delay, max(backoff, retry_after))
        if self.jitter:
            backoff += random.uniform(0, backoff * self.jitter)  # noqa: S311
        return backoff


@dataclass(frozen=True, slots=True)
class PropagationPolicy:
    """How long to poll a provider for applied values to become observable."""

    interval_seconds: float = 2.0
    attempts: int = 15

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("Propagation attempts must be at least 1")


@dataclass(frozen=True, slots=True)
class ExecutionConfig:
    parallelism: int = DEFAULT_PARALLELISM
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    propagation: PropagationPolicy = field(default_factory=PropagationPolicy)
    refresh: bool = True

    def __post_init__(self) -> None:
        if self.parallelism < 1:
            raise ValueError("Parallelism must be at least 1")
