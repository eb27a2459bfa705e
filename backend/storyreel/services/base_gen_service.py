from __future__ import annotations
"""Base generation service: bounded attempts, timeout, and usage metrics."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from storyreel.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationError(UpstreamServiceError):
    """A generation backend failed or timed out."""

    def __init__(self, message: str, service: str = "unknown"):
        super().__init__(message)
        self.service = service


@dataclass
class GenResult(Generic[T]):
    """Standardized generation result."""
    data: T
    provider: str
    latency_ms: int
    attempts: int


@dataclass
class GenServiceConfig:
    """Configuration for a generation service.

    max_retries defaults to 0: media generation is a single bounded attempt.
    """
    max_retries: int = 0
    retry_delay: float = 2.0
    timeout: float = 600.0


class BaseGenService(ABC, Generic[T]):
    """Abstract base class for all generation services.

    Provides:
    - Timeout enforcement per attempt
    - Optional retry with linear backoff
    - Call/error/latency metrics
    """

    service_name: str = "unknown"
    config: GenServiceConfig

    def __init__(self, config: GenServiceConfig | None = None):
        self.config = config or GenServiceConfig()
        self._total_calls = 0
        self._total_errors = 0
        self._total_latency_ms = 0

    async def execute(self, **kwargs: Any) -> GenResult[T]:
        """Unified execution entry point with timeout/retry/metrics."""
        self._total_calls += 1
        start = time.monotonic()
        last_error: Exception | None = None

        for attempt in range(self.config.max_retries + 1):
            try:
                result = await asyncio.wait_for(
                    self._generate(**kwargs),
                    timeout=self.config.timeout,
                )
                latency = int((time.monotonic() - start) * 1000)
                self._total_latency_ms += latency
                return GenResult(
                    data=result,
                    provider=self.service_name,
                    latency_ms=latency,
                    attempts=attempt + 1,
                )
            except asyncio.TimeoutError:
                last_error = GenerationError(
                    f"{self.service_name} timed out after {self.config.timeout:.0f}s",
                    service=self.service_name,
                )
            except Exception as e:
                last_error = e
            self._total_errors += 1
            logger.warning(
                "%s attempt %d/%d failed: %s",
                self.service_name, attempt + 1, self.config.max_retries + 1, last_error,
            )
            if attempt < self.config.max_retries:
                await asyncio.sleep(self.config.retry_delay * (attempt + 1))

        if isinstance(last_error, UpstreamServiceError):
            raise last_error
        raise GenerationError(
            f"{self.service_name} failed: {last_error}", service=self.service_name
        ) from last_error

    @abstractmethod
    async def _generate(self, **kwargs: Any) -> T:
        """Subclass implements actual generation logic."""
        ...

    def get_metrics(self) -> dict[str, Any]:
        """Return usage statistics for this service."""
        succeeded = self._total_calls - min(self._total_errors, self._total_calls)
        return {
            "service": self.service_name,
            "total_calls": self._total_calls,
            "total_errors": self._total_errors,
            "error_rate": round(self._total_errors / max(self._total_calls, 1), 3),
            "avg_latency_ms": (
                round(self._total_latency_ms / succeeded) if succeeded else 0
            ),
        }
