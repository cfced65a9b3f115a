from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence
from dataclasses import dataclass, field
from enum import Enum
import logging
import re

logger = logging.getLogger(__name__)


class Status(str, Enum):
    """Outcome of a step or scenario"""
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RetryContext:
    """What a retry strategy gets to look at after a failed attempt"""
    feature: str
    scenario: str
    attempt: int
    remaining_retries: int
    failed_step: Optional[str] = None
    step_results: List[Any] = field(default_factory=list)


class RetryStrategy(ABC):
    """Decides whether a failed scenario attempt should run again"""

    @abstractmethod
    def should_retry(self, error: BaseException, context: RetryContext) -> bool:
        """Return True to allow another attempt"""
        pass

    @property
    def name(self) -> str:
        """Strategy name"""
        return self.__class__.__name__


class AlwaysRetry(RetryStrategy):
    """Retry up to the configured number of attempts, unconditionally"""

    def should_retry(self, error: BaseException, context: RetryContext) -> bool:
        return True


class NonRetryablePatternStrategy(RetryStrategy):
    """
    Refuses a retry when the error message matches a known non-transient pattern,
    e.g. a server error that another attempt will not fix.
    """

    DEFAULT_PATTERNS = (
        r"\b5\d\d\b.*(server|gateway)",
        r"connection refused",
        r"name or service not known",
    )

    def __init__(self, patterns: Optional[Sequence[str]] = None):
        self.patterns = [re.compile(p, re.IGNORECASE) for p in (patterns or self.DEFAULT_PATTERNS)]

    def should_retry(self, error: BaseException, context: RetryContext) -> bool:
        message = str(error)
        for pattern in self.patterns:
            if pattern.search(message):
                logger.warning(
                    f"Skipping retry of '{context.scenario}': error matches non-retryable pattern "
                    f"'{pattern.pattern}'"
                )
                return False
        return True
