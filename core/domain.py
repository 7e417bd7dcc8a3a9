"""
Domain Layer Base Classes.

The domain layer contains pure business logic with no external dependencies.
This makes business rules:
- Easy to test (no mocking needed)
- Reusable across the HTTP surface and background jobs
- Clear and self-documenting

Example Usage:
    class TransitionPolicy(PolicyEngine):
        def evaluate(self, context) -> PolicyDecision:
            # Pure business logic here
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar
from datetime import datetime, timezone
from enum import Enum

T = TypeVar("T")

# Fixed-width so stored timestamps sort lexicographically
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class PolicyResult(Enum):
    """Result of a policy evaluation."""
    APPROVED = "approved"
    DENIED = "denied"


@dataclass
class PolicyDecision:
    """
    The outcome of a policy evaluation.

    Attributes:
        result: The policy decision result
        reason: Human-readable explanation
        metadata: Additional context for the decision
    """
    result: PolicyResult
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return self.result == PolicyResult.APPROVED

    @property
    def is_denied(self) -> bool:
        return self.result == PolicyResult.DENIED


class PolicyEngine(ABC):
    """
    Abstract base class for policy engines.

    A PolicyEngine encapsulates a set of business rules that can be
    evaluated against a context to produce a decision.
    """

    @abstractmethod
    def get_policies(self) -> List[str]:
        """Names of the rules this engine checks, in evaluation order."""
        pass

    @abstractmethod
    def evaluate(self, context: Any) -> PolicyDecision:
        """
        Evaluate the policy against the given context.

        Args:
            context: Object or dictionary containing all data needed for evaluation

        Returns:
            PolicyDecision with the result and explanation
        """
        pass


# =============================================================================
# ERRORS AND RESULTS
# =============================================================================

class DomainError(Exception):
    """
    Base class for every error a domain operation can report.

    Subclasses set ``code`` (stable identifier used by the HTTP layer) and
    ``retryable`` (whether repeating the same operation may succeed).
    """
    code: str = "domain_error"
    retryable: bool = False
    default_message: str = "Domain operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


@dataclass
class OperationResult(Generic[T]):
    """
    Success value or failure of a domain operation.

    Exactly one of ``value`` / ``error`` is meaningful: ``ok`` tells which.
    """
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: DomainError) -> "OperationResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime to the fixed-width stored representation."""
    return ensure_utc(value).strftime(ISO_FORMAT)


def parse_date(date_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO format date string safely."""
    if not date_string:
        return None
    try:
        if date_string.endswith("Z"):
            return ensure_utc(datetime.fromisoformat(date_string[:-1] + "+00:00"))
        return ensure_utc(datetime.fromisoformat(date_string))
    except (ValueError, TypeError):
        return None
