"""Error taxonomy for metric collection.

Every failure inside a metric source is reported as a MetricError tagged
with a kind, the operation that failed and a human message. Errors from
one collection cycle are merged with join_errors() into a single value
that keeps every constituent, so callers can still ask "was any of these
a timeout?" without knowing how many sources failed.
"""

from enum import Enum
from typing import Iterator, Optional, TypeVar

import psutil

from .deadline import Deadline

E = TypeVar("E", bound=BaseException)


class MetricErrorKind(str, Enum):
    SENSOR = "sensor_error"
    SYSTEM = "system_error"
    IO = "io_error"
    TIMEOUT = "timeout_error"
    PERMISSION = "permission_error"
    UNSUPPORTED = "unsupported_error"
    NETWORK_STATS = "network_stats_error"
    PROCESS_STATS = "process_stats_error"


class MetricError(Exception):
    """Structured failure of one metric collection operation.

    Attributes:
        kind: Error category
        operation: Name of the operation that failed (e.g. "collect_cpu_info")
        message: Human-readable description
        cause: Lower-level exception, also chained as __cause__
    """

    def __init__(
        self,
        kind: MetricErrorKind,
        operation: str,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(kind, operation, message)
        self.kind = MetricErrorKind(kind)
        self.operation = operation
        self.message = message
        self.cause = cause
        self.__cause__ = cause

    def unwrap(self) -> Optional[BaseException]:
        return self.cause

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.operation} failed: {self.message}"

    def __repr__(self) -> str:
        return (
            f"MetricError(kind={self.kind.value!r}, operation={self.operation!r}, "
            f"message={self.message!r}, cause={self.cause!r})"
        )


class JoinedMetricError(Exception):
    """Several independent failures reported as one exception."""

    def __init__(self, errors: list[BaseException]):
        super().__init__(*errors)
        self.errors: tuple[BaseException, ...] = tuple(errors)

    def __str__(self) -> str:
        return "\n".join(str(err) for err in self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self.errors)


def sensor_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.SENSOR, op, message, cause)


def system_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.SYSTEM, op, message, cause)


def io_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.IO, op, message, cause)


def timeout_error(op: str, message: str = "deadline exceeded") -> MetricError:
    return MetricError(MetricErrorKind.TIMEOUT, op, message)


def permission_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.PERMISSION, op, message, cause)


def unsupported_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.UNSUPPORTED, op, message, cause)


def network_stats_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.NETWORK_STATS, op, message, cause)


def process_stats_error(op: str, message: str, cause: Optional[BaseException] = None) -> MetricError:
    return MetricError(MetricErrorKind.PROCESS_STATS, op, message, cause)


def join_errors(*errors: Optional[BaseException]) -> Optional[BaseException]:
    """Merge the errors of one cycle into a single value.

    None entries are dropped. Returns None when nothing is left, the error
    itself when exactly one is left, otherwise a JoinedMetricError holding
    all of them in order.
    """
    present = [err for err in errors if err is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return JoinedMetricError(present)


def iter_errors(err: Optional[BaseException]) -> Iterator[BaseException]:
    """Walk an error tree depth-first: joined constituents and cause chains."""
    if err is None:
        return
    seen: set[int] = set()
    stack: list[BaseException] = [err]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        children: list[BaseException] = []
        if isinstance(current, JoinedMetricError):
            children.extend(current.errors)
        if current.__cause__ is not None:
            children.append(current.__cause__)
        stack.extend(reversed(children))


def find_error(err: Optional[BaseException], exc_type: type[E]) -> Optional[E]:
    """Return the first error of `exc_type` anywhere in the tree."""
    for candidate in iter_errors(err):
        if isinstance(candidate, exc_type):
            return candidate
    return None


def contains_error(err: Optional[BaseException], target: BaseException) -> bool:
    """True if `target` itself (by identity) appears anywhere in the tree."""
    return any(candidate is target for candidate in iter_errors(err))


def is_error_kind(err: Optional[BaseException], kind: MetricErrorKind) -> bool:
    return any(
        isinstance(candidate, MetricError) and candidate.kind == kind
        for candidate in iter_errors(err)
    )


def is_timeout(err: Optional[BaseException]) -> bool:
    return is_error_kind(err, MetricErrorKind.TIMEOUT)


def is_permission_error(err: Optional[BaseException]) -> bool:
    return is_error_kind(err, MetricErrorKind.PERMISSION)


def is_system_error(err: Optional[BaseException]) -> bool:
    return is_error_kind(err, MetricErrorKind.SYSTEM)


def is_sensor_error(err: Optional[BaseException]) -> bool:
    return is_error_kind(err, MetricErrorKind.SENSOR)


def classify_exception(
    exc: BaseException,
    default: MetricErrorKind = MetricErrorKind.SYSTEM,
) -> MetricErrorKind:
    """Pick the most specific kind for a raw psutil / OS exception."""
    if isinstance(exc, (psutil.AccessDenied, PermissionError)):
        return MetricErrorKind.PERMISSION
    if isinstance(exc, (NotImplementedError, AttributeError)):
        return MetricErrorKind.UNSUPPORTED
    if isinstance(exc, TimeoutError):
        return MetricErrorKind.TIMEOUT
    return default


def wrap_exception(
    op: str,
    exc: BaseException,
    message: str = "unexpected error occurred",
    default: MetricErrorKind = MetricErrorKind.SYSTEM,
    deadline: Optional[Deadline] = None,
) -> MetricError:
    """Convert an arbitrary exception into a MetricError.

    An expired deadline wins over everything else; an existing MetricError
    is passed through unchanged.
    """
    if deadline is not None and deadline.expired():
        return timeout_error(op, "operation was canceled" if deadline.cancelled else "operation timed out")
    if isinstance(exc, MetricError):
        return exc
    return MetricError(classify_exception(exc, default), op, message, exc)
