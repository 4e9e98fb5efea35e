"""Unit tests for the metric error taxonomy."""

import psutil
import pytest

from src.hostwatch.monitoring.deadline import Deadline
from src.hostwatch.monitoring.errors import (
    JoinedMetricError,
    MetricError,
    MetricErrorKind,
    classify_exception,
    contains_error,
    find_error,
    io_error,
    is_permission_error,
    is_sensor_error,
    is_system_error,
    is_timeout,
    iter_errors,
    join_errors,
    sensor_error,
    system_error,
    timeout_error,
    wrap_exception,
)


class TestMetricError:
    """MetricError formatting and cause chaining."""

    def test_str_includes_kind_operation_and_message(self):
        err = system_error("collect_cpu_info", "failed to get CPU info")
        assert str(err) == "system_error: collect_cpu_info failed: failed to get CPU info"

    def test_cause_is_chained(self):
        cause = OSError("boom")
        err = io_error("collect_disk_info", "failed", cause)
        assert err.unwrap() is cause
        assert err.__cause__ is cause

    def test_timeout_default_message(self):
        err = timeout_error("collect_system_stats")
        assert err.kind == MetricErrorKind.TIMEOUT
        assert err.message == "deadline exceeded"

    def test_kind_accepts_string_value(self):
        err = MetricError("sensor_error", "op", "msg")
        assert err.kind is MetricErrorKind.SENSOR


class TestJoinErrors:
    """join_errors collapses a cycle's failures into one value."""

    def test_nothing_to_join_returns_none(self):
        assert join_errors() is None
        assert join_errors(None, None) is None

    def test_single_error_is_returned_as_is(self):
        err = sensor_error("op", "msg")
        assert join_errors(None, err, None) is err

    def test_multiple_errors_keep_order(self):
        first = sensor_error("a", "one")
        second = system_error("b", "two")
        joined = join_errors(first, None, second)

        assert isinstance(joined, JoinedMetricError)
        assert joined.errors == (first, second)
        assert len(joined) == 2
        assert str(joined) == f"{first}\n{second}"


class TestInspection:
    """Predicates see every constituent of a joined error."""

    def test_is_timeout_inside_joined_error(self):
        joined = join_errors(sensor_error("a", "x"), timeout_error("b"))
        assert is_timeout(joined)
        assert is_sensor_error(joined)
        assert not is_permission_error(joined)

    def test_predicates_follow_cause_chain(self):
        inner = system_error("inner", "failed")
        outer = MetricError(MetricErrorKind.IO, "outer", "wrapped", inner)
        assert is_system_error(outer)
        assert contains_error(outer, inner)

    def test_predicates_on_none(self):
        assert not is_timeout(None)
        assert list(iter_errors(None)) == []

    def test_find_error_returns_first_match(self):
        cause = ValueError("bad value")
        joined = join_errors(system_error("a", "x", cause), sensor_error("b", "y"))
        assert find_error(joined, ValueError) is cause
        assert find_error(joined, KeyError) is None

    def test_contains_error_uses_identity(self):
        err = sensor_error("a", "x")
        other = sensor_error("a", "x")
        joined = join_errors(err, system_error("b", "y"))
        assert contains_error(joined, err)
        assert not contains_error(joined, other)

    def test_iter_errors_is_depth_first(self):
        cause = OSError("disk")
        first = io_error("a", "x", cause)
        second = sensor_error("b", "y")
        joined = join_errors(first, second)
        assert list(iter_errors(joined)) == [joined, first, cause, second]


class TestWrapException:
    """Raw exceptions are classified into the taxonomy."""

    @pytest.mark.parametrize(
        "exc, expected",
        [
            (psutil.AccessDenied(), MetricErrorKind.PERMISSION),
            (PermissionError("denied"), MetricErrorKind.PERMISSION),
            (NotImplementedError(), MetricErrorKind.UNSUPPORTED),
            (TimeoutError(), MetricErrorKind.TIMEOUT),
            (OSError("other"), MetricErrorKind.SYSTEM),
        ],
    )
    def test_classify_exception(self, exc, expected):
        assert classify_exception(exc) == expected

    def test_default_kind_is_used_for_unknown_exceptions(self):
        err = wrap_exception("collect_disk_info", OSError("io"), "failed", MetricErrorKind.IO)
        assert err.kind == MetricErrorKind.IO
        assert err.cause.args == ("io",)

    def test_metric_error_passes_through(self):
        original = sensor_error("op", "msg")
        assert wrap_exception("other", original) is original

    def test_expired_deadline_wins(self):
        deadline = Deadline.never()
        deadline.cancel()
        err = wrap_exception("op", OSError("io"), deadline=deadline)
        assert err.kind == MetricErrorKind.TIMEOUT
        assert err.message == "operation was canceled"
