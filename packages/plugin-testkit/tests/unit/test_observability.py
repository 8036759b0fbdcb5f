"""Unit tests for plugin_testkit.observability."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import StatusCode
from structlog.testing import capture_logs

from plugin_testkit.observability import (
    TRACER_NAME,
    artifact_operation,
    get_logger,
    get_tracer,
    span,
)


class TestAccessors:
    """Tests for logger and tracer accessors."""

    def test_logger_cached(self) -> None:
        assert get_logger() is get_logger()

    def test_tracer_cached(self) -> None:
        assert get_tracer() is get_tracer()


class TestSpan:
    """Tests for span()."""

    def test_ok_status(self) -> None:
        with span("unit_test") as s:
            pass
        assert s is not None

    def test_failure_recorded_and_reraised(self) -> None:
        fake_span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__.return_value = fake_span
        with patch("plugin_testkit.observability.get_tracer", return_value=tracer):
            with pytest.raises(RuntimeError, match="boom"):
                with span("unit_test"):
                    raise RuntimeError("boom")

        status = fake_span.set_status.call_args.args[0]
        assert status.status_code is StatusCode.ERROR
        fake_span.record_exception.assert_called_once()

    def test_failure_logged(self) -> None:
        with capture_logs() as logs:
            with pytest.raises(ValueError):
                with span("unit_test", attributes={"artifact.package": "com.a"}):
                    raise ValueError("bad input")
        failed = [entry for entry in logs if entry["event"] == "unit_test_failed"]
        assert len(failed) == 1
        assert failed[0]["error"] == "bad input"
        assert failed[0]["artifact.package"] == "com.a"


class TestArtifactOperation:
    """Tests for artifact_operation()."""

    def test_attributes(self) -> None:
        tracer = MagicMock()
        with patch("plugin_testkit.observability.get_tracer", return_value=tracer):
            with artifact_operation("sign", archive="/tmp/a.jar", package=None):
                pass

        name = tracer.start_as_current_span.call_args.args[0]
        attributes = tracer.start_as_current_span.call_args.kwargs["attributes"]
        assert name == "artifact.sign"
        assert attributes == {"artifact.operation": "sign", "artifact.archive": "/tmp/a.jar"}

    def test_tracer_name(self) -> None:
        assert TRACER_NAME == "plugin_testkit"
