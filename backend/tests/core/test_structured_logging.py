"""Tests for structured logging with correlation IDs."""

import json
import logging

from reelcast.core.logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    log_error,
    set_correlation_id,
)


def _record(message: str = "encoded", **extra) -> logging.LogRecord:
    record = logging.LogRecord("reelcast.test", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:
    def test_set_and_clear(self) -> None:
        set_correlation_id("video-123")
        assert get_correlation_id() == "video-123"

        clear_correlation_id()
        generated = get_correlation_id()
        assert generated != "video-123"
        assert get_correlation_id() == generated

    def test_filter_stamps_record(self) -> None:
        set_correlation_id("job-7")
        record = _record()

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "job-7"
        clear_correlation_id()


class TestStructuredFormatter:
    def test_json_output_with_extra_fields(self) -> None:
        set_correlation_id("video-1")
        output = json.loads(StructuredFormatter().format(_record(quality="high", size=1024)))

        assert output["message"] == "encoded"
        assert output["level"] == "INFO"
        assert output["correlation_id"] == "video-1"
        assert output["extra"] == {"quality": "high", "size": 1024}
        clear_correlation_id()

    def test_unserializable_extra_is_stringified(self) -> None:
        output = json.loads(StructuredFormatter().format(_record(path=object())))

        assert isinstance(output["extra"]["path"], str)

    def test_exception_details(self) -> None:
        try:
            raise RuntimeError("ffmpeg crashed")
        except RuntimeError as e:
            record = logging.LogRecord(
                "reelcast.test", logging.ERROR, __file__, 1, "failed", None, (type(e), e, e.__traceback__)
            )

        output = json.loads(StructuredFormatter().format(record))

        assert output["exception"]["type"] == "RuntimeError"
        assert output["exception"]["message"] == "ffmpeg crashed"
        assert output["exception"]["stack_trace"]


class TestLogHelpers:
    def test_log_error_attaches_correlation_id(self, caplog) -> None:
        set_correlation_id("video-9")
        logger = logging.getLogger("reelcast.test.helpers")

        with caplog.at_level(logging.ERROR, logger="reelcast.test.helpers"):
            log_error(logger, "Transcoding low failed", exception=ValueError("bad"), video_id="9")

        record = caplog.records[-1]
        assert record.correlation_id == "video-9"
        assert record.video_id == "9"
        assert record.exc_info is not None
        clear_correlation_id()
