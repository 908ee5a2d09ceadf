"""
Unit tests for device reply classification.
"""

import pytest

from layerslicer.hardware.reply import (
    DeviceErrorCode,
    ReplyHandler,
    ReplyKind,
    TelemetryField,
    checksum,
)


class Recorder:
    """Collects callback invocations."""

    def __init__(self):
        self.telemetry = []
        self.errors = []
        self.resends = []

    def handler(self, **kwargs):
        return ReplyHandler(
            on_telemetry=self.telemetry.append,
            on_error=lambda code, reply: self.errors.append((code, reply)),
            on_resend=lambda line, command: self.resends.append((line, command)),
            **kwargs,
        )


@pytest.fixture
def recorder():
    return Recorder()


def send_lines(handler, count):
    for i in range(count):
        handler.send(f"G1 X{i}")


@pytest.mark.unit
class TestOkReplies:

    def test_ok_with_temperatures(self, recorder):
        result = recorder.handler().handle_reply("ok T:200.1 B:60.0")
        assert result.ok
        assert result.kind is ReplyKind.OK
        assert [(t.field, t.value) for t in recorder.telemetry] == [
            (TelemetryField.NOZZLE_TEMP, 200.1),
            (TelemetryField.BED_TEMP, 60.0),
        ]
        assert recorder.errors == []

    def test_plain_ok(self, recorder):
        result = recorder.handler().handle_reply("ok")
        assert result.ok
        assert result.telemetry == ()

    def test_lowercase_fields_without_colon(self, recorder):
        result = recorder.handler().handle_reply("ok x10.5 y-2 e0.25")
        assert result.ok
        assert [t.field for t in result.telemetry] == [
            TelemetryField.X_POS, TelemetryField.Y_POS, TelemetryField.E_POS,
        ]
        assert result.telemetry[1].value == -2.0

    def test_count_field_is_ignored(self, recorder):
        result = recorder.handler().handle_reply("ok C:12 Z:0.3")
        assert result.ok
        assert [t.field for t in result.telemetry] == [TelemetryField.Z_POS]

    def test_unknown_field_is_error(self, recorder):
        result = recorder.handler().handle_reply("ok T:200 Q:1")
        assert not result.ok
        assert result.error is DeviceErrorCode.UNKNOWN_REPLY
        assert recorder.errors == [(DeviceErrorCode.UNKNOWN_REPLY, "ok T:200 Q:1")]
        # fields before the bad one were already reported
        assert len(recorder.telemetry) == 1

    def test_garbage_token_is_error(self, recorder):
        result = recorder.handler().handle_reply("ok T:abc")
        assert result.error is DeviceErrorCode.UNKNOWN_REPLY


@pytest.mark.unit
class TestResend:

    def test_resend_of_sent_line(self, recorder):
        handler = recorder.handler()
        send_lines(handler, 10)
        result = handler.handle_reply("rs N5")
        assert result.ok
        assert result.kind is ReplyKind.RESEND
        assert result.resend_line == 5
        assert recorder.resends == [(5, "G1 X5")]

    def test_resend_of_unsent_line(self, recorder):
        handler = recorder.handler()
        send_lines(handler, 3)
        result = handler.handle_reply("rs N5")
        assert result.error is DeviceErrorCode.UNSENT_RESEND
        assert result.resend_line == 5
        assert recorder.resends == []
        assert recorder.errors[0][0] is DeviceErrorCode.UNSENT_RESEND

    def test_long_form(self, recorder):
        handler = recorder.handler()
        send_lines(handler, 20)
        result = handler.handle_reply("Resend: 17")
        assert result.kind is ReplyKind.RESEND
        assert result.resend_line == 17

    def test_negative_number_is_unsent(self, recorder):
        handler = recorder.handler()
        send_lines(handler, 10)
        result = handler.handle_reply("rs -3")
        assert result.error is DeviceErrorCode.UNSENT_RESEND

    def test_missing_number_is_malformed(self, recorder):
        result = recorder.handler().handle_reply("rs")
        assert result.error is DeviceErrorCode.MALFORMED_RESEND_REQUEST

    def test_zero_is_malformed(self, recorder):
        result = recorder.handler().handle_reply("rs N0")
        assert result.error is DeviceErrorCode.MALFORMED_RESEND_REQUEST


@pytest.mark.unit
class TestOtherReplies:

    def test_start_resets_line_counter(self, recorder):
        handler = recorder.handler(initial_line=1)
        send_lines(handler, 4)
        assert handler.line_number == 5
        result = handler.handle_reply("start")
        assert result.ok
        assert result.kind is ReplyKind.START
        assert result.telemetry == ()
        assert handler.line_number == 1
        assert handler.history == {}

    def test_hardware_fault(self, recorder):
        result = recorder.handler().handle_reply("!! thermal runaway")
        assert result.error is DeviceErrorCode.HARDWARE_FAULT
        assert recorder.errors == [(DeviceErrorCode.HARDWARE_FAULT, "!! thermal runaway")]

    def test_unknown_reply(self, recorder):
        result = recorder.handler().handle_reply("echo: busy")
        assert result.error is DeviceErrorCode.UNKNOWN_REPLY

    def test_surrounding_whitespace(self, recorder):
        assert recorder.handler().handle_reply("  ok\r\n").ok

    def test_no_callbacks(self):
        handler = ReplyHandler()
        assert handler.handle_reply("ok T:21.5").ok
        assert not handler.handle_reply("!!").ok


@pytest.mark.unit
class TestSend:

    def test_line_numbering_and_checksum(self):
        handler = ReplyHandler()
        assert handler.send("G28") == "N0 G28*19"
        assert handler.send("G1 X1") == f"N1 G1 X1*{checksum('N1 G1 X1')}"
        assert handler.history == {0: "G28", 1: "G1 X1"}

    def test_checksum_is_xor(self):
        assert checksum("") == 0
        assert checksum("A") == 65
        assert checksum("AA") == 0
