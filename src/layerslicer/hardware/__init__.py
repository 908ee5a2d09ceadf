"""
Hardware module - Device reply classification at the host boundary.
"""

from layerslicer.hardware.reply import (
    DeviceErrorCode,
    ReplyHandler,
    ReplyKind,
    ReplyResult,
    Telemetry,
    TelemetryField,
)

__all__ = [
    "DeviceErrorCode",
    "ReplyHandler",
    "ReplyKind",
    "ReplyResult",
    "Telemetry",
    "TelemetryField",
]
