"""
Exception taxonomy for the telemetry pipeline.

Two families matter to callers:

- ``RegisterDecodeError`` and its subclasses are per-channel problems. The
  transformer logs them and skips the affected reading.
- ``IngestError`` subclasses abort the whole payload (the device cannot be
  resolved or cannot be attributed to an organization).

CHANGELOG:
- 2026-10-16: Initial creation
"""


class TelemetryError(Exception):
    """Base exception for the telemetry ingestion service."""

    pass


# ---------------------------------------------------------------------------
# Per-channel decode errors
# ---------------------------------------------------------------------------


class RegisterDecodeError(TelemetryError, ValueError):
    """Raised when a group of register words cannot be decoded."""

    pass


class InsufficientRegistersError(RegisterDecodeError):
    """Raised when fewer register words were supplied than the bit width needs."""

    def __init__(self, bits_to_read: int, required: int, received: int) -> None:
        self.bits_to_read = bits_to_read
        self.required = required
        self.received = received
        super().__init__(
            f"Expected {required} register(s) for {bits_to_read} bits, "
            f"got {received}"
        )


class UnsupportedBitWidthError(RegisterDecodeError):
    """Raised when bitsToRead is not one of 8, 16, 32 or 64."""

    def __init__(self, bits_to_read: int) -> None:
        self.bits_to_read = bits_to_read
        super().__init__(f"Unsupported bitsToRead: {bits_to_read!r}")


class RegisterValueError(RegisterDecodeError):
    """Raised when a register word is not an integer in 0..65535."""

    def __init__(self, value: object, message: str | None = None) -> None:
        self.value = value
        super().__init__(message or f"Invalid register word: {value!r}")


# ---------------------------------------------------------------------------
# Payload-level (fatal) errors
# ---------------------------------------------------------------------------


class IngestError(TelemetryError):
    """Base class for errors that abort an entire ingest call."""

    pass


class DeviceNotFoundError(IngestError):
    """Raised when no device matches the payload's device identifier."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Device not found: {identifier}")


class OrganizationMissingError(IngestError):
    """Raised when the resolved device has no owning organization."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(
            f"Device {device_id} does not have an organization assigned"
        )
