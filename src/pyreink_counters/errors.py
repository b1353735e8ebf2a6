"""Exceptions for pyreink-counters: device discovery, counter classification, EEPROM I/O and address input."""

from typing import Sequence


def _hex_list(addresses: Sequence[int] | None) -> str:
    return ",".join(f"0x{a:02x}" for a in addresses or ())


class PyReinkCountersError(Exception):
    """Base exception for pyreink-counters."""

    pass


class NoDeviceFoundError(PyReinkCountersError):
    """Raised when no USB printer is found, or the requested device index does not exist."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "No USB printer found")


class NoCountersAvailableError(PyReinkCountersError):
    """Raised when the model spec declares no waste/platen counters and no manual addresses were given."""

    def __init__(self, model: str, message: str | None = None) -> None:
        self.model = model
        super().__init__(message or f"No waste/platen counter addresses available for model {model!r}")


class MalformedAddressInputError(PyReinkCountersError):
    """Raised when a manual address list does not match the 0xNN[,0xNN...] grammar."""

    def __init__(self, raw: str, message: str | None = None) -> None:
        self.raw = raw
        super().__init__(message or f"Malformed address list: {raw!r} (expected e.g. 0x2f,0x30,0x31)")


class DeviceReadError(PyReinkCountersError):
    """Raised when reading EEPROM bytes fails (wraps reinkpy/pyusb errors)."""

    def __init__(
        self,
        message: str,
        *,
        group: str | None = None,
        addresses: Sequence[int] | None = None,
        cause: BaseException | None = None,
        permission_denied: bool = False,
    ) -> None:
        self.reason = message
        self.group = group
        self.addresses = tuple(addresses or ())
        self.cause = cause
        self.permission_denied = permission_denied
        if group:
            where = f"group {group!r} [{_hex_list(addresses)}]"
        elif addresses:
            where = f"addresses [{_hex_list(addresses)}]"
        else:
            where = "device"
        super().__init__(f"Read failed for {where}: {message}")


class DeviceWriteError(PyReinkCountersError):
    """Raised when an EEPROM write or the factory waste reset fails or reports failure."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        addresses: Sequence[int] | None = None,
        cause: BaseException | None = None,
        permission_denied: bool = False,
    ) -> None:
        self.reason = message
        self.operation = operation
        self.addresses = tuple(addresses or ())
        self.cause = cause
        self.permission_denied = permission_denied
        target = f" [{_hex_list(addresses)}]" if addresses else ""
        super().__init__(f"{operation}{target} failed: {message}")
