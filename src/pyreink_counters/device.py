"""EpsonDevice: thin wrapper over reinkpy's USB Epson driver exposing the EEPROM access the counter engine needs."""

import errno
import logging
from typing import Any, Callable, Protocol, Sequence, Union

from reinkpy import UsbDevice
from usb.core import USBError

from .errors import DeviceReadError, DeviceWriteError, NoDeviceFoundError
from .types import BYTE_MAX, MemoryRegion

logger = logging.getLogger(__name__)

WASTE_COUNTER = "waste counter"
PLATEN_PAD_COUNTER = "platen pad counter"


class ModelSpecAccess(Protocol):
    """Declarative memory layout of the detected model."""

    @property
    def memory_regions(self) -> list[MemoryRegion]: ...

    def get_merged_region(self, name: str) -> MemoryRegion | None: ...


class DeviceAccess(Protocol):
    """Device capability consumed by the classifier, reader and reset engine."""

    @property
    def model_name(self) -> str: ...

    @property
    def spec(self) -> ModelSpecAccess: ...

    def read_bytes(self, addresses: Sequence[int]) -> list[tuple[int, int | None]]: ...

    def write_bytes(self, pairs: Sequence[tuple[int, int]], atomic: bool = True) -> bool: ...

    def perform_factory_waste_reset(self) -> bool: ...


def is_permission_error(exc: BaseException) -> bool:
    """True for EACCES from libusb/pyusb or the OS (udev rule missing, not root)."""
    if isinstance(exc, PermissionError):
        return True
    if isinstance(exc, USBError):
        return getattr(exc, "errno", None) == errno.EACCES or getattr(exc, "backend_error_code", None) == -3
    return False


def _region_from_raw(raw: Any, default_desc: str = "") -> MemoryRegion | None:
    if not raw:
        return None
    desc = raw.get("desc", default_desc) or default_desc
    addresses = [int(a) for a in raw.get("addr", ())]
    wide = [a for a in addresses if not 0 <= a <= BYTE_MAX]
    if wide:
        # two-byte EEPROM layouts; the counter engine only handles byte addresses
        logger.debug("Skipping region %r: addresses beyond 0xff %s", desc, wide)
        return None
    return MemoryRegion(description=str(desc), addresses=tuple(addresses))


class ReinkModelSpec:
    """Adapter over a reinkpy model spec (``spec.mem`` entries with ``desc``/``addr``)."""

    def __init__(self, raw_spec: Any) -> None:
        self._raw = raw_spec

    @property
    def memory_regions(self) -> list[MemoryRegion]:
        regions: list[MemoryRegion] = []
        for raw in getattr(self._raw, "mem", None) or []:
            region = _region_from_raw(raw)
            if region is not None:
                regions.append(region)
        return regions

    def get_merged_region(self, name: str) -> MemoryRegion | None:
        get_mem = getattr(self._raw, "get_mem", None)
        if get_mem is None:
            return None
        return _region_from_raw(get_mem(name), default_desc=name)


class EpsonDevice:
    """
    One USB Epson printer opened through reinkpy. Use as a context manager so
    the USB handle is released on every exit path.
    """

    def __init__(self, usb_device: Any) -> None:
        self._usb = usb_device
        self._epson: Any | None = None

    def _get_epson(self) -> Any:
        if self._epson is None:
            try:
                self._epson = self._usb.epson
            except Exception as e:
                self._release_usb()
                raise DeviceReadError(f"attach Epson driver: {str(e) or type(e).__name__}", cause=e,
                                      permission_denied=is_permission_error(e)) from e
            try:
                # loads the spec for the detected model
                self._epson.configure(True)
            except Exception as e:
                logger.warning("Could not configure model spec for %s: %s", self._usb, e)
        return self._epson

    def open(self) -> None:
        """Attach the Epson driver and load the model spec."""
        self._get_epson()

    def close(self) -> None:
        """Release the USB handle."""
        if self._epson is None:
            return
        self._release_usb()
        self._epson = None

    def _release_usb(self) -> None:
        close = getattr(self._usb, "close", None)
        if close is not None:
            try:
                close()
            except Exception as e:
                logger.warning("Error closing USB device: %s", e)

    def __enter__(self) -> "EpsonDevice":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __str__(self) -> str:
        return str(self._usb)

    @property
    def model_name(self) -> str:
        return getattr(self._get_epson(), "detected_model", None) or "Unknown"

    @property
    def spec(self) -> ReinkModelSpec:
        return ReinkModelSpec(getattr(self._get_epson(), "spec", None))

    def read_bytes(self, addresses: Sequence[int]) -> list[tuple[int, int | None]]:
        """Read EEPROM bytes in one request; a missing value comes back as None."""
        epson = self._get_epson()
        try:
            result = epson.read_eeprom(*addresses)
        except Exception as e:
            raise DeviceReadError(str(e) or type(e).__name__, addresses=addresses, cause=e,
                                  permission_denied=is_permission_error(e)) from e
        out: list[tuple[int, int | None]] = []
        for addr, value in result or ():
            out.append((int(addr), None if value is None else int(value)))
        logger.debug("read_eeprom %s -> %s", list(addresses), out)
        return out

    def write_bytes(self, pairs: Sequence[tuple[int, int]], atomic: bool = True) -> bool:
        """Write (address, value) pairs in one request; returns the device's success flag."""
        epson = self._get_epson()
        addresses = [a for a, _ in pairs]
        try:
            return bool(epson.write_eeprom(*pairs, atomic=atomic))
        except Exception as e:
            raise DeviceWriteError(str(e) or type(e).__name__, operation="write_eeprom", addresses=addresses,
                                   cause=e, permission_denied=is_permission_error(e)) from e

    def perform_factory_waste_reset(self) -> bool:
        """Run the model spec's own waste counter reset."""
        epson = self._get_epson()
        try:
            return bool(epson.reset_waste())
        except Exception as e:
            raise DeviceWriteError(str(e) or type(e).__name__, operation="reset_waste", cause=e,
                                   permission_denied=is_permission_error(e)) from e


DeviceSelector = Union[int, Callable[[list[EpsonDevice]], int], None]


def list_devices() -> list[EpsonDevice]:
    """Enumerate USB printers reinkpy can talk to."""
    try:
        return [EpsonDevice(d) for d in UsbDevice.ifind()]
    except USBError as e:
        raise NoDeviceFoundError(f"USB enumeration failed: {e}") from e


def select_device(devices: list[EpsonDevice], selector: DeviceSelector = None) -> EpsonDevice:
    """
    Pick exactly one device, once, before any EEPROM access.

    selector: None for the first device, a 0-based index, or a callable that
    receives the device list and returns an index.
    """
    if not devices:
        raise NoDeviceFoundError()
    if selector is None:
        index = 0
    elif callable(selector):
        index = selector(devices)
    else:
        index = selector
    if not 0 <= index < len(devices):
        raise NoDeviceFoundError(f"Device index {index + 1} out of range (found {len(devices)})")
    if len(devices) > 1:
        logger.info("Multiple USB devices found; using [%d] %s", index + 1, devices[index])
    return devices[index]


def open_device(selector: DeviceSelector = None) -> EpsonDevice:
    """Enumerate and select a device; the caller opens it with ``with``."""
    return select_device(list_devices(), selector)
