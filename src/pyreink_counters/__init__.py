"""pyreink-counters: inspect and reset Epson waste ink pad counters over USB via reinkpy."""

__version__ = "0.1.0"

from .classifier import AMBIGUOUS_ADDRESSES, classify
from .device import DeviceAccess, EpsonDevice, list_devices, open_device, select_device
from .errors import (
    DeviceReadError,
    DeviceWriteError,
    MalformedAddressInputError,
    NoCountersAvailableError,
    NoDeviceFoundError,
    PyReinkCountersError,
)
from .normalize import extract_log_addresses, parse_address_list
from .overrides import OverrideTable, get_default_overrides
from .reader import aggregate, read_all, read_group
from .render import append_csv, render_text
from .reset import reset
from .session import CounterSession
from .types import (
    AddressReading,
    CounterGroup,
    CounterKind,
    DetailLevel,
    GroupReading,
    MemoryRegion,
    RenderOptions,
    Report,
    ResetTarget,
)

__all__ = [
    "__version__",
    "AMBIGUOUS_ADDRESSES",
    "classify",
    "DeviceAccess",
    "EpsonDevice",
    "list_devices",
    "open_device",
    "select_device",
    "DeviceReadError",
    "DeviceWriteError",
    "MalformedAddressInputError",
    "NoCountersAvailableError",
    "NoDeviceFoundError",
    "PyReinkCountersError",
    "extract_log_addresses",
    "parse_address_list",
    "OverrideTable",
    "get_default_overrides",
    "aggregate",
    "read_all",
    "read_group",
    "append_csv",
    "render_text",
    "reset",
    "CounterSession",
    "AddressReading",
    "CounterGroup",
    "CounterKind",
    "DetailLevel",
    "GroupReading",
    "MemoryRegion",
    "RenderOptions",
    "Report",
    "ResetTarget",
]
