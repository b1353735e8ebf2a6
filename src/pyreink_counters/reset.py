"""Reset engine: zero explicit EEPROM addresses atomically, or run the model's own waste reset."""

import logging
from typing import Callable

from .device import DeviceAccess, is_permission_error
from .errors import DeviceWriteError
from .normalize import format_address_list
from .types import ResetTarget

logger = logging.getLogger(__name__)


def _run(operation: str, addresses: list[int], call: Callable[[], bool]) -> bool:
    try:
        ok = call()
    except DeviceWriteError:
        raise
    except Exception as e:
        raise DeviceWriteError(str(e) or type(e).__name__, operation=operation, addresses=addresses,
                               cause=e, permission_denied=is_permission_error(e)) from e
    if not ok:
        raise DeviceWriteError("device reported failure", operation=operation, addresses=addresses)
    return True


def reset(device: DeviceAccess, target: ResetTarget) -> bool:
    """
    Reset waste counters on the device. Returns True on success.

    Explicit targets become one atomic write of (address, 0) pairs; a factory
    target calls the device's spec-driven reset. A falsy result or a device
    exception raises DeviceWriteError; nothing is retried. Callers should take
    a status report afterwards, since a failed write may still have landed.
    """
    if target.is_factory:
        logger.info("Running spec-based waste reset")
        return _run("reset_waste", [], device.perform_factory_waste_reset)

    addresses = list(target.addresses or ())
    pairs = [(addr, 0) for addr in addresses]
    logger.info("Zeroing EEPROM addresses %s", format_address_list(addresses))
    return _run("write_eeprom", addresses, lambda: device.write_bytes(pairs, atomic=True))
