"""Reading & aggregation: fetch each counter group's bytes and compute saturation metrics."""

import logging
from typing import Iterable, Sequence

from .device import DeviceAccess
from .errors import DeviceReadError
from .types import AddressReading, CounterGroup, CounterKind, GroupReading

logger = logging.getLogger(__name__)


def normalized_fraction(group: CounterGroup, total: int) -> float | None:
    """
    Saturation against the group's known capacity, capped at 1.

    Without a capacity only an all-zero group has a defined value (0.0);
    ambiguous groups never get one.
    """
    if group.kind is CounterKind.AMBIGUOUS:
        return None
    if group.capacity is not None and group.capacity > 0:
        return min(1.0, total / group.capacity)
    if total == 0:
        return 0.0
    return None


def aggregate(group: CounterGroup, readings: Sequence[AddressReading]) -> GroupReading:
    """Attach readings to a group: sum (NA counts as 0), max byte fraction, normalized fraction."""
    total = sum(r.value or 0 for r in readings)
    fractions = [r.fraction for r in readings if r.fraction is not None]
    return GroupReading(
        group=group,
        readings=tuple(readings),
        total=total,
        max_fraction=max(fractions) if fractions else None,
        normalized_fraction=normalized_fraction(group, total),
    )


def read_group(device: DeviceAccess, group: CounterGroup) -> GroupReading:
    """
    Read all of a group's addresses in one device request.

    Readings follow the group's address order; addresses the device did not
    answer for are NA. Raises DeviceReadError naming the group.
    """
    try:
        raw = device.read_bytes(list(group.addresses))
    except DeviceReadError as e:
        raise DeviceReadError(
            e.reason, group=group.label, addresses=group.addresses, cause=e.cause or e,
            permission_denied=e.permission_denied,
        ) from e
    values: dict[int, int | None] = {}
    for addr, value in raw:
        if addr in values and values[addr] is not None:
            continue
        values[addr] = value
    extra = set(values) - set(group.addresses)
    if extra:
        logger.debug("Ignoring unrequested addresses %s in reply for %s", sorted(extra), group.label)
    readings = [AddressReading(address=a, value=values.get(a)) for a in group.addresses]
    return aggregate(group, readings)


def failed_reading(group: CounterGroup, error: DeviceReadError) -> GroupReading:
    """Placeholder for a group that could not be read: no readings, nothing fabricated."""
    return GroupReading(
        group=group,
        readings=(),
        total=0,
        max_fraction=None,
        normalized_fraction=None,
        error=str(error),
        permission_denied=error.permission_denied,
    )


def read_all(device: DeviceAccess, groups: Iterable[CounterGroup]) -> list[GroupReading]:
    """Read groups one after another; a failed group is recorded and the rest still read."""
    out: list[GroupReading] = []
    for group in groups:
        try:
            out.append(read_group(device, group))
        except DeviceReadError as e:
            logger.warning("%s", e)
            out.append(failed_reading(group, e))
    return out
