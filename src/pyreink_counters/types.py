"""Core data model: memory regions, counter groups, readings and reports."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

BYTE_MAX = 255

# Per-address early-warning threshold, as a fraction of 255
HIGH_THRESHOLD = 0.90


def _check_address(addr: int) -> None:
    if not 0 <= addr <= BYTE_MAX:
        raise ValueError(f"address must be in 0..255, got {addr}")


class CounterKind(str, Enum):
    """Kinds of counter groups; also the group_type column of the CSV log."""

    WASTE = "waste"
    PLATEN = "platen"
    AMBIGUOUS = "ambiguous"
    RAW = "raw"


class DetailLevel(str, Enum):
    """How much of a report the text renderer prints."""

    SUMMARY = "summary"
    DETAIL = "detail"


@dataclass(frozen=True)
class MemoryRegion:
    """A named EEPROM region declared by the model spec."""

    description: str
    addresses: tuple[int, ...]

    def __post_init__(self) -> None:
        for addr in self.addresses:
            _check_address(addr)


@dataclass(frozen=True)
class CounterGroup:
    """Addresses that together form one logical counter; fixed once classified."""

    label: str
    kind: CounterKind
    addresses: tuple[int, ...]
    capacity: float | None = None

    def __post_init__(self) -> None:
        for addr in self.addresses:
            _check_address(addr)
        if len(set(self.addresses)) != len(self.addresses):
            raise ValueError(f"duplicate address in group {self.label!r}")
        if self.capacity is not None and self.capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {self.capacity}")

    @property
    def key(self) -> tuple[int, ...]:
        """Order-normalized address tuple used for override lookups."""
        return tuple(sorted(self.addresses))


@dataclass(frozen=True)
class AddressReading:
    """One EEPROM byte; value None means the device returned nothing (NA), which is not 0."""

    address: int
    value: int | None

    @property
    def fraction(self) -> float | None:
        if self.value is None:
            return None
        return self.value / BYTE_MAX

    @property
    def is_high(self) -> bool:
        fraction = self.fraction
        return fraction is not None and fraction >= HIGH_THRESHOLD


@dataclass(frozen=True)
class GroupReading:
    """Readings of one group plus its aggregates. A failed read has error set and no readings."""

    group: CounterGroup
    readings: tuple[AddressReading, ...]
    total: int
    max_fraction: float | None
    normalized_fraction: float | None
    error: str | None = None
    permission_denied: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Report:
    """One status snapshot of a device; rendered, never persisted as a unit."""

    model: str
    groups: tuple[GroupReading, ...]
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed_groups(self) -> tuple[GroupReading, ...]:
        return tuple(g for g in self.groups if g.failed)


@dataclass(frozen=True)
class RenderOptions:
    show_ambiguous: bool = False
    detail_level: DetailLevel = DetailLevel.SUMMARY
    csv_path: Path | None = None


@dataclass(frozen=True)
class ResetTarget:
    """Either explicit addresses to zero, or the device's built-in waste reset (addresses=None)."""

    addresses: tuple[int, ...] | None = None

    @classmethod
    def explicit(cls, addresses: list[int] | tuple[int, ...]) -> "ResetTarget":
        if not addresses:
            raise ValueError("explicit reset needs at least one address")
        for addr in addresses:
            _check_address(addr)
        return cls(addresses=tuple(addresses))

    @classmethod
    def factory(cls) -> "ResetTarget":
        return cls(addresses=None)

    @property
    def is_factory(self) -> bool:
        return self.addresses is None
