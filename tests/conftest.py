"""Shared fakes: an in-memory device implementing the counter engine's device surface."""

from typing import Any

import pytest

from pyreink_counters.errors import DeviceReadError
from pyreink_counters.types import MemoryRegion


class FakeSpec:
    def __init__(self, regions: list[MemoryRegion], merged: dict[str, MemoryRegion] | None = None) -> None:
        self._regions = regions
        self._merged = merged or {}

    @property
    def memory_regions(self) -> list[MemoryRegion]:
        return list(self._regions)

    def get_merged_region(self, name: str) -> MemoryRegion | None:
        return self._merged.get(name)


class FakeDevice:
    """EEPROM held in a dict; addresses in fail_on make the whole read raise."""

    def __init__(
        self,
        model: str = "ET-2720",
        regions: list[MemoryRegion] | None = None,
        eeprom: dict[int, int | None] | None = None,
        merged: dict[str, MemoryRegion] | None = None,
        fail_on: set[int] | None = None,
        write_result: bool = True,
        reset_result: bool = True,
    ) -> None:
        self._model = model
        self._spec = FakeSpec(regions or [], merged)
        self.eeprom: dict[int, int | None] = dict(eeprom or {})
        self.fail_on = fail_on or set()
        self.write_result = write_result
        self.reset_result = reset_result
        self.read_calls: list[list[int]] = []
        self.write_calls: list[tuple[list[tuple[int, int]], bool]] = []
        self.reset_calls = 0
        self.closed = False

    def __enter__(self) -> "FakeDevice":
        return self

    def __exit__(self, *args: Any) -> None:
        self.closed = True

    def __str__(self) -> str:
        return f"FakeDevice<{self._model}>"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def spec(self) -> FakeSpec:
        return self._spec

    def read_bytes(self, addresses: list[int]) -> list[tuple[int, int | None]]:
        self.read_calls.append(list(addresses))
        if self.fail_on.intersection(addresses):
            raise DeviceReadError("Access denied (insufficient permissions)", addresses=addresses,
                                  permission_denied=True)
        return [(a, self.eeprom.get(a)) for a in addresses]

    def write_bytes(self, pairs: list[tuple[int, int]], atomic: bool = True) -> bool:
        self.write_calls.append((list(pairs), atomic))
        if self.write_result:
            for addr, value in pairs:
                self.eeprom[addr] = value
        return self.write_result

    def perform_factory_waste_reset(self) -> bool:
        self.reset_calls += 1
        return self.reset_result


def region(desc: str, *addresses: int) -> MemoryRegion:
    return MemoryRegion(description=desc, addresses=tuple(addresses))


@pytest.fixture
def et1810_device() -> FakeDevice:
    """ET-1810 layout: three waste counter pairs, one undocumented waste region, one platen pad."""
    regions = [
        region("Waste counter", 0x30, 0x31),
        region("Waste counter", 0x32, 0x33),
        region("waste counter", 0x2F),
        region("Waste counter", 0xFC, 0xFD),
        region("Platen pad counter", 0x34, 0x35),
    ]
    eeprom = {0x30: 0x00, 0x31: 0x05, 0x32: 0x00, 0x33: 0x00, 0x2F: 0x10, 0xFC: 0xF0, 0xFD: 0x02,
              0x34: 0x01, 0x35: None}
    merged = {"waste counter": region("waste counter", 0x30, 0x31, 0x32, 0x33, 0x2F, 0xFC, 0xFD),
              "platen pad counter": region("platen pad counter", 0x34, 0x35)}
    return FakeDevice(model="ET-1810", regions=regions, eeprom=eeprom, merged=merged)
