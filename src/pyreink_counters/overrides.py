"""Model override table: load packaged JSON via importlib.resources, match model families, O(1) address lookup."""

import json
import logging
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Iterable

from .types import BYTE_MAX

logger = logging.getLogger(__name__)

_DEFAULT_RESOURCE = "pyreink_counters.data.counter_overrides"


def address_key(addresses: Iterable[int]) -> tuple[int, ...]:
    """Order-normalized key: permuted address lists map to the same entry."""
    return tuple(sorted(int(a) for a in addresses))


def _parse_address(raw: Any) -> int:
    addr = int(raw, 16) if isinstance(raw, str) else int(raw)
    if not 0 <= addr <= BYTE_MAX:
        raise ValueError(f"Override address out of range 0..255: {raw!r}")
    return addr


@dataclass(frozen=True)
class CounterOverride:
    """Neutral label and (possibly unknown) saturation capacity for one address tuple."""

    label: str
    addresses: tuple[int, ...]
    capacity: float | None = None

    @property
    def key(self) -> tuple[int, ...]:
        return address_key(self.addresses)


class ModelFamily:
    """Override entries for the models whose name matches model_pattern."""

    def __init__(self, name: str, model_pattern: str, counters: list[CounterOverride]) -> None:
        self.name = name
        self.model_pattern = model_pattern
        self._regex = re.compile(model_pattern)
        self._by_key: dict[tuple[int, ...], CounterOverride] = {}
        for counter in counters:
            if counter.key in self._by_key:
                raise ValueError(f"Duplicate address tuple in family {name!r}: {counter.addresses}")
            self._by_key[counter.key] = counter

    def matches(self, model: str) -> bool:
        return self._regex.match(model) is not None

    def lookup(self, addresses: Iterable[int]) -> CounterOverride | None:
        return self._by_key.get(address_key(addresses))

    def __contains__(self, addresses: Iterable[int]) -> bool:
        return address_key(addresses) in self._by_key

    @property
    def counters(self) -> list[CounterOverride]:
        return list(self._by_key.values())


def _parse_counter(raw: dict[str, Any]) -> CounterOverride:
    label = raw["label"]
    addresses = tuple(_parse_address(a) for a in raw["addresses"])
    if not addresses:
        raise ValueError(f"Override {label!r} has no addresses")
    capacity = raw.get("capacity")
    if capacity is not None:
        capacity = float(capacity)
        if capacity <= 0:
            raise ValueError(f"Override {label!r}: capacity must be > 0, got {capacity}")
    return CounterOverride(label=label, addresses=addresses, capacity=capacity)


def _parse_family(raw: dict[str, Any]) -> ModelFamily:
    """Build one family; any malformed field surfaces as ValueError."""
    try:
        name = raw.get("name") or raw["model_pattern"]
        counters = [_parse_counter(c) for c in raw.get("counters") or []]
        return ModelFamily(name=name, model_pattern=raw["model_pattern"], counters=counters)
    except (KeyError, TypeError, AttributeError, re.error) as e:
        raise ValueError(f"Invalid override family {raw.get('model_pattern')!r}: {e!r}") from e


class OverrideTable:
    """
    Model-specific counter labels and capacities, keyed by address set.
    Loaded from packaged JSON; a caller-supplied list of family dicts or a JSON
    file of the same shape replaces the packaged data entirely.
    """

    def __init__(self, map_override: list[dict[str, Any]] | None = None) -> None:
        if map_override is None:
            pkg, name = _DEFAULT_RESOURCE.rsplit(".", 1)
            json_name = f"{name}.json"
            try:
                with resources.files(pkg).joinpath(json_name).open("r", encoding="utf-8") as f:
                    data = json.load(f)
            except FileNotFoundError:
                raise FileNotFoundError(f"Override resource not found: {pkg}/{json_name}") from None
            entries = _family_entries(data)
            source = "package data"
        else:
            entries = map_override
            source = "override"

        self._families = [_parse_family(entry) for entry in entries if isinstance(entry, dict)]
        logger.debug("OverrideTable loaded from %s: %d families", source, len(self._families))

    @classmethod
    def from_file(cls, path: Path) -> "OverrideTable":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls(map_override=_family_entries(data))

    def family_for(self, model: str) -> ModelFamily | None:
        """First family whose pattern matches the model name, or None."""
        for family in self._families:
            if family.matches(model):
                return family
        return None

    def __len__(self) -> int:
        return len(self._families)


def _family_entries(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict) and "families" in data:
        return list(data["families"])
    if isinstance(data, list):
        return data
    raise ValueError("Override data must be a list of families or an object with a 'families' list")


def get_default_overrides() -> OverrideTable:
    """Load and return the packaged override table."""
    return OverrideTable()
