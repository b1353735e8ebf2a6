"""Counter classifier: turn a model's declared memory regions into labelled counter groups."""

import logging
import re
from collections import Counter
from typing import Sequence

from .device import PLATEN_PAD_COUNTER, WASTE_COUNTER, ModelSpecAccess
from .errors import NoCountersAvailableError
from .overrides import OverrideTable, get_default_overrides
from .types import CounterGroup, CounterKind, MemoryRegion

logger = logging.getLogger(__name__)

_WASTE_DESC = re.compile(r"waste counter", re.IGNORECASE)
_PLATEN_DESC = re.compile(r"platen pad counter", re.IGNORECASE)

# Frequently mirrors the primary waste counter; diagnostic only, never normalized.
AMBIGUOUS_ADDRESSES: tuple[int, ...] = (0x1C, 0x34, 0x35, 0x36, 0x37, 0xFF)
AMBIGUOUS_LABEL = "AMBIGUOUS"
AMBIGUOUS_DESCRIPTION = "Waste counters (?)"

RAW_LABEL = "Raw"

_BASE_LABELS = {
    CounterKind.WASTE: "Waste",
    CounterKind.PLATEN: "Platen pad",
}


def kind_of(description: str) -> CounterKind:
    """Map a spec region description to a counter kind; anything unrecognised is RAW."""
    if _WASTE_DESC.fullmatch(description):
        return CounterKind.WASTE
    if _PLATEN_DESC.fullmatch(description):
        return CounterKind.PLATEN
    return CounterKind.RAW


def ambiguous_group() -> CounterGroup:
    return CounterGroup(label=AMBIGUOUS_LABEL, kind=CounterKind.AMBIGUOUS, addresses=AMBIGUOUS_ADDRESSES)


def _candidates(spec: ModelSpecAccess) -> list[tuple[CounterKind, MemoryRegion]]:
    found = []
    for region in spec.memory_regions:
        kind = kind_of(region.description)
        if kind is not CounterKind.RAW and region.addresses:
            found.append((kind, _dedupe(region)))
    if found:
        return found
    merged = spec.get_merged_region(WASTE_COUNTER)
    if merged is not None and merged.addresses:
        logger.debug("No labelled counter regions; using merged %r region", WASTE_COUNTER)
        return [(CounterKind.WASTE, _dedupe(merged))]
    return []


def _dedupe(region: MemoryRegion) -> MemoryRegion:
    addresses = tuple(dict.fromkeys(region.addresses))
    if addresses == region.addresses:
        return region
    return MemoryRegion(description=region.description, addresses=addresses)


def classify(
    spec: ModelSpecAccess,
    model_name: str,
    explicit_addresses: Sequence[int] | None = None,
    *,
    overrides: OverrideTable | None = None,
    show_ambiguous: bool = False,
) -> list[CounterGroup]:
    """
    Build the counter groups to report for a model.

    - Regions described exactly "waste counter" / "platen pad counter" come first,
      then the merged "waste counter" lookup.
    - Explicit addresses are used only when the spec yields nothing; they form a
      single RAW group reported as-is.
    - For a model family in the override table, waste groups are kept only if
      their address set is a known key; matching groups take the table's label
      and capacity. Platen groups are always kept.

    Raises NoCountersAvailableError when there is nothing to report.
    """
    candidates = _candidates(spec)

    if not candidates:
        if explicit_addresses:
            addresses = tuple(dict.fromkeys(explicit_addresses))
            logger.debug("Using manual addresses for %s: %s", model_name, addresses)
            return [CounterGroup(label=RAW_LABEL, kind=CounterKind.RAW, addresses=addresses)]
        raise NoCountersAvailableError(model_name)

    table = overrides if overrides is not None else get_default_overrides()
    family = table.family_for(str(model_name))

    kept: list[tuple[CounterKind, MemoryRegion]] = []
    for kind, region in candidates:
        if kind is CounterKind.WASTE and family is not None and region.addresses not in family:
            logger.debug("Hiding unrecognised waste region %s for %s", list(region.addresses), model_name)
            continue
        kept.append((kind, region))

    plain_totals = Counter(
        kind for kind, region in kept if family is None or family.lookup(region.addresses) is None
    )
    ordinals: Counter[CounterKind] = Counter()
    groups: list[CounterGroup] = []
    for kind, region in kept:
        override = family.lookup(region.addresses) if family is not None else None
        if override is not None:
            groups.append(
                CounterGroup(label=override.label, kind=kind, addresses=region.addresses, capacity=override.capacity)
            )
            continue
        ordinals[kind] += 1
        label = _BASE_LABELS[kind]
        if plain_totals[kind] > 1:
            label = f"{label} #{ordinals[kind]}"
        groups.append(CounterGroup(label=label, kind=kind, addresses=region.addresses))

    if show_ambiguous:
        groups.append(ambiguous_group())
    return groups
