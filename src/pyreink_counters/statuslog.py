"""
Text artifacts of a run: STATUS_<stamp>.log (scanned by `reset --auto`),
STATE_<stamp>.txt state snapshots and RESET_<stamp>.log reset attempts.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .device import PLATEN_PAD_COUNTER, WASTE_COUNTER, ModelSpecAccess
from .normalize import extract_log_addresses, format_address_list

logger = logging.getLogger(__name__)

STATUS_PREFIX = "STATUS_"
STATE_PREFIX = "STATE_"
RESET_PREFIX = "RESET_"


def timestamp(now: datetime | None = None) -> str:
    """Filename stamp, e.g. 20261018_142501."""
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")


def spec_lines(device_label: str, model: str, spec: ModelSpecAccess) -> list[str]:
    """DEVICE/MODEL/WASTE_ADDRS/PLATEN_ADDRS lines describing what the model spec declares."""
    lines = [f"DEVICE: {device_label}", f"MODEL: {model}"]
    for tag, name in (("WASTE_ADDRS", WASTE_COUNTER), ("PLATEN_ADDRS", PLATEN_PAD_COUNTER)):
        region = spec.get_merged_region(name)
        if region is not None and region.addresses:
            lines.append(f"{tag}: {format_address_list(region.addresses)}")
    return lines


def _append_lines(path: Path, lines: Iterable[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for line in lines:
            f.write(line.rstrip("\n") + "\n")
    logger.debug("Wrote %s", path)
    return path


def write_status_log(log_dir: Path, lines: list[str], stamp: str | None = None) -> Path:
    return _append_lines(Path(log_dir) / f"{STATUS_PREFIX}{stamp or timestamp()}.log", lines)


def write_state_snapshot(
    snapshot_dir: Path,
    listing: list[str],
    environment: dict[str, str],
    stamp: str | None = None,
) -> Path:
    """Device listing plus diagnostics, kept next to the CSV logs for later comparison."""
    lines = ["# Device listing", *listing, "", "# Environment"]
    lines.extend(f"{key}: {value}" for key, value in environment.items())
    lines.append("")
    return _append_lines(Path(snapshot_dir) / f"{STATE_PREFIX}{stamp or timestamp()}.txt", lines)


def write_reset_log(
    log_dir: Path,
    attempt: str,
    ok: bool,
    error: str | None = None,
    stamp: str | None = None,
) -> Path:
    """One reset attempt ending in a RESULT: OK|FAIL line."""
    lines = [f"Attempt: {attempt}"]
    if error:
        lines.append(f"ERROR: {error}")
    lines.append(f"RESULT: {'OK' if ok else 'FAIL'}")
    return _append_lines(Path(log_dir) / f"{RESET_PREFIX}{stamp or timestamp()}.log", lines)


def candidate_addresses(log_path: Path | None) -> list[int]:
    """Waste counter candidates mentioned in a status log."""
    if log_path is None or not Path(log_path).is_file():
        return []
    return extract_log_addresses(Path(log_path).read_text(encoding="utf-8"))
