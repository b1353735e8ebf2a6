#!/usr/bin/env python3
"""Command-line interface for pyreink-counters using Typer."""

import json
import logging
import platform
from datetime import datetime
from importlib import metadata
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .device import DeviceAccess, list_devices, open_device
from .errors import (
    DeviceReadError,
    DeviceWriteError,
    MalformedAddressInputError,
    NoCountersAvailableError,
    NoDeviceFoundError,
)
from .normalize import format_address_list, format_hex, parse_address_list
from .overrides import OverrideTable, get_default_overrides
from .reader import read_group
from .render import append_csv, render_text, report_to_dict
from .session import CounterSession
from .statuslog import (
    candidate_addresses,
    spec_lines,
    timestamp,
    write_reset_log,
    write_state_snapshot,
    write_status_log,
)
from .types import CounterGroup, CounterKind, DetailLevel, RenderOptions, Report, ResetTarget

app = typer.Typer(
    name="pyreink",
    help="Inspect and reset Epson waste ink pad counters over USB.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# Loggers of the USB driver stack that are too chatty below WARNING
_QUIET_LOGGERS = ("reinkpy", "reinkpy.usb", "reinkpy.d4")

PERMISSION_HINT = "Hint: USB access was denied. Add a udev rule for Epson (VID 04b8) or re-run with sudo."
WRITE_GUIDANCE = "The write outcome is uncertain. Run 'pyreink status --details' to check the actual counter values."

# ============================================================================
# Shared options and helpers
# ============================================================================

DeviceOption = Annotated[
    Optional[int],
    typer.Option("--device", "-d", min=1, help="1-based device index when several printers are connected",
                 envvar="PYREINK_DEVICE"),
]
OverridesOption = Annotated[
    Optional[Path],
    typer.Option("--overrides", help="JSON file replacing the packaged counter override table",
                 envvar="PYREINK_OVERRIDES"),
]
LogDirOption = Annotated[
    Path,
    typer.Option("--log-dir", help="Directory for daily logs, STATUS_*.log and RESET_*.log files",
                 envvar="PYREINK_LOG_DIR"),
]
SnapshotDirOption = Annotated[
    Path,
    typer.Option("--snapshot-dir", help="Directory for STATE_*.txt snapshots and default CSV counter logs",
                 envvar="PYREINK_SNAPSHOT_DIR"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool, log_dir: Path | None = None) -> None:
    """Configure console logging; with log_dir, also append INFO lines to a daily log file."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if log_dir is None:
        return

    root = logging.getLogger()
    day_file = (Path(log_dir) / f"{datetime.now():%Y%m%d}.log").resolve()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == str(day_file):
            return
    day_file.parent.mkdir(parents=True, exist_ok=True)
    for handler in root.handlers:
        handler.setLevel(level)
    file_handler = logging.FileHandler(day_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)
    root.setLevel(min(level, logging.INFO))


def device_selector(device: int | None) -> int | None:
    """1-based CLI index -> 0-based selector (None = first device)."""
    return None if device is None else device - 1


def load_overrides(path: Path | None) -> OverrideTable:
    if path is None:
        return get_default_overrides()
    if not path.is_file():
        typer.echo(f"Error: Override file not found: {path}", err=True)
        raise typer.Exit(2)
    try:
        return OverrideTable.from_file(path)
    except (KeyError, TypeError, ValueError) as e:
        typer.echo(f"Error: Invalid override file {path}: {e}", err=True)
        raise typer.Exit(2)


def parse_addresses_or_exit(raw: str) -> list[int]:
    """Validate manual addresses before any device I/O."""
    try:
        return parse_address_list(raw)
    except MalformedAddressInputError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)


def environment_info() -> dict[str, str]:
    try:
        reinkpy_version = metadata.version("reinkpy")
    except metadata.PackageNotFoundError:
        reinkpy_version = "unknown"
    return {
        "version": __version__,
        "reinkpy": reinkpy_version,
        "platform": platform.system(),
        "python": platform.python_version(),
    }


def take_status(
    session: CounterSession,
    device: DeviceAccess,
    options: RenderOptions,
    explicit: list[int] | None = None,
    log_dir: Path | None = None,
    snapshot_dir: Path | None = None,
) -> tuple[Report, Path | None, Path | None]:
    """
    Read a report. With log_dir, write a STATUS_*.log describing it; with
    snapshot_dir, also save a STATE_*.txt snapshot with environment details.
    """
    report = session.report(explicit, show_ambiguous=options.show_ambiguous)
    lines = spec_lines(str(device), report.model, device.spec)
    lines.append(render_text(report, RenderOptions(options.show_ambiguous, DetailLevel.DETAIL)))
    stamp = timestamp()
    log_path = write_status_log(log_dir, lines, stamp) if log_dir is not None else None
    state_path = None
    if snapshot_dir is not None:
        state_path = write_state_snapshot(snapshot_dir, lines, environment_info(), stamp)
    return report, log_path, state_path


def echo_unexpected(e: Exception, verbose: bool) -> None:
    typer.echo(f"Error: Unexpected error: {e}", err=True)
    if verbose:
        import traceback
        traceback.print_exc()


def echo_device_error(e: DeviceReadError | DeviceWriteError) -> None:
    typer.echo(f"Error: {e}", err=True)
    if e.permission_denied:
        typer.echo(PERMISSION_HINT, err=True)


# ============================================================================
# Commands
# ============================================================================

@app.command(name="list")
def list_cmd(
    verbose: VerboseOption = False,
) -> None:
    """List USB printers reinkpy can access, with the index used by --device."""
    setup_logging(verbose)
    try:
        devices = list_devices()
    except NoDeviceFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if not devices:
        typer.echo("No USB devices found. Check cable, power, and USB permissions.", err=True)
        raise typer.Exit(1)
    for i, dev in enumerate(devices, start=1):
        typer.echo(f"[{i}] {dev}")


@app.command()
def status(
    show_ambiguous: Annotated[
        bool, typer.Option("--show-ambiguous", help="Also show the AMBIGUOUS diagnostic address group")
    ] = False,
    csv_out: Annotated[bool, typer.Option("--csv", help="Append counter rows to a CSV log")] = False,
    csv_file: Annotated[
        Optional[Path], typer.Option("--csv-file", help="CSV log path (implies --csv; default snapshots/COUNTERS_<stamp>.csv)")
    ] = None,
    details: Annotated[
        bool, typer.Option("--details/--summary", help="Print every address, or one line per counter")
    ] = False,
    addresses: Annotated[
        Optional[str], typer.Option("--addresses", "-a", help="Hex addresses to read if the model spec declares none (e.g. 0x2f,0x30)")
    ] = None,
    no_log: Annotated[
        bool, typer.Option("--no-log", help="Do not write STATUS_*.log or STATE_*.txt files")
    ] = False,
    device: DeviceOption = None,
    overrides: OverridesOption = None,
    log_dir: LogDirOption = Path("logs"),
    snapshot_dir: SnapshotDirOption = Path("snapshots"),
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read waste / platen pad counters and print them.

    Counters with a known capacity show a normalized percentage and the raw
    sum; others show the highest per-address percentage of 255.
    """
    explicit = parse_addresses_or_exit(addresses) if addresses else None
    setup_logging(verbose, None if no_log else log_dir)
    table = load_overrides(overrides)

    stamp = timestamp()
    csv_path = csv_file
    if csv_out and csv_path is None:
        csv_path = snapshot_dir / f"COUNTERS_{stamp}.csv"
    options = RenderOptions(
        show_ambiguous=show_ambiguous,
        detail_level=DetailLevel.DETAIL if details else DetailLevel.SUMMARY,
        csv_path=csv_path,
    )

    try:
        with open_device(device_selector(device)) as dev:
            logger.info("=== status start @ %s (%s) ===", stamp, dev)
            session = CounterSession(dev, table)
            report, log_path, state_path = take_status(
                session, dev, options, explicit,
                None if no_log else log_dir,
                None if no_log else snapshot_dir,
            )
    except NoDeviceFoundError as e:
        typer.echo(f"Error: {e}. Check connections and power.", err=True)
        raise typer.Exit(1)
    except NoCountersAvailableError as e:
        typer.echo(f"Error: {e}. Pass --addresses 0x..,0x.. to read addresses manually.", err=True)
        raise typer.Exit(1)
    except (DeviceReadError, DeviceWriteError) as e:
        echo_device_error(e)
        raise typer.Exit(3)
    except Exception as e:
        echo_unexpected(e, verbose)
        raise typer.Exit(4)

    if json_output:
        typer.echo(json.dumps(report_to_dict(report, options), indent=2))
    else:
        typer.echo(render_text(report, options))

    if options.csv_path is not None:
        rows = append_csv(report, options.csv_path, options)
        logger.info("CSV: %d rows -> %s", rows, options.csv_path)
        if not json_output:
            typer.echo(f"CSV: {options.csv_path}")
    if not json_output:
        if log_path is not None:
            typer.echo(f"Status log: {log_path}")
        if state_path is not None:
            typer.echo(f"State snapshot: {state_path}")

    failed = report.failed_groups
    if failed:
        for reading in failed:
            typer.echo(f"Error: {reading.error}", err=True)
        if any(r.permission_denied for r in failed):
            typer.echo(PERMISSION_HINT, err=True)
        raise typer.Exit(3)


@app.command()
def read(
    addresses: Annotated[str, typer.Argument(help="Comma-separated hex addresses, e.g. 0x2f,0x30,0x31")],
    device: DeviceOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read raw EEPROM bytes without classifying them.

    Useful for checking addresses before or after a manual reset.
    """
    parsed = parse_addresses_or_exit(addresses)
    setup_logging(verbose)
    group = CounterGroup(label="Raw", kind=CounterKind.RAW, addresses=tuple(dict.fromkeys(parsed)))

    try:
        with open_device(device_selector(device)) as dev:
            reading = read_group(dev, group)
            model = dev.model_name
    except NoDeviceFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except DeviceReadError as e:
        echo_device_error(e)
        raise typer.Exit(3)
    except Exception as e:
        echo_unexpected(e, verbose)
        raise typer.Exit(4)

    report = Report(model=model, groups=(reading,))
    if json_output:
        typer.echo(json.dumps(report_to_dict(report), indent=2))
    else:
        typer.echo(render_text(report, RenderOptions(detail_level=DetailLevel.DETAIL)))


@app.command()
def reset(
    auto: Annotated[bool, typer.Option("--auto", help="Use the model spec's own waste reset")] = False,
    addresses: Annotated[
        Optional[str], typer.Option("--addresses", "-a", help="Comma-separated hex addresses to zero, e.g. 0x2f,0x30")
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt for confirmation")] = False,
    device: DeviceOption = None,
    overrides: OverridesOption = None,
    log_dir: LogDirOption = Path("logs"),
    snapshot_dir: SnapshotDirOption = Path("snapshots"),
    verbose: VerboseOption = False,
) -> None:
    """
    Reset waste counters, with a status snapshot before and after.

    --auto needs the pre-reset status to show waste counter addresses, then
    runs the spec-based reset. --addresses zeroes exactly the given bytes in
    one atomic write. Nothing is written unless every counter could be read
    first. Each attempt is recorded in RESET_<stamp>.log.
    """
    if auto == bool(addresses):
        typer.echo("Error: Use exactly one of --auto or --addresses", err=True)
        raise typer.Exit(2)
    explicit = parse_addresses_or_exit(addresses) if addresses else None
    setup_logging(verbose, log_dir)
    table = load_overrides(overrides)
    options = RenderOptions(detail_level=DetailLevel.DETAIL)

    try:
        with open_device(device_selector(device)) as dev:
            session = CounterSession(dev, table)

            typer.echo("Pre-reset status:")
            before, log_path, _ = take_status(session, dev, options, explicit, log_dir, snapshot_dir)
            typer.echo(render_text(before, options))

            if before.failed_groups:
                for reading in before.failed_groups:
                    typer.echo(f"Error: {reading.error}", err=True)
                if any(r.permission_denied for r in before.failed_groups):
                    typer.echo(PERMISSION_HINT, err=True)
                typer.echo("Error: Pre-reset status failed; nothing was written.", err=True)
                raise typer.Exit(3)

            if explicit is not None:
                target = ResetTarget.explicit(explicit)
                typer.echo(f"Will reset waste counters at addresses: {format_address_list(explicit)}")
            else:
                candidates = candidate_addresses(log_path)
                if not candidates:
                    typer.echo("Error: Could not auto-detect waste counter addresses.", err=True)
                    typer.echo("Run 'pyreink status --details', inspect the counters, then use --addresses 0x..,0x..",
                               err=True)
                    raise typer.Exit(2)
                logger.info("Auto-detected candidates: %s", format_address_list(candidates))
                target = ResetTarget.factory()
                typer.echo("Will reset waste counters using the model spec (auto)")

            if not yes and not typer.confirm("Proceed?", default=False):
                logger.info("Aborted by user.")
                typer.echo("Aborted.")
                raise typer.Exit(0)

            described = "auto/spec" if target.is_factory else format_address_list(explicit or [])
            attempt = f"reset {before.model} on {dev} (addresses: {described})"
            try:
                session.reset(target)
            except Exception as e:
                reset_log = write_reset_log(log_dir, attempt, ok=False, error=str(e))
                typer.echo(f"Reset log: {reset_log}", err=True)
                raise
            reset_log = write_reset_log(log_dir, attempt, ok=True)
            logger.info("Reset finished for %s. Log: %s", described, reset_log)

            typer.echo("Post-reset status:")
            after, _, _ = take_status(session, dev, options, explicit, log_dir, snapshot_dir)
            typer.echo(render_text(after, options))
    except typer.Exit:
        raise
    except typer.Abort:
        typer.echo("Aborted.")
        raise typer.Exit(0)
    except NoDeviceFoundError as e:
        typer.echo(f"Error: {e}. Check connections and power.", err=True)
        raise typer.Exit(1)
    except NoCountersAvailableError as e:
        typer.echo(f"Error: {e}. Pass --addresses 0x..,0x.. to reset addresses manually.", err=True)
        raise typer.Exit(1)
    except DeviceWriteError as e:
        logger.error("Reset failed: %s", e)
        echo_device_error(e)
        typer.echo(WRITE_GUIDANCE, err=True)
        raise typer.Exit(3)
    except DeviceReadError as e:
        echo_device_error(e)
        raise typer.Exit(3)
    except Exception as e:
        echo_unexpected(e, verbose)
        raise typer.Exit(4)

    typer.echo("SUCCESS: waste counter reset completed.")
    typer.echo(f"Logs in: {log_dir}")
    typer.echo(f"Snapshots in: {snapshot_dir}")


@app.command()
def explain(
    model: Annotated[str, typer.Argument(help="Printer model name, e.g. ET-1810")],
    overrides: OverridesOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show the counter labels and capacities applied to a model.

    Does not require a device; uses the override table only.
    """
    setup_logging(verbose)
    table = load_overrides(overrides)
    family = table.family_for(model)

    info = {
        "model": model,
        "family": family.name if family else None,
        "counters": [
            {
                "label": c.label,
                "addresses": [format_hex(a) for a in c.addresses],
                "capacity": c.capacity,
            }
            for c in (family.counters if family else [])
        ],
    }

    if json_output:
        typer.echo(json.dumps(info, indent=2))
        return
    if family is None:
        typer.echo(f"No counter overrides for {model}; every waste/platen region of its spec is shown.")
        return
    typer.echo(f"Model:    {model}")
    typer.echo(f"Family:   {family.name} ({family.model_pattern})")
    for c in info["counters"]:
        capacity = "unknown" if c["capacity"] is None else f"{c['capacity']:g}"
        typer.echo(f"  {c['label']}: {','.join(c['addresses'])}  capacity {capacity}")


@app.command()
def info(
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show package and reinkpy versions and the platform."""
    setup_logging(verbose)
    info_data = environment_info()

    if json_output:
        typer.echo(json.dumps(info_data, indent=2))
    else:
        typer.echo(f"pyreink-counters version: {info_data['version']}")
        typer.echo(f"reinkpy: {info_data['reinkpy']}")
        typer.echo(f"Platform: {info_data['platform']} (Python {info_data['python']})")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pyreink-counters {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """pyreink - Epson waste ink pad counter status and reset over USB."""
    pass


if __name__ == "__main__":
    app()
