#!/usr/bin/env python3
"""Example: open the first USB printer, print its counters, and append them to a CSV log."""

import sys

from pyreink_counters import CounterSession, RenderOptions, append_csv, open_device, render_text
from pyreink_counters.errors import DeviceReadError, NoCountersAvailableError, NoDeviceFoundError
from pyreink_counters.types import DetailLevel


def main() -> None:
    options = RenderOptions(show_ambiguous=True, detail_level=DetailLevel.DETAIL)

    try:
        with open_device() as printer:
            session = CounterSession(printer)
            report = session.report(show_ambiguous=options.show_ambiguous)
            print(render_text(report, options))

            rows = append_csv(report, "counters.csv", options)
            print(f"{rows} rows appended to counters.csv")

            for reading in report.failed_groups:
                print(f"Could not read {reading.group.label}: {reading.error}", file=sys.stderr)
    except NoDeviceFoundError as e:
        print(f"No printer: {e}", file=sys.stderr)
        sys.exit(1)
    except NoCountersAvailableError as e:
        print(f"No counters: {e}", file=sys.stderr)
        sys.exit(1)
    except DeviceReadError as e:
        print(f"USB error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
