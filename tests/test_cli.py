"""Tests for CLI commands with a faked device."""

import csv
import json
from pathlib import Path
from unittest.mock import MagicMock, PropertyMock, patch

from conftest import FakeDevice, region
from typer.testing import CliRunner
from usb.core import USBError

from pyreink_counters import EpsonDevice
from pyreink_counters.cli import app, device_selector
from pyreink_counters.errors import NoDeviceFoundError

runner = CliRunner()


def _single_waste_device(**kwargs) -> FakeDevice:
    return FakeDevice(regions=[region("waste counter", 0x2F)], eeprom={0x2F: 0x10}, **kwargs)


def _dirs(tmp_path: Path) -> list[str]:
    return ["--log-dir", str(tmp_path), "--snapshot-dir", str(tmp_path / "snapshots")]


def test_device_selector() -> None:
    assert device_selector(None) is None
    assert device_selector(1) == 0
    assert device_selector(3) == 2


# ============================================================================
# status
# ============================================================================


class TestStatus:
    """status command."""

    @patch("pyreink_counters.cli.open_device")
    def test_summary(self, mock_open: MagicMock, et1810_device: FakeDevice, tmp_path: Path) -> None:
        mock_open.return_value = et1810_device

        result = runner.invoke(app, ["status", *_dirs(tmp_path)])

        assert result.exit_code == 0, result.output
        assert " - Model: ET-1810" in result.stdout
        assert "   • Counter 1: 3.55% (sum 5)" in result.stdout
        assert "   • Counter 3: 18.63% (sum 242)" in result.stdout
        assert "addr 0x" not in result.stdout
        assert "AMBIGUOUS" not in result.stdout
        mock_open.assert_called_once_with(None)
        assert et1810_device.closed

        logs = list(tmp_path.glob("STATUS_*.log"))
        assert len(logs) == 1
        text = logs[0].read_text(encoding="utf-8")
        assert "MODEL: ET-1810" in text
        assert "WASTE_ADDRS: 0x30,0x31,0x32,0x33,0x2f,0xfc,0xfd" in text
        assert "      - addr 0xfc: 0xf0 (94.1%) (high)" in text

        [state] = list((tmp_path / "snapshots").glob("STATE_*.txt"))
        snapshot = state.read_text(encoding="utf-8")
        assert snapshot.startswith("# Device listing\nDEVICE: FakeDevice<ET-1810>\n")
        assert "   • Counter 1: 3.55% (sum 5)" in snapshot
        assert "# Environment" in snapshot
        assert "reinkpy: " in snapshot
        assert f"State snapshot: {state}" in result.stdout

    @patch("pyreink_counters.cli.open_device")
    def test_no_log_skips_artifacts(self, mock_open: MagicMock, tmp_path: Path) -> None:
        mock_open.return_value = _single_waste_device()

        result = runner.invoke(app, ["status", "--no-log", *_dirs(tmp_path)])

        assert result.exit_code == 0, result.output
        assert list(tmp_path.rglob("STATUS_*")) == []
        assert list(tmp_path.rglob("STATE_*")) == []

    @patch("pyreink_counters.cli.open_device")
    def test_driver_attach_permission_error(self, mock_open: MagicMock) -> None:
        usb = MagicMock()
        type(usb).epson = PropertyMock(side_effect=USBError("Access denied (insufficient permissions)", -3, 13))
        mock_open.return_value = EpsonDevice(usb)

        result = runner.invoke(app, ["status", "--no-log"])

        assert result.exit_code == 3
        assert "attach Epson driver" in result.output
        assert "Unexpected error" not in result.output
        assert "udev" in result.output
        usb.close.assert_called_once()

    @patch("pyreink_counters.cli.open_device")
    def test_details_ambiguous_csv(self, mock_open: MagicMock, et1810_device: FakeDevice, tmp_path: Path) -> None:
        mock_open.return_value = et1810_device
        csv_path = tmp_path / "counters.csv"

        args = ["status", "--details", "--show-ambiguous", "--csv-file", str(csv_path), "--no-log"]
        first = runner.invoke(app, args)
        second = runner.invoke(app, args)

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "      - addr 0x35: NA" in first.stdout
        assert "   • AMBIGUOUS (spec: Waste counters (?))" in first.stdout
        with open(csv_path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0][0] == "model"
        assert len(rows) == 1 + 2 * 14
        assert all(r[7] == "" for r in rows[1:] if r[2] == "ambiguous")

    @patch("pyreink_counters.cli.open_device")
    def test_csv_default_path(self, mock_open: MagicMock, tmp_path: Path) -> None:
        mock_open.return_value = _single_waste_device()

        result = runner.invoke(app, ["status", "--csv", "--snapshot-dir", str(tmp_path), "--no-log"])

        assert result.exit_code == 0, result.output
        [csv_file] = list(tmp_path.glob("COUNTERS_*.csv"))
        lines = csv_file.read_text(encoding="utf-8").splitlines()
        assert lines[1] == "ET-2720,Waste,waste,0x2f,0x10,6.3,16,,6.3"
        assert "   • Waste: (max 6.3%)" in result.stdout

    @patch("pyreink_counters.cli.open_device")
    def test_json(self, mock_open: MagicMock) -> None:
        mock_open.return_value = _single_waste_device()

        result = runner.invoke(app, ["status", "--json", "--no-log"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["model"] == "ET-2720"
        assert data["groups"][0]["sum"] == 16
        assert data["groups"][0]["normalized_fraction"] is None

    @patch("pyreink_counters.cli.open_device")
    def test_manual_addresses_when_model_declares_none(self, mock_open: MagicMock) -> None:
        mock_open.return_value = FakeDevice(regions=[], eeprom={0x2F: 0xF0, 0x30: 0})

        result = runner.invoke(app, ["status", "--addresses", "0x2f,0x30", "--details", "--no-log"])

        assert result.exit_code == 0, result.output
        assert "   • Raw: (max 94.1%)" in result.stdout
        assert "      - addr 0x2f: 0xf0 (94.1%) (high)" in result.stdout

    @patch("pyreink_counters.cli.open_device")
    def test_no_counters(self, mock_open: MagicMock) -> None:
        mock_open.return_value = FakeDevice(regions=[region("serial number", 0xE0)])

        result = runner.invoke(app, ["status", "--no-log"])

        assert result.exit_code == 1
        assert "No waste/platen counter addresses available" in result.output

    @patch("pyreink_counters.cli.open_device")
    def test_malformed_addresses_no_io(self, mock_open: MagicMock) -> None:
        result = runner.invoke(app, ["status", "--addresses", "0xzz,0x30", "--no-log"])

        assert result.exit_code == 2
        assert "Malformed address list" in result.output
        mock_open.assert_not_called()

    @patch("pyreink_counters.cli.open_device")
    def test_no_device(self, mock_open: MagicMock) -> None:
        mock_open.side_effect = NoDeviceFoundError()

        result = runner.invoke(app, ["status", "--no-log"])

        assert result.exit_code == 1
        assert "No USB printer found" in result.output

    @patch("pyreink_counters.cli.open_device")
    def test_device_index(self, mock_open: MagicMock) -> None:
        mock_open.return_value = _single_waste_device()

        result = runner.invoke(app, ["status", "--device", "2", "--no-log"])

        assert result.exit_code == 0, result.output
        mock_open.assert_called_once_with(1)

    @patch("pyreink_counters.cli.open_device")
    def test_failed_group_reported_others_continue(self, mock_open: MagicMock) -> None:
        mock_open.return_value = FakeDevice(
            regions=[region("waste counter", 0x2F), region("platen pad counter", 0x34)],
            eeprom={0x2F: 1, 0x34: 2},
            fail_on={0x2F},
        )

        result = runner.invoke(app, ["status", "--no-log"])

        assert result.exit_code == 3
        assert "   • Waste: unable to read" in result.output
        assert "   • Platen pad: (max 0.8%)" in result.output
        assert "Read failed for group 'Waste' [0x2f]" in result.output
        assert "udev" in result.output

    @patch("pyreink_counters.cli.open_device")
    def test_override_file(self, mock_open: MagicMock, et1810_device: FakeDevice, tmp_path: Path) -> None:
        mock_open.return_value = et1810_device
        overrides = tmp_path / "caps.json"
        overrides.write_text(json.dumps({"families": [{"model_pattern": "^ET-181", "counters": [
            {"label": "Counter 1", "addresses": ["0x30", "0x31"], "capacity": 10},
        ]}]}), encoding="utf-8")

        result = runner.invoke(app, ["status", "--overrides", str(overrides), "--no-log"])

        assert result.exit_code == 0, result.output
        assert "   • Counter 1: 50.00% (sum 5)" in result.stdout
        assert "Counter 3" not in result.stdout

    def test_override_file_missing(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["status", "--overrides", str(tmp_path / "nope.json"), "--no-log"])
        assert result.exit_code == 2
        assert "Override file not found" in result.output

    @patch("pyreink_counters.cli.open_device")
    def test_override_file_malformed(self, mock_open: MagicMock, tmp_path: Path) -> None:
        for i, content in enumerate([
            [{"model_pattern": "^ET-(181", "counters": []}],
            [{"model_pattern": "^ET", "counters": [{"label": "A", "addresses": None}]}],
            {"families": 7},
            "not json",
        ]):
            path = tmp_path / f"bad{i}.json"
            path.write_text(content if isinstance(content, str) else json.dumps(content), encoding="utf-8")

            result = runner.invoke(app, ["status", "--overrides", str(path), "--no-log"])

            assert result.exit_code == 2, result.output
            assert "Invalid override file" in result.output
        mock_open.assert_not_called()


# ============================================================================
# reset
# ============================================================================


class TestReset:
    """reset command."""

    @patch("pyreink_counters.cli.open_device")
    def test_explicit_addresses(self, mock_open: MagicMock, tmp_path: Path) -> None:
        device = FakeDevice(regions=[region("waste counter", 0x2F, 0x30)], eeprom={0x2F: 0x10, 0x30: 0x20})
        mock_open.return_value = device

        result = runner.invoke(app, ["reset", "--addresses", "0x2f,0x30", "--yes", *_dirs(tmp_path)])

        assert result.exit_code == 0, result.output
        assert device.write_calls == [([(0x2F, 0), (0x30, 0)], True)]
        assert "Pre-reset status:" in result.stdout
        assert "Post-reset status:" in result.stdout
        assert "   • Waste: 0.00% (sum 0)" in result.stdout
        assert "SUCCESS" in result.stdout
        assert len(list(tmp_path.glob("STATUS_*.log"))) >= 1
        assert list((tmp_path / "snapshots").glob("STATE_*.txt"))

        [reset_log] = list(tmp_path.glob("RESET_*.log"))
        lines = reset_log.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "Attempt: reset ET-2720 on FakeDevice<ET-2720> (addresses: 0x2f,0x30)"
        assert lines[-1] == "RESULT: OK"

    @patch("pyreink_counters.cli.open_device")
    def test_failed_pre_reset_read_blocks_write(self, mock_open: MagicMock, tmp_path: Path) -> None:
        device = FakeDevice(
            regions=[region("waste counter", 0x2F), region("platen pad counter", 0x34)],
            eeprom={0x2F: 1, 0x34: 2},
            fail_on={0x2F},
        )
        mock_open.return_value = device

        result = runner.invoke(app, ["reset", "--addresses", "0x2f", "--yes", *_dirs(tmp_path)])

        assert result.exit_code == 3
        assert "Pre-reset status failed" in result.output
        assert "Read failed for group 'Waste' [0x2f]" in result.output
        assert "udev" in result.output
        assert device.write_calls == []
        assert device.reset_calls == 0
        assert list(tmp_path.glob("RESET_*.log")) == []

    @patch("pyreink_counters.cli.open_device")
    def test_write_failure(self, mock_open: MagicMock, tmp_path: Path) -> None:
        device = _single_waste_device(write_result=False)
        mock_open.return_value = device

        result = runner.invoke(app, ["reset", "--addresses", "0x2f,0x30", "--yes", *_dirs(tmp_path)])

        assert result.exit_code == 3
        assert "write_eeprom [0x2f,0x30] failed" in result.output
        assert "pyreink status" in result.output
        assert "SUCCESS" not in result.output
        assert len(device.write_calls) == 1
        assert device.closed

        [reset_log] = list(tmp_path.glob("RESET_*.log"))
        text = reset_log.read_text(encoding="utf-8")
        assert "ERROR: write_eeprom [0x2f,0x30] failed: device reported failure" in text
        assert text.endswith("RESULT: FAIL\n")
        assert f"Reset log: {reset_log}" in result.output

    @patch("pyreink_counters.cli.open_device")
    def test_malformed_addresses_no_io(self, mock_open: MagicMock, tmp_path: Path) -> None:
        result = runner.invoke(app, ["reset", "--addresses", "0xzz,0x30", "--yes", *_dirs(tmp_path)])

        assert result.exit_code == 2
        assert "Malformed address list" in result.output
        mock_open.assert_not_called()

    @patch("pyreink_counters.cli.open_device")
    def test_auto(self, mock_open: MagicMock, et1810_device: FakeDevice, tmp_path: Path) -> None:
        mock_open.return_value = et1810_device

        result = runner.invoke(app, ["reset", "--auto", "--yes", *_dirs(tmp_path)])

        assert result.exit_code == 0, result.output
        assert et1810_device.reset_calls == 1
        assert et1810_device.write_calls == []
        assert "using the model spec" in result.stdout
        [reset_log] = list(tmp_path.glob("RESET_*.log"))
        assert "(addresses: auto/spec)" in reset_log.read_text(encoding="utf-8")

    @patch("pyreink_counters.cli.candidate_addresses", return_value=[])
    @patch("pyreink_counters.cli.open_device")
    def test_auto_without_candidates(self, mock_open: MagicMock, _cands: MagicMock, tmp_path: Path) -> None:
        device = _single_waste_device()
        mock_open.return_value = device

        result = runner.invoke(app, ["reset", "--auto", "--yes", *_dirs(tmp_path)])

        assert result.exit_code == 2
        assert "Could not auto-detect" in result.output
        assert device.reset_calls == 0

    @patch("pyreink_counters.cli.open_device")
    def test_declined_confirmation(self, mock_open: MagicMock, tmp_path: Path) -> None:
        device = _single_waste_device()
        mock_open.return_value = device

        result = runner.invoke(app, ["reset", "--addresses", "0x2f", *_dirs(tmp_path)], input="n\n")

        assert result.exit_code == 0
        assert "Aborted." in result.stdout
        assert device.write_calls == []

    @patch("pyreink_counters.cli.open_device")
    def test_confirmed(self, mock_open: MagicMock, tmp_path: Path) -> None:
        device = _single_waste_device()
        mock_open.return_value = device

        result = runner.invoke(app, ["reset", "--addresses", "0x2f", *_dirs(tmp_path)], input="y\n")

        assert result.exit_code == 0, result.output
        assert device.write_calls == [([(0x2F, 0)], True)]

    def test_requires_exactly_one_mode(self, tmp_path: Path) -> None:
        neither = runner.invoke(app, ["reset", *_dirs(tmp_path)])
        both = runner.invoke(app, ["reset", "--auto", "--addresses", "0x2f", *_dirs(tmp_path)])
        assert neither.exit_code == 2
        assert both.exit_code == 2
        assert "exactly one of --auto or --addresses" in both.output


# ============================================================================
# read / list / explain / info
# ============================================================================


@patch("pyreink_counters.cli.open_device")
def test_read_command(mock_open: MagicMock) -> None:
    mock_open.return_value = FakeDevice(eeprom={0x2F: 0x10})

    result = runner.invoke(app, ["read", "0x2f,0x30"])

    assert result.exit_code == 0, result.output
    assert "      - addr 0x2f: 0x10 (6.3%)" in result.stdout
    assert "      - addr 0x30: NA" in result.stdout


def test_read_command_malformed() -> None:
    result = runner.invoke(app, ["read", "2f"])
    assert result.exit_code == 2


@patch("pyreink_counters.cli.list_devices")
def test_list_command(mock_list: MagicMock) -> None:
    mock_list.return_value = [FakeDevice(model="ET-1810"), FakeDevice(model="L3150")]

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "[1] FakeDevice<ET-1810>" in result.stdout
    assert "[2] FakeDevice<L3150>" in result.stdout


@patch("pyreink_counters.cli.list_devices")
def test_list_command_empty(mock_list: MagicMock) -> None:
    mock_list.return_value = []
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 1


def test_explain_command() -> None:
    result = runner.invoke(app, ["explain", "ET-1811"])

    assert result.exit_code == 0
    assert "Family:   ET-181x" in result.stdout
    assert "Counter 1: 0x30,0x31  capacity 141" in result.stdout
    assert "Counter 2: 0x32,0x33  capacity unknown" in result.stdout


def test_explain_command_json() -> None:
    result = runner.invoke(app, ["explain", "ET-1810", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["family"] == "ET-181x"
    assert data["counters"][2] == {"label": "Counter 3", "addresses": ["0xfc", "0xfd"], "capacity": 1299.0}


def test_explain_unknown_model() -> None:
    result = runner.invoke(app, ["explain", "XP-2100"])
    assert result.exit_code == 0
    assert "No counter overrides for XP-2100" in result.stdout


def test_info_command_json() -> None:
    result = runner.invoke(app, ["info", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert "version" in data
    assert "reinkpy" in data


def test_command_help() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("list", "status", "read", "reset", "explain", "info"):
        assert command in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "pyreink-counters" in result.stdout
