"""Tests for CLI module - value parsing and command structure."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from pycolossal_modbus import __version__
from pycolossal_modbus.cli import (
    app,
    parse_bool,
    parse_channel_spec,
    parse_tag_assignment,
)
from pycolossal_modbus.codec import encode_real
from pycolossal_modbus.types import BooleanValue, ChannelType, IntegerValue, RealValue

runner = CliRunner()


# ============================================================================
# Value Parsing Tests
# ============================================================================


class TestParseBool:
    """Test boolean value parsing."""

    def test_true_variants(self) -> None:
        for val in ["true", "True", "TRUE", "1", "on", "ON", "yes", "YES"]:
            assert parse_bool(val) is True

    def test_false_variants(self) -> None:
        for val in ["false", "False", "FALSE", "0", "off", "OFF", "no", "NO"]:
            assert parse_bool(val) is False

    def test_invalid_values(self) -> None:
        with pytest.raises(ValueError, match="Invalid boolean value"):
            parse_bool("maybe")


class TestParseTagAssignment:
    """Test NAME=VALUE parsing for offline evaluation."""

    def test_integer(self) -> None:
        assert parse_tag_assignment("MB1=42") == ("MB1", IntegerValue(42))

    def test_real(self) -> None:
        assert parse_tag_assignment("MB1=3.5") == ("MB1", RealValue(3.5))
        assert parse_tag_assignment("MB1=-2") == ("MB1", RealValue(-2.0))
        assert parse_tag_assignment("MB1=70000") == ("MB1", RealValue(70000.0))

    def test_boolean(self) -> None:
        assert parse_tag_assignment(" MB3 = true ") == ("MB3", BooleanValue(True))

    def test_invalid(self) -> None:
        for text in ["MB1", "=3", "MB1=", "MB1=abc"]:
            with pytest.raises(ValueError):
                parse_tag_assignment(text)


class TestParseChannelSpec:
    """Test NAME:ADDRESS[:TYPE] parsing."""

    def test_default_type_is_real(self) -> None:
        ch = parse_channel_spec("MB1:2", 1)
        assert (ch.name, ch.address, ch.channel_type) == ("MB1", 2, ChannelType.REAL)

    def test_explicit_type_and_hex_address(self) -> None:
        ch = parse_channel_spec("MB2:0x10:int", 2)
        assert (ch.address, ch.channel_type) == (16, ChannelType.INTEGER)

    def test_invalid(self) -> None:
        for text in ["MB1", "MB1:2:float", "MB1:x", "a:b:c:d"]:
            with pytest.raises(ValueError):
                parse_channel_spec(text, 1)


# ============================================================================
# Command Tests
# ============================================================================


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestEval:
    def test_constant(self) -> None:
        result = runner.invoke(app, ["eval", "2 + 2"])
        assert result.exit_code == 0
        assert result.output.strip() == "4.0"

    def test_with_tags_json(self) -> None:
        result = runner.invoke(app, ["eval", "MB1 + MB1 + 0.0", "--tag", "MB1=3.0", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"expression": "MB1 + MB1 + 0.0", "value": 6.0}

    def test_unknown_tag(self) -> None:
        result = runner.invoke(app, ["eval", "MB99 + 1"])
        assert result.exit_code == 1
        assert "UnknownTagError" in result.output

    def test_bad_tag_option(self) -> None:
        result = runner.invoke(app, ["eval", "1", "--tag", "oops"])
        assert result.exit_code == 2


class TestShowConfig:
    def test_default_config(self) -> None:
        result = runner.invoke(app, ["show-config"])
        assert result.exit_code == 0
        assert "Device_1" in result.output
        assert "MB10" in result.output
        assert "CH5 = MB5 + MB5 + 0.0" in result.output

    def test_json(self) -> None:
        result = runner.invoke(app, ["show-config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["devices"][0]["address"] == "127.0.0.1:5502"
        assert len(data["calculations"]) == 5

    def test_invalid_file(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text('{"devices": [{"id": 1}]}', encoding="utf-8")
        result = runner.invoke(app, ["show-config", "--config", str(path)])
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output


class TestPoll:
    def test_requires_host(self) -> None:
        result = runner.invoke(app, ["poll", "MB1:2"])
        assert result.exit_code == 2

    def test_once(self) -> None:
        mock_client = MagicMock()
        mock_client.connect.return_value = True
        mock_client.read_holding_registers.side_effect = [
            MagicMock(isError=lambda: False, registers=list(encode_real(3.0))),
            MagicMock(isError=lambda: False, registers=[7]),
        ]
        with patch("pycolossal_modbus.client.ModbusTcpClient", return_value=mock_client):
            result = runner.invoke(
                app, ["poll", "MB1:2:real", "MB2:4:int", "--host", "127.0.0.1", "--once", "--json"]
            )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["values"] == {"MB1": 3.0, "MB2": 7}

    def test_connection_refused(self) -> None:
        mock_client = MagicMock()
        mock_client.connect.return_value = False
        with patch("pycolossal_modbus.client.ModbusTcpClient", return_value=mock_client):
            result = runner.invoke(app, ["poll", "MB1:2", "--host", "127.0.0.1", "--once"])
        assert result.exit_code == 3


class TestRun:
    def test_invalid_format(self) -> None:
        result = runner.invoke(app, ["run", "--format", "xml"])
        assert result.exit_code == 2

    def test_runs_cycles_with_mocked_transport(self, tmp_path: Path) -> None:
        config = {
            "poll_interval_s": 0.01,
            "backoff_s": 0.01,
            "devices": [
                {
                    "id": 0,
                    "name": "Device_1",
                    "connection": {"host": "127.0.0.1", "port": 5502},
                    "channels": [{"id": 1, "name": "MB1", "address": 2, "type": "real"}],
                }
            ],
            "calculations": [{"id": 1, "name": "CH1", "expression": "MB1 * 2"}],
        }
        path = tmp_path / "worker.json"
        path.write_text(json.dumps(config), encoding="utf-8")
        mock_client = MagicMock()
        mock_client.connect.return_value = True
        mock_client.read_holding_registers.return_value = MagicMock(
            isError=lambda: False, registers=list(encode_real(1.5))
        )
        with patch("pycolossal_modbus.client.ModbusTcpClient", return_value=mock_client):
            result = runner.invoke(app, ["run", "--config", str(path), "--cycles", "2", "--format", "json"])
        assert result.exit_code == 0, result.output
        lines = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
        devices = [line for line in lines if line["type"] == "device"]
        assert len(devices) >= 2
        assert devices[0]["values"] == {"MB1": 1.5}
