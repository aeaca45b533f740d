"""
Unit tests for the command catalogue
"""
import dataclasses
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src" / "SgControlGUI"))

import pytest
import sg_commands
from sg_commands import Command, CommandKind, format_argument, parse_command


class TestCatalogue:

    @pytest.mark.parametrize("command, text", [
        (sg_commands.get_identity(), "$IDN,0"),
        (sg_commands.get_version(), "$VER,0"),
        (sg_commands.get_status(), "$ST,0"),
        (sg_commands.get_status(verbose=True), "$ST,0,1"),
        (sg_commands.clear_errors(), "$ERRC,0"),
        (sg_commands.get_frequency(), "$FCG,0"),
        (sg_commands.get_pa_power(), "$PPG,0"),
        (sg_commands.get_power_setpoint(), "$PWRG,0"),
        (sg_commands.dll_enable(True), "$DLES,0,1"),
        (sg_commands.dll_enable(False), "$DLES,0,0"),
        (sg_commands.rf_enable(True), "$ECS,0,1"),
        (sg_commands.rf_enable(False), "$ECS,0,0"),
    ])
    def test_fixed_commands(self, command, text):
        assert str(command) == text

    def test_wire_format_appends_crlf(self):
        assert sg_commands.get_identity().to_wire() == b"$IDN,0\r\n"

    def test_set_frequency_from_text_passes_through(self):
        assert str(sg_commands.set_frequency(" 2450.5 ")) == "$FCS,0,2450.5"

    def test_set_power_from_number_uses_two_decimals(self):
        assert str(sg_commands.set_power(30)) == "$PWRS,0,30.00"

    def test_configure_dll(self):
        command = sg_commands.configure_dll(2400, 2500, 10, 0.5, "1", "50")
        assert str(command) == "$DLCS,0,2400.00,2500.00,10.00,0.50,1,50"

    def test_configure_dll_needs_six_values(self):
        with pytest.raises(ValueError):
            sg_commands.configure_dll(1, 2, 3)

    def test_sweep_command(self):
        command = sg_commands.sweep_dbm("2400", "2500", "10", "20")
        assert str(command) == "$SWPD,0,2400,2500,10,20,0"
        assert command.kind is CommandKind.MULTI_LINE

    def test_command_kinds(self):
        assert sg_commands.get_identity().kind is CommandKind.SINGLE_LINE
        assert sg_commands.get_status(verbose=True).kind is CommandKind.MULTI_LINE


class TestArguments:

    @pytest.mark.parametrize("value", ["", "abc", "12,5", "nan", "inf"])
    def test_invalid_text_rejected(self, value):
        with pytest.raises(ValueError):
            format_argument(value)

    def test_non_finite_number_rejected(self):
        with pytest.raises(ValueError):
            format_argument(float("inf"))

    def test_negative_number(self):
        assert format_argument(-3.456) == "-3.46"


class TestCommand:

    def test_immutable(self):
        command = sg_commands.get_identity()
        with pytest.raises(dataclasses.FrozenInstanceError):
            command.mnemonic = "VER"

    def test_parse_command(self):
        command = parse_command(" $FCS,0,2450 ")
        assert command == Command("FCS", ("0", "2450"))

    def test_parse_multi_line(self):
        command = parse_command("$ST,0,1", CommandKind.MULTI_LINE)
        assert command.kind is CommandKind.MULTI_LINE

    @pytest.mark.parametrize("text", ["IDN,0", "$", "$,0", ""])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            parse_command(text)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
