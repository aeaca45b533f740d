"""
Signal generator command catalogue

Command String       - Comment
$IDN,0               - Get identity
$VER,0               - Get firmware version
$ST,0                - Get status (error code)
$ST,0,1              - Get status, verbose list of errors (multi-line)
$ERRC,0              - Clear errors
$FCG,0 / $FCS,0,f    - Get / set frequency (MHz)
$PPG,0               - Get PA power measurement
$PWRG,0 / $PWRS,0,p  - Get / set power setpoint (dBm)
$DLCS,0,a,b,c,d,e,f  - Configure DLL
$DLES,0,1|0          - DLL enable / disable
$ECS,0,1|0           - RF enable / disable
$SWPD,0,s,e,st,p,0   - Sweep in dBm (multi-line)
"""

import enum
import math
from dataclasses import dataclass
from typing import Tuple, Union

from sg_properties import CHANNEL, LINE_ENDING

Argument = Union[str, int, float]


class CommandKind(enum.Enum):
    SINGLE_LINE = "single_line"   # answered by one line ending in \r\n
    MULTI_LINE = "multi_line"     # answered by several lines ending in OK\r\n


@dataclass(frozen=True)
class Command:
    """An ASCII mnemonic and its ordered argument strings"""
    mnemonic: str
    args: Tuple[str, ...] = ()
    kind: CommandKind = CommandKind.SINGLE_LINE

    def __str__(self):
        return ",".join(("$" + self.mnemonic,) + tuple(self.args))

    def to_wire(self) -> bytes:
        return (str(self) + LINE_ENDING).encode("ascii")


def parse_command(text: str, kind: CommandKind = CommandKind.SINGLE_LINE) -> Command:
    """Build a Command from typed text such as "$FCS,0,2450" """
    text = text.strip()
    if not text.startswith("$") or len(text) < 2:
        raise ValueError(f"Commands start with '$': {text!r}")
    parts = text[1:].split(",")
    if not parts[0]:
        raise ValueError(f"Missing mnemonic: {text!r}")
    return Command(parts[0], tuple(parts[1:]), kind)


def format_argument(value: Argument) -> str:
    """
    Render one argument.

    Strings pass through as typed (after trimming) but must parse as a
    number; ints and floats are rendered with two decimals.
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            raise ValueError(f"Not a number: {value!r}") from None
        if not math.isfinite(number):
            raise ValueError(f"Not a finite number: {value!r}")
        return text
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Not a finite number: {value!r}")
    return f"{number:.2f}"


def build(mnemonic: str, *args: Argument,
          kind: CommandKind = CommandKind.SINGLE_LINE) -> Command:
    """Build a channel-0 command with formatted numeric arguments"""
    return Command(mnemonic, (CHANNEL,) + tuple(format_argument(a) for a in args), kind)


def get_identity() -> Command:
    return build("IDN")


def get_version() -> Command:
    return build("VER")


def get_status(verbose: bool = False) -> Command:
    if verbose:
        return Command("ST", (CHANNEL, "1"), CommandKind.MULTI_LINE)
    return build("ST")


def clear_errors() -> Command:
    return build("ERRC")


def get_frequency() -> Command:
    return build("FCG")


def set_frequency(frequency_mhz: Argument) -> Command:
    return build("FCS", frequency_mhz)


def get_pa_power() -> Command:
    return build("PPG")


def get_power_setpoint() -> Command:
    return build("PWRG")


def set_power(power_dbm: Argument) -> Command:
    return build("PWRS", power_dbm)


def configure_dll(*params: Argument) -> Command:
    if len(params) != 6:
        raise ValueError(f"DLL configuration takes 6 values, got {len(params)}")
    return build("DLCS", *params)


def dll_enable(enable: bool = True) -> Command:
    return Command("DLES", (CHANNEL, "1" if enable else "0"))


def rf_enable(enable: bool = True) -> Command:
    return Command("ECS", (CHANNEL, "1" if enable else "0"))


def sweep_dbm(start: Argument, stop: Argument, step: Argument,
              power_dbm: Argument) -> Command:
    """Sweep from `start` to `stop` MHz in `step` MHz increments at `power_dbm`"""
    cmd = build("SWPD", start, stop, step, power_dbm, kind=CommandKind.MULTI_LINE)
    return Command(cmd.mnemonic, cmd.args + ("0",), cmd.kind)
