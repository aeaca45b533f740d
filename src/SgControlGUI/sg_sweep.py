"""
S11 sweep pipeline

Issues the $SWPD sweep command, validates and parses the multi-line
response into samples and derives S11 (dB) and reflection (%) for each
frequency point. Also prepares the series and axis ranges for plotting.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np

from sg_commands import Argument, sweep_dbm
from sg_metrics import SgControlError
from sg_properties import LONG_TERMINATOR, LINE_ENDING, SWEEP_TAG
from sg_reader import Response, ResponseStatus

logger = logging.getLogger(__name__)


class SweepError(SgControlError):
    """Sweep data invalid / incomplete"""
    pass


@dataclass(frozen=True)
class SweepSample:
    """One frequency point of a sweep"""
    frequency: float   # MHz
    forward: float     # dBm
    reflected: float   # dBm

    @property
    def s11_db(self) -> float:
        """S11 in dB"""
        return self.reflected - self.forward

    @property
    def reflection_percent(self) -> float:
        """Reflected power as a percentage of forward power"""
        return 100 * math.pow(10, 0.1 * self.s11_db)


@dataclass
class SweepResult:
    """
    Samples of one sweep in device line order.

    `skipped` holds (line index, line text) for data lines that failed
    validation and were left out of `samples`.
    """
    samples: List[SweepSample] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    def __len__(self):
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)

    def __getitem__(self, index):
        return self.samples[index]

    @property
    def frequencies(self) -> np.ndarray:
        return np.array([s.frequency for s in self.samples], dtype=float)

    @property
    def s11_db(self) -> np.ndarray:
        return np.array([s.s11_db for s in self.samples], dtype=float)

    @property
    def reflection_percent(self) -> np.ndarray:
        return np.array([s.reflection_percent for s in self.samples], dtype=float)


class PlotNotation(enum.Enum):
    LOGARITHMIC = "S11 (dB)"
    LINEAR = "Reflection (%)"


def parse_sweep_line(line: str) -> SweepSample:
    """
    Parse "$SWPD,<channel>,<frequency>,<forward>,<reflected>".

    Raises:
        ValueError: if the tag is missing, the field count is not 5 or a
            value is not a number, or S11 and reflection cannot be
            represented as floats
    """
    fields = line.split(",")
    if SWEEP_TAG not in fields:
        raise ValueError(f"Missing {SWEEP_TAG} tag")
    if len(fields) != 5:
        raise ValueError(f"Expected 5 fields, got {len(fields)}")
    values = [float(f) for f in fields[2:]]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("Non-finite value")
    sample = SweepSample(*values)
    try:
        representable = (math.isfinite(sample.s11_db)
                         and math.isfinite(sample.reflection_percent))
    except OverflowError:
        representable = False
    if not representable:
        raise ValueError("Reflected and forward power too far apart")
    return sample


def validate_sweep_response(text: str):
    """Raise SweepError unless the text holds sweep data and the OK terminator"""
    if SWEEP_TAG + "," not in text or LONG_TERMINATOR not in text:
        raise SweepError("Sweep data invalid / incomplete.")


def parse_sweep_response(text: str, strict: bool = False) -> SweepResult:
    """
    Turn a complete sweep response into a SweepResult.

    Everything from the last "OK" line on is dropped, and blank lines are
    ignored. A data line that fails validation raises SweepError in
    strict mode; otherwise it is recorded in `skipped` and left out.

    Raises:
        SweepError: on a malformed payload, or when no line holds data
    """
    validate_sweep_response(text)

    body = text[:text.rfind(LONG_TERMINATOR)]
    result = SweepResult()
    for index, line in enumerate(body.split(LINE_ENDING)):
        if not line.strip():
            continue
        try:
            result.samples.append(parse_sweep_line(line))
        except ValueError as e:
            if strict:
                raise SweepError(f"Malformed sweep line {index}: {line!r} ({e})") from e
            logger.warning("Skipping malformed sweep line %d: %r (%s)", index, line, e)
            result.skipped.append((index, line))

    if not result.samples:
        raise SweepError("Sweep returned no data points.")
    return result


def check_sweep_response(response: Response):
    """Raise SweepError if the exchange did not end with a complete response"""
    if response.status is ResponseStatus.ERROR_SENTINEL:
        raise SweepError(f"Device reported an error: {response.text.strip()}")
    if response.status is not ResponseStatus.COMPLETE:
        raise SweepError(f"Sweep aborted: {response.status.value}")


def run_sweep(dispatcher, start: Argument, stop: Argument, step: Argument,
              power_dbm: Argument, strict: bool = False, cancel=None) -> SweepResult:
    """
    Execute an S11 sweep in dBm.

    Args:
        dispatcher: CommandDispatcher connected to the board
        start, stop, step: frequencies in MHz
        power_dbm: sweep power in dBm
        strict: reject the whole sweep if any data line is malformed
        cancel: optional threading.Event to abort the wait

    Raises:
        SweepError: if the device did not return a valid sweep
        ValueError: if a parameter is not a number
    """
    command = sweep_dbm(start, stop, step, power_dbm)
    response = dispatcher.send_multi_line(command, cancel)
    check_sweep_response(response)
    result = parse_sweep_response(response.text, strict=strict)
    logger.info("Sweep complete: %d points", len(result))
    return result


def axis_range(values, notation: PlotNotation) -> Tuple[float, float]:
    """
    Y-axis range for a series.

    S11: zero always in range, padded by 10%. Reflection: 0 to at
    least 100%.
    """
    values = np.asarray(values, dtype=float)
    if notation is PlotNotation.LOGARITHMIC:
        min_val = min(0.0, float(np.min(values)))
        max_val = max(0.0, float(np.max(values)))
        return min_val * 1.1, max_val * 1.1
    return 0.0, max(100.0, float(np.max(values)))


def plot_series(result: SweepResult, notation: PlotNotation):
    """
    Data for the plot renderer.

    Returns:
        (frequencies, values, (y_min, y_max), y_label)
    """
    if not len(result):
        raise SweepError("No sweep data to plot.")
    if notation is PlotNotation.LOGARITHMIC:
        values = result.s11_db
    else:
        values = result.reflection_percent
    return result.frequencies, values, axis_range(values, notation), notation.value
