"""
Unit conversions between dBm and watt.

Used by the sweep pipeline for reflection percentages and by the GUI to
keep the sweep power fields (dBm / W) in sync.
"""

import math


class SgControlError(Exception):
    """Base class for signal generator control errors"""
    pass


class InvalidValueError(SgControlError, ValueError):
    """Raised when a value cannot be converted to a finite result"""
    pass


def dbm_to_watt(value_in_dbm: float) -> float:
    """Convert a power level in dBm to watt"""
    value_in_dbm = float(value_in_dbm)
    if not math.isfinite(value_in_dbm):
        raise InvalidValueError(f"Cannot convert non-finite power {value_in_dbm} dBm")
    try:
        return 0.001 * math.pow(10, 0.1 * value_in_dbm)
    except OverflowError:
        raise InvalidValueError(f"Power {value_in_dbm} dBm is out of range") from None


def watt_to_dbm(value_in_watt: float) -> float:
    """
    Convert a power level in watt to dBm.

    Raises:
        InvalidValueError: for zero, negative or non-finite input, where the
            logarithm has no finite value.
    """
    value_in_watt = float(value_in_watt)
    if not math.isfinite(value_in_watt) or value_in_watt <= 0:
        raise InvalidValueError(f"Cannot convert {value_in_watt} W to dBm")
    return 10 * math.log10(value_in_watt) + 30
