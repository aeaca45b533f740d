"""
Serial device enumeration and signal generator autodetection
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from serial.tools import list_ports

from sg_properties import TARGET_VENDOR_ID, TARGET_PRODUCT_ID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    """One enumerated serial device"""
    port_name: str
    vendor_id: Optional[int] = None   # None for non-USB ports
    product_id: Optional[int] = None
    description: str = ""

    @property
    def is_signal_generator(self) -> bool:
        return (self.vendor_id == TARGET_VENDOR_ID
                and self.product_id == TARGET_PRODUCT_ID)


@dataclass
class AutodetectResult:
    """
    Outcome of autodetection.

    `selected` is None when no board was found; the caller decides whether
    that is fatal.
    """
    matches: List[DeviceInfo] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.matches)

    @property
    def multiple(self) -> bool:
        return len(self.matches) > 1

    @property
    def selected(self) -> Optional[DeviceInfo]:
        return self.matches[0] if self.matches else None


def list_devices() -> List[DeviceInfo]:
    """List the serial devices attached to the host, in enumeration order"""
    devices = []
    for port in list_ports.comports():
        devices.append(DeviceInfo(
            port_name=port.device,
            vendor_id=port.vid,
            product_id=port.pid,
            description=port.description or "",
        ))
    return devices


def autodetect(devices: Optional[Iterable[DeviceInfo]] = None) -> List[DeviceInfo]:
    """Return the devices that identify as a signal generator board"""
    if devices is None:
        devices = list_devices()
    return [d for d in devices if d.is_signal_generator]


def select_device(devices: Optional[Iterable[DeviceInfo]] = None) -> AutodetectResult:
    """
    Autodetect and pick the board to connect to.

    The first match in enumeration order is selected. More than one match
    is reported through the log but is not an error.
    """
    result = AutodetectResult(matches=autodetect(devices))
    if not result.found:
        logger.warning("No signal generator board detected")
    elif result.multiple:
        logger.info("Multiple signal generator boards found: %s",
                    ", ".join(d.port_name for d in result.matches))
    return result


def port_names_changed(old: Sequence[DeviceInfo], new: Sequence[DeviceInfo]) -> bool:
    """True if the port list differs in count or in any port name"""
    if len(old) != len(new):
        return True
    return any(a.port_name != b.port_name for a, b in zip(old, new))
