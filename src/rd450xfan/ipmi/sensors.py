"""
Fan and Thermal Sensor Module

This module decodes the RD450X PWM registers and the ipmitool sensor table
into a structured fan and thermal report.
"""

import logging
import re
from dataclasses import dataclass, asdict
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Tuple

from .commander import IPMICommander, IPMIError, IPMIResponseError

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

# Plain register and reading formats, no 0x prefixes, underscores or nan/inf
HEX_PATTERN = re.compile(r"[+-]?[0-9a-fA-F]+")
DECIMAL_PATTERN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", re.ASCII)

class FanSlot(NamedTuple):
    """A fan header with its two-digit id and sensor name"""
    fan_id: str
    name: str

    @property
    def register(self) -> int:
        """Position of the fan's register in the PWM response"""
        return int(self.fan_id)

# Fixed fan order used for PWM registers, reports and restores
FANS: Tuple[FanSlot, ...] = (
    FanSlot("01", "System Fan1"),
    FanSlot("02", "System Fan2"),
    FanSlot("03", "System Fan3"),
    FanSlot("04", "System Fan4"),
    FanSlot("05", "CPU Fan1"),
    FanSlot("06", "CPU Fan2"),
)

@dataclass(frozen=True)
class FanReading:
    """Speed and duty cycle of a single fan.

    Attributes:
        name: Fan name from FANS
        rpm: "<N> RPM" or "N/A"
        pwm: "<N>%" or "N/A"
    """
    name: str
    rpm: str
    pwm: str

@dataclass(frozen=True)
class ThermalReading:
    """A temperature or airflow reading with its unit (e.g. "42 °C")"""
    name: str
    value: str

@dataclass(frozen=True)
class SensorTable:
    """Fan speeds and thermal readings parsed from the sensor list"""
    rpms: Mapping[str, str]
    thermals: Tuple[ThermalReading, ...]

@dataclass(frozen=True)
class StatusReport:
    """Combined fan and thermal report"""
    fans: Tuple[FanReading, ...]
    thermals: Tuple[ThermalReading, ...]

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            "fans": [asdict(f) for f in self.fans],
            "thermals": [asdict(t) for t in self.thermals],
        }

def hex_to_percent(hex_str: str) -> str:
    """Convert a hex register value to a percentage string.

    Values are not clamped, "ff" becomes "255%".

    Examples:
        >>> hex_to_percent("32")
        '50%'
        >>> hex_to_percent("zz")
        'N/A'
    """
    if not HEX_PATTERN.fullmatch(hex_str):
        return NOT_AVAILABLE
    return f"{int(hex_str, 16)}%"

def parse_pwm_response(output: str) -> Mapping[str, str]:
    """Map fan names to PWM percentages from a PWM read response

    Args:
        output: Raw response of the PWM read command

    Returns:
        Read-only mapping of fan name to percentage string, empty if the
        response holds fewer than 7 tokens
    """
    parts = output.split()
    if len(parts) < len(FANS) + 1:
        logger.debug(f"PWM response too short: {output.strip()!r}")
        return MappingProxyType({})

    return MappingProxyType({
        fan.name: hex_to_percent(parts[fan.register]) for fan in FANS
    })

def _format_magnitude(value: str) -> str:
    if not DECIMAL_PATTERN.fullmatch(value):
        return value
    return f"{float(value):.0f}"

def parse_sensor_list(output: str) -> SensorTable:
    """Parse ipmitool "sensor list" output.

    Each line is pipe-delimited as name | value | unit | status | thresholds.
    Lines mentioning FAN (but not POWER) are fan speed rows, lines mentioning
    TEMP or AIRFLOW are thermal rows, everything else is ignored. A value of
    "na" marks a disconnected sensor.

    Thermal values are rounded to whole numbers and "degrees C" is shortened
    to "°C". A reading of 0 °C is dropped since unpopulated sensors report it.

    Args:
        output: Text output of the sensor list command

    Returns:
        SensorTable with fan RPMs keyed by sensor name and thermal readings
        in the order they appear
    """
    rpms: Dict[str, str] = {}
    thermals: List[ThermalReading] = []

    for line in output.splitlines():
        if not line.strip():
            continue

        parts = line.split('|')
        if len(parts) < 3:
            continue

        name = parts[0].strip()
        value = parts[1].strip()
        unit = parts[2].strip()
        line_upper = line.upper()
        is_fan = "FAN" in line_upper

        # Disconnected thermal sensors
        if value == "na" and not is_fan:
            continue

        if is_fan and "POWER" not in line_upper:
            if value != "na":
                rpms[name] = f"{value} RPM"
        elif "TEMP" in line_upper or "AIRFLOW" in line_upper:
            clean_value = _format_magnitude(value)
            clean_unit = "°C" if unit == "degrees C" else unit

            if clean_value == "0" and clean_unit == "°C":
                logger.debug(f"Dropping zero reading for {name}")
                continue

            thermals.append(ThermalReading(name=name, value=f"{clean_value} {clean_unit}"))

    return SensorTable(rpms=MappingProxyType(rpms), thermals=tuple(thermals))

def build_status_report(pwms: Mapping[str, str], table: SensorTable) -> StatusReport:
    """Combine PWM and sensor list readings into a StatusReport

    Every fan in FANS is reported, missing values become "N/A".
    """
    fans = tuple(
        FanReading(
            name=fan.name,
            rpm=table.rpms.get(fan.name) or NOT_AVAILABLE,
            pwm=pwms.get(fan.name) or NOT_AVAILABLE,
        )
        for fan in FANS
    )
    return StatusReport(fans=fans, thermals=table.thermals)

class SensorReader:
    """Reads fan and thermal sensors through an IPMICommander"""

    def __init__(self, commander: IPMICommander):
        self.commander = commander

    def get_pwms(self) -> Mapping[str, str]:
        """Get PWM percentages of all fans keyed by fan name.

        A failed read yields an empty mapping so that callers report
        "N/A" instead of aborting.
        """
        try:
            output = self.commander.raw(IPMICommander.COMMANDS["GET_FAN_PWM"])
        except IPMIError as e:
            logger.warning(f"Failed to read fan PWM values: {e}")
            return MappingProxyType({})
        return parse_pwm_response(output)

    def get_fan_pwm(self, fan_id: int) -> str:
        """Get the PWM percentage of a single fan

        Args:
            fan_id: Fan number (1-6)

        Returns:
            Percentage string such as "50%"

        Raises:
            IPMIError: If the PWM read fails
            IPMIResponseError: If the response has no register for fan_id
        """
        parts = self.commander.read_pwm_tokens()
        if len(parts) <= fan_id:
            raise IPMIResponseError(
                f"Expected at least {fan_id + 1} values in PWM response, got {len(parts)}"
            )
        return hex_to_percent(parts[fan_id])

    def get_status_report(self) -> StatusReport:
        """Read PWM values and the sensor list into a StatusReport

        Raises:
            IPMIError: If the sensor list cannot be read
        """
        pwms = self.get_pwms()
        table = parse_sensor_list(self.commander.get_sensor_list())
        logger.debug(f"Parsed {len(table.rpms)} fan speeds and {len(table.thermals)} thermal readings")
        return build_status_report(pwms, table)
