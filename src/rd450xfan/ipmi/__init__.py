"""
IPMI Communication Package for rd450xfan

This package wraps ipmitool to read and set fan duty cycles on the Lenovo
ThinkServer RD450X and to turn its sensor table into a fan and thermal report.

Key Components:
- IPMICommander: Runs ipmitool raw OEM commands and the sensor list
- SensorReader: Builds PWM readings and StatusReport objects
- FANS: The six fan headers in their fixed order

Example Usage:
    >>> from rd450xfan.ipmi import IPMICommander, SensorReader
    >>>
    >>> commander = IPMICommander()
    >>> reader = SensorReader(commander)
    >>> report = reader.get_status_report()
    >>>
    >>> commander.set_fan_speed("00", 40)  # All fans to 40%

Note:
    This package requires ipmitool on PATH and usually root access to the
    local BMC interface.
"""

from .commander import (
    IPMICommander,
    IPMIError,
    IPMIToolNotFoundError,
    IPMICommandError,
    IPMIResponseError,
)
from .sensors import (
    FANS,
    FanSlot,
    FanReading,
    ThermalReading,
    SensorTable,
    StatusReport,
    SensorReader,
    hex_to_percent,
    parse_pwm_response,
    parse_sensor_list,
    build_status_report,
)

__all__ = [
    'IPMICommander',
    'IPMIError',
    'IPMIToolNotFoundError',
    'IPMICommandError',
    'IPMIResponseError',
    'FANS',
    'FanSlot',
    'FanReading',
    'ThermalReading',
    'SensorTable',
    'StatusReport',
    'SensorReader',
    'hex_to_percent',
    'parse_pwm_response',
    'parse_sensor_list',
    'build_status_report',
]
