"""
IPMI Command Execution Module

This module provides a wrapper around ipmitool for executing the Lenovo
RD450X OEM fan commands and listing sensors.
"""

import shutil
import subprocess
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

class IPMIError(Exception):
    """Base exception for IPMI-related errors"""
    pass

class IPMIToolNotFoundError(IPMIError):
    """Raised when the ipmitool executable cannot be found"""
    pass

class IPMICommandError(IPMIError):
    """Raised when an IPMI command fails"""
    pass

class IPMIResponseError(IPMIError):
    """Raised when an IPMI command returns output in an unexpected format"""
    pass

class IPMICommander:
    """Handles ipmitool invocation for fan control and sensor listing"""

    # Lenovo OEM network function
    OEM_NETFN = "0x2e"

    COMMANDS = {
        "GET_FAN_PWM": "0x31",
        "SET_FAN_PWM": "0x30",
        "SENSOR_LIST": "sensor list",
    }

    # Sub-selector byte preceding the fan id in SET_FAN_PWM
    SET_PWM_SELECTOR = "00"

    def __init__(self, tool: str = "ipmitool", host: str = "localhost", username: str = "ADMIN",
                 password: str = "ADMIN", interface: str = "lanplus", oem_netfn: Optional[str] = None,
                 use_sudo: bool = False):
        """Initialize IPMI commander with connection details

        Args:
            tool: ipmitool executable name or path
            host: IPMI host address, "localhost" for the in-band interface
            username: IPMI username (remote only)
            password: IPMI password (remote only)
            interface: IPMI interface type (remote only)
            oem_netfn: Network function byte for the OEM fan commands
            use_sudo: Prefix local invocations with sudo
        """
        self.tool = tool
        self.host = host
        self.username = username
        self.password = password
        self.interface = interface
        self.oem_netfn = oem_netfn or self.OEM_NETFN
        self.use_sudo = use_sudo

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "IPMICommander":
        """Create a commander from a loaded configuration

        Args:
            config: Configuration dictionary with an optional "ipmi" section

        Returns:
            Configured IPMICommander
        """
        ipmi = config.get("ipmi") or {}

        # YAML reads an unquoted 0x2e as the integer 46
        oem_netfn = ipmi.get("oem_netfn")
        if isinstance(oem_netfn, int) and not isinstance(oem_netfn, bool):
            oem_netfn = hex(oem_netfn)
        elif oem_netfn is not None:
            oem_netfn = str(oem_netfn)

        return cls(
            tool=str(ipmi.get("tool", "ipmitool")),
            host=str(ipmi.get("host", "localhost")),
            username=str(ipmi.get("username", "ADMIN")),
            password=str(ipmi.get("password", "ADMIN")),
            interface=str(ipmi.get("interface", "lanplus")),
            oem_netfn=oem_netfn,
            use_sudo=bool(ipmi.get("sudo", False)),
        )

    def is_available(self) -> bool:
        """Check whether the ipmitool executable resolves on PATH"""
        return shutil.which(self.tool) is not None

    def _base_command(self) -> List[str]:
        if self.host == "localhost":
            base_cmd = [self.tool]
            if self.use_sudo:
                base_cmd = ["sudo"] + base_cmd
            return base_cmd

        # For remote access, include connection parameters
        return [
            self.tool, "-I", self.interface,
            "-H", self.host,
            "-U", self.username,
            "-P", self.password
        ]

    def _execute_ipmi_command(self, args: List[str], merge_stderr: bool = False) -> str:
        """Execute an ipmitool command and return its output

        Args:
            args: Arguments passed to ipmitool
            merge_stderr: Capture stderr into the returned output

        Returns:
            Command output as string

        Raises:
            IPMIToolNotFoundError: If the executable cannot be started
            IPMICommandError: If the command exits with a non-zero status
        """
        full_cmd = self._base_command() + list(args)
        logger.debug(f"Executing: {' '.join(args)}")

        try:
            if merge_stderr:
                result = subprocess.run(
                    full_cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    errors="replace",
                    check=True
                )
            else:
                result = subprocess.run(
                    full_cmd,
                    capture_output=True,
                    text=True,
                    errors="replace",
                    check=True
                )
        except FileNotFoundError as e:
            raise IPMIToolNotFoundError(f"{self.tool} not found: {e}")
        except subprocess.CalledProcessError as e:
            output = e.stdout if merge_stderr else e.stderr
            raise IPMICommandError(f"{e}: {(output or '').strip()}")

        logger.debug(f"Command output: {result.stdout.strip()}")
        return result.stdout

    def raw(self, *args: str) -> str:
        """Execute a raw OEM command

        The OEM network function is prepended to args and the combined
        stdout and stderr of ipmitool is returned.

        Examples:
            >>> commander.raw("0x31")
            ' 00 32 32 32 32 4b 4b\\n'
        """
        return self._execute_ipmi_command(["raw", self.oem_netfn] + list(args), merge_stderr=True)

    def read_pwm_tokens(self) -> List[str]:
        """Read the raw PWM registers of all fans

        Returns:
            Whitespace-separated tokens of the response. Token 0 precedes
            the fan registers, tokens 1-6 hold fans 01-06 as hex bytes.
        """
        return self.raw(self.COMMANDS["GET_FAN_PWM"]).split()

    def set_fan_speed(self, wire_id: str, speed_percent: int) -> None:
        """Set the PWM duty cycle of one fan or all fans

        Args:
            wire_id: Two-digit fan id, "00" addresses every fan
            speed_percent: Duty cycle percentage (0-100)

        Raises:
            ValueError: If speed_percent is out of range
            IPMIError: If the command fails
        """
        if not 0 <= speed_percent <= 100:
            raise ValueError("Fan speed must be between 0 and 100")

        self.raw(
            self.COMMANDS["SET_FAN_PWM"],
            self.SET_PWM_SELECTOR,
            wire_id,
            f"0x{speed_percent:02x}"
        )
        logger.info(f"Fan {wire_id} PWM set to {speed_percent}%")

    def get_sensor_list(self) -> str:
        """Get the pipe-delimited sensor table from the BMC

        Only stdout is captured, so ipmitool warnings do not end up in the
        table.

        Example output line:
            CPU1 Temp        | 42.000     | degrees C  | ok    | na | ...
        """
        return self._execute_ipmi_command(self.COMMANDS["SENSOR_LIST"].split())
