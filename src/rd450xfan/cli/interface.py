"""
Command Line Interface Module

This module provides the command-line interface for reading
and setting fan speeds.
"""

import argparse
import copy
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional
import yaml

from ..ipmi import IPMICommander, IPMIError, IPMIResponseError, SensorReader, StatusReport, FANS
from ..ipmi.sensors import NOT_AVAILABLE
from .commands import (
    PROG,
    USAGE,
    CommandError,
    Command,
    UsageCommand,
    StatusCommand,
    GetCommand,
    SetCommand,
    TestRunCommand,
    UnknownCommand,
    InvalidCommand,
    parse_command,
    parse_set,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CONFIG_PATH = "/etc/rd450xfan/config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "ipmi": {
        "tool": "ipmitool",
        "oem_netfn": "0x2e",
        "host": "localhost",
        "username": "ADMIN",
        "password": "ADMIN",
        "interface": "lanplus",
        "sudo": False,
    },
    "logging": {
        "level": "WARNING",
    },
}

FAN_BORDER = "+----------------------+-----------------+---------+"
THERMAL_BORDER = "+----------------------+---------------------------+"

class ConfigError(Exception):
    """Raised when the configuration file cannot be loaded"""
    pass

def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged

def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration, falling back to defaults

    Args:
        config_path: Path to YAML configuration file

    Returns:
        DEFAULT_CONFIG updated with the file's settings

    Raises:
        ConfigError: If the file exists but is not a valid YAML mapping
    """
    if not os.path.exists(config_path):
        logger.debug(f"No configuration at {config_path}, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid configuration file {config_path}: {e}")

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigError(f"Invalid configuration file {config_path}: expected a mapping")

    # A section with every key commented out loads as None
    for section in DEFAULT_CONFIG:
        if section in config and config[section] is None:
            del config[section]
        elif not isinstance(config.get(section, {}), dict):
            raise ConfigError(f"Invalid configuration file {config_path}: '{section}' must be a mapping")

    return _merge(DEFAULT_CONFIG, config)

def format_status_table(report: StatusReport) -> str:
    """Render a StatusReport as the two-table text dashboard"""
    lines = [
        FAN_BORDER,
        "| COOLING SYSTEM                                   |",
        FAN_BORDER,
        f"| {'SENSOR':<20} | {'RPM':<15} | {'PWM (%)':<7} |",
        FAN_BORDER,
    ]
    for fan in report.fans:
        lines.append(f"| {fan.name:<20} | {fan.rpm:<15} | {fan.pwm:<7} |")

    lines.extend([
        FAN_BORDER,
        "| TEMPERATURE & AIRFLOW                            |",
        THERMAL_BORDER,
        f"| {'SENSOR':<20} | {'VALUE':<25} |",
        THERMAL_BORDER,
    ])
    for thermal in report.thermals:
        lines.append(f"| {thermal.name:<20} | {thermal.value:<25} |")
    lines.append(THERMAL_BORDER)

    return "\n".join(lines)

def format_status_json(report: StatusReport) -> str:
    """Render a StatusReport as an indented JSON document"""
    return json.dumps(report.to_dict(), indent=2, ensure_ascii=False)

class CLI:
    """Command-line interface handler"""

    def __init__(self):
        """Initialize CLI handler"""
        self.parser = self._create_parser()
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.commander: Optional[IPMICommander] = None
        self.reader: Optional[SensorReader] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            prog=PROG,
            description="Read and set Lenovo ThinkServer RD450X fan speeds",
            epilog=USAGE,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        parser.add_argument(
            "-c", "--config",
            help="Path to configuration file",
            default=DEFAULT_CONFIG_PATH
        )

        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging"
        )

        parser.add_argument(
            "command",
            nargs=argparse.REMAINDER,
            metavar="COMMAND",
            help="status [--json] | get <id> | set <id|all> <speed> | testrun"
        )

        return parser

    def _setup_logging(self, debug: bool) -> None:
        level = str((self.config.get("logging") or {}).get("level", "WARNING")).upper()
        logging.basicConfig(level=getattr(logging, level, logging.WARNING), format=LOG_FORMAT)
        if debug:
            logging.getLogger("rd450xfan").setLevel(logging.DEBUG)

    def _status(self, as_json: bool) -> None:
        try:
            report = self.reader.get_status_report()
        except IPMIError as e:
            print(f"Error fetching sensor data: {e}")
            return

        if as_json:
            print(format_status_json(report))
        else:
            print(format_status_table(report))

    def _get(self, command: GetCommand) -> None:
        try:
            pwm = self.reader.get_fan_pwm(command.fan_id)
        except IPMIResponseError as e:
            logger.debug(f"Short PWM response: {e}")
            print("Error: Unexpected IPMI response format or missing data")
            return
        except IPMIError as e:
            print(f"IPMI Error: {e}")
            sys.exit(1)

        print(f"Fan {command.fan_id:02d} PWM: {pwm}")

    def _set(self, command: SetCommand) -> None:
        try:
            self.commander.set_fan_speed(command.wire_id, command.speed)
        except IPMIError as e:
            print(f"IPMI Error: {e}")
            sys.exit(1)

        if command.is_broadcast:
            print(f"All fans successfully set to {command.speed}%")
        else:
            print(f"Fan {command.wire_id} successfully set to {command.speed}%")

    def _testrun(self) -> None:
        """Exercise set, get and status, then restore the previous speeds"""
        print("--- STARTING AUTOMATED TEST SEQUENCE ---")

        print("[STEP 0] Saving current fan speeds...")
        pwms = self.reader.get_pwms()

        # Only fans with a valid reading can be restored
        saved_speeds = []
        for fan in FANS:
            pwm = pwms.get(fan.name, NOT_AVAILABLE)
            if pwm == NOT_AVAILABLE:
                continue
            speed = pwm[:-1] if pwm.endswith("%") else pwm
            saved_speeds.append((fan, speed))
            print(f"    ID {fan.fan_id} ({fan.name}) backed up at {speed}%")

        print("\n[STEP 1] Testing 'set all' command (setting to 40%)...")
        self._set(SetCommand(None, 40))

        print("\n[STEP 2] Testing 'get' command for Fan 01...")
        self._get(GetCommand(1))

        print("\n[STEP 3] Displaying full status dashboard...")
        self._status(as_json=False)

        print("\n[STEP 4] Restoring original fan speeds...")
        for fan, speed in saved_speeds:
            try:
                self._set(parse_set(fan.fan_id, speed))
            except CommandError as e:
                print(e)

        print("\n--- TEST SEQUENCE COMPLETE ---")

    def execute(self, command: Command) -> None:
        """Execute a single parsed command"""
        logger.debug(f"Executing {command}")

        if isinstance(command, UsageCommand):
            print(USAGE)
        elif isinstance(command, StatusCommand):
            self._status(command.as_json)
        elif isinstance(command, GetCommand):
            self._get(command)
        elif isinstance(command, SetCommand):
            self._set(command)
        elif isinstance(command, TestRunCommand):
            self._testrun()
        elif isinstance(command, InvalidCommand):
            print(command.message)
        elif isinstance(command, UnknownCommand):
            print(f"Error: Unknown command '{command.name}'")

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI interface

        Args:
            argv: Arguments without the program name, sys.argv[1:] if None
        """
        # Unrecognized options are reported as unknown commands
        args, extras = self.parser.parse_known_args(argv)

        try:
            self.config = load_config(args.config)
        except ConfigError as e:
            print(f"Error: {e}")
            sys.exit(1)

        self._setup_logging(args.debug)

        self.commander = IPMICommander.from_config(self.config)
        self.reader = SensorReader(self.commander)

        if not self.commander.is_available():
            print(f"Error: '{self.commander.tool}' not found in PATH. Install it via: apt install ipmitool")
            sys.exit(1)

        self.execute(parse_command(extras + args.command))

def main() -> None:
    """Main entry point"""
    cli = CLI()
    cli.run()

if __name__ == "__main__":
    main()
