"""
Command Parsing Module

Turns the positional command-line arguments into one of a closed set of
command objects, validating fan ids and speeds on the way.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

from ..ipmi.sensors import FANS

PROG = "rd450x-fan-control"

BROADCAST_ID = "00"

USAGE = f"""Usage:
  {PROG} status [--json]
  {PROG} get <id>
  {PROG} set <id|all> <speed>
  {PROG} testrun"""

class CommandError(ValueError):
    """Raised when command arguments fail validation"""
    pass

@dataclass(frozen=True)
class UsageCommand:
    pass

@dataclass(frozen=True)
class StatusCommand:
    as_json: bool = False

@dataclass(frozen=True)
class GetCommand:
    fan_id: int

@dataclass(frozen=True)
class SetCommand:
    """Set one fan, or every fan when fan_id is None"""
    fan_id: Optional[int]
    speed: int

    @property
    def is_broadcast(self) -> bool:
        return self.fan_id is None

    @property
    def wire_id(self) -> str:
        """Fan id as sent to the BMC"""
        if self.fan_id is None:
            return BROADCAST_ID
        return f"{self.fan_id:02d}"

@dataclass(frozen=True)
class TestRunCommand:
    pass

@dataclass(frozen=True)
class UnknownCommand:
    name: str

@dataclass(frozen=True)
class InvalidCommand:
    message: str

Command = Union[
    UsageCommand, StatusCommand, GetCommand, SetCommand,
    TestRunCommand, UnknownCommand, InvalidCommand,
]

def _is_broadcast(fan_id: str) -> bool:
    return fan_id.lower() == "all" or fan_id in ("0", "00")

def _parse_fan_number(fan_id: str, message: str) -> int:
    try:
        number = int(fan_id)
    except ValueError:
        raise CommandError(message)
    if not 1 <= number <= len(FANS):
        raise CommandError(message)
    return number

def parse_get(fan_id: str) -> GetCommand:
    """Validate arguments of the get command

    Raises:
        CommandError: If fan_id addresses all fans or is not 1-6
    """
    if _is_broadcast(fan_id):
        raise CommandError("Error: To view all fans, use the 'status' command.")
    return GetCommand(_parse_fan_number(fan_id, "Error: Fan ID must be between 01 and 06"))

def parse_set(fan_id: str, speed: str) -> SetCommand:
    """Validate arguments of the set command

    "all", "0" and "00" address every fan. A single fan is given as 1-6
    with an optional leading zero.

    Raises:
        CommandError: If speed is not 0-100 or fan_id is not valid
    """
    try:
        speed_percent = int(speed)
    except ValueError:
        speed_percent = -1
    if not 0 <= speed_percent <= 100:
        raise CommandError("Error: Speed must be an integer between 0 and 100")

    if _is_broadcast(fan_id):
        return SetCommand(None, speed_percent)
    number = _parse_fan_number(fan_id, "Error: Fan ID must be 'all' or between 01 and 06")
    return SetCommand(number, speed_percent)

def parse_command(argv: List[str]) -> Command:
    """Select the command for the positional arguments

    Args:
        argv: Arguments following the program name and global options

    Returns:
        A command object, InvalidCommand if validation failed
    """
    if not argv:
        return UsageCommand()

    name, args = argv[0], argv[1:]
    try:
        if name == "status":
            return StatusCommand(as_json=bool(args) and args[0] == "--json")
        if name == "get":
            if not args:
                raise CommandError(f"Error: Missing arguments. Example: {PROG} get 01")
            return parse_get(args[0])
        if name == "set":
            if len(args) < 2:
                raise CommandError(f"Error: Missing arguments. Example: {PROG} set all 50")
            return parse_set(args[0], args[1])
        if name == "testrun":
            return TestRunCommand()
    except CommandError as e:
        return InvalidCommand(str(e))

    return UnknownCommand(name)
