"""
Project model built from a LightPath descriptor.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from lightpath.errors import CapacityError

TOOL_VERSION = 1

MAX_COMMANDS = 100
MAX_CUSTOM_FUNCTIONS = 10

DEFAULT_BUILD_VERSION = 1
APPLICATION_PATH_MODE = "application"
CURRENT_PATH_MODE = "current"

RESERVED_FUNCTION_NAMES = ("build", "main")


@dataclass(frozen=True)
class Command:
    """A shell command plus the block context in effect when it was declared."""

    text: str
    build_version_at_declaration: int = DEFAULT_BUILD_VERSION
    path_mode_at_declaration: str = APPLICATION_PATH_MODE

    @property
    def runs_in_application(self) -> bool:
        return self.path_mode_at_declaration == APPLICATION_PATH_MODE


@dataclass
class FunctionBlock:
    commands: List[Command] = field(default_factory=list)
    final_build_version: int = DEFAULT_BUILD_VERSION
    final_path_mode: str = APPLICATION_PATH_MODE
    has_build_marker: bool = False
    required_tool_version: int = DEFAULT_BUILD_VERSION

    def add_command(self, command: Command) -> Command:
        if len(self.commands) >= MAX_COMMANDS:
            raise CapacityError(
                f"A function block holds at most {MAX_COMMANDS} commands, "
                f"'{command.text}' was not recorded"
            )
        self.commands.append(command)
        return command

    def __len__(self):
        return len(self.commands)

    def __iter__(self) -> Iterator[Command]:
        return iter(self.commands)


@dataclass
class Project:
    build: FunctionBlock = field(default_factory=FunctionBlock)
    main: FunctionBlock = field(default_factory=FunctionBlock)
    custom: List[Tuple[str, FunctionBlock]] = field(default_factory=list)

    def add_custom(self, name: str) -> FunctionBlock:
        """Register a new custom block under ``name`` and return it."""
        if len(self.custom) >= MAX_CUSTOM_FUNCTIONS:
            raise CapacityError(
                f"A build file holds at most {MAX_CUSTOM_FUNCTIONS} custom "
                f"functions, '{name}' was discarded"
            )
        block = FunctionBlock()
        self.custom.append((name, block))
        return block

    def find_custom(self, name: str) -> Optional[FunctionBlock]:
        """Return the first custom block declared as ``name``, if any."""
        for custom_name, block in self.custom:
            if custom_name == name:
                return block
        return None

    @property
    def custom_names(self) -> List[str]:
        return [name for name, _ in self.custom]
