"""
Command execution for LightPath projects: the build orchestrator and the
custom function runner.
"""

import logging
import subprocess
from typing import Iterable, List, Optional

from lightpath.config import LightPathConfig
from lightpath.errors import (
    FunctionNotFoundError,
    MissingSourceDirectoryError,
    ReservedFunctionNameError,
)
from lightpath.model import RESERVED_FUNCTION_NAMES, Command, Project
from lightpath.packager import package_project

logger = logging.getLogger(__name__)


def execute_command(text: str, cwd=None) -> int:
    """Run one shell command to completion and return its exit status.

    The child inherits this process's standard streams.
    """
    logger.debug("Running: %s", text)
    result = subprocess.run(text, shell=True, cwd=cwd)
    if result.returncode != 0:
        logger.info("Command exited with status %d: %s", result.returncode, text)
    return result.returncode


def execute_commands(commands: Iterable[Command], cwd=None) -> List[int]:
    """Run every command in order. A failing command never stops the rest."""
    return [execute_command(command.text, cwd=cwd) for command in commands]


def build_project(project: Project, config: Optional[LightPathConfig] = None) -> Optional[str]:
    """
    Run the build block and, if it carries the build marker, package the project.

    Args:
        project: Parsed project
        config: Paths and tools for packaging (defaults to the environment)

    Returns:
        Path of the packaged executable, or None when no packaging was requested
    """
    config = config or LightPathConfig.from_env()

    execute_commands(project.build, cwd=config.workdir)

    if not project.build.has_build_marker:
        logger.debug("No build marker in the build block, skipping packaging")
        return None

    if not config.source_path.is_dir():
        raise MissingSourceDirectoryError(config.source_dir)

    return str(package_project(project, config))


def run_custom_function(project: Project, name: str, descriptor="build.path") -> List[int]:
    """
    Run the first custom function declared as ``name``.

    Commands run in the caller's current directory whatever their path mode.

    Returns:
        Exit statuses of the commands, in declaration order
    """
    if name in RESERVED_FUNCTION_NAMES:
        raise ReservedFunctionNameError(name)

    block = project.find_custom(name)
    if block is None:
        raise FunctionNotFoundError(name, descriptor)

    statuses = []
    for command in block:
        logger.debug(
            "Function %s: path mode '%s' for %s",
            name,
            command.path_mode_at_declaration,
            command.text,
        )
        statuses.append(execute_command(command.text))
    return statuses
