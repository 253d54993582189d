"""Example observer callbacks that can be referenced from configuration."""
from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Any, Dict

from .observers import ObserverContext

logger = logging.getLogger(__name__)


def log_event(context: ObserverContext, options: Dict[str, Any]) -> None:
    """Log every change the watcher reports."""

    level_name = str(options.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    message = options.get("message", "File change detected")
    logger.log(level, "%s: %s", message, _describe(context))


def run_shell_command(context: ObserverContext, options: Dict[str, Any]) -> None:
    """Execute a templated shell command for the changed file.

    Placeholder values are shell-quoted, so file names never become syntax.
    """

    template = options.get("command")
    if not template:
        logger.error("run_shell_command requires a 'command' option")
        return

    values = {
        "event": shlex.quote(context.event_type.value),
        "path": shlex.quote(str(context.path)),
        "directory": shlex.quote(str(context.directory)),
        "filename": shlex.quote(context.path.name),
    }

    try:
        command = str(template).format(**values)
    except KeyError as exc:
        logger.error("run_shell_command missing placeholder value for '%s'", exc)
        return

    logger.info("Executing shell command for %s: %s", context.path, command)
    try:
        subprocess.run(command, shell=True, check=True)
    except subprocess.CalledProcessError as exc:
        logger.error("Shell command failed (exit %s): %s", exc.returncode, command)


def _describe(context: ObserverContext) -> str:
    return f"type={context.event_type.value}, path={context.path}, directory={context.directory}"
