"""Base classes for command pattern implementation."""

from __future__ import annotations

import asyncio
import signal
from abc import ABC, abstractmethod
from typing import ClassVar

from pydantic import BaseModel, Field
from rich.console import Console

from penguin import PenguinClient
from penguinctl.config import ApiConfig, StateConfig, WaitConfig


class CommandError(Exception):
    """Command execution error."""

    pass


class BaseCommand(ABC):
    """Base class for commands."""

    def __init__(
        self, config: BaseCommandConfig, console: Console | None = None
    ) -> None:
        """Initialize command.

        Args:
            config: Full configuration (includes command-specific fields)
            console: Rich console for output (creates default if None)
        """
        self.config = config
        self.console = console or Console()

    def create_client(self) -> PenguinClient:
        """Create an API client from the configured API settings."""
        return self.config.api.create_client()

    @abstractmethod
    async def run(self) -> None:
        """Execute the command.

        Raises:
            CommandError: If command execution fails
        """
        ...

    def cancel_on_sigterm(self) -> asyncio.Event:
        """Return an event that is set when the process receives SIGTERM.

        Long waits take this event as their cancellation signal so a
        terminated run stops polling promptly.
        """
        cancel = asyncio.Event()
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, cancel.set)
        except (NotImplementedError, RuntimeError):
            # No signal handlers on this platform or outside the main thread
            pass
        return cancel


class BaseCommandConfig(BaseModel, ABC):
    """Base configuration for all commands.

    This serves as the root config. All global configs are here,
    and command-specific fields are added in subclasses.
    """

    # Global configurations (available to all commands)
    api: ApiConfig = Field(description="API configuration")
    wait: WaitConfig = Field(description="Wait operation configuration")
    state: StateConfig = Field(description="Local state store configuration")

    # Command class binding
    _command_class: ClassVar[type[BaseCommand]]

    def create_command(self, console: Console | None = None) -> BaseCommand:
        """Create command instance from this config.

        Returns:
            Command instance with full config
        """
        return self._command_class(config=self, console=console)
