"""Exceptions raised by claudefeed."""


class ClaudeFeedError(Exception):
    """Base class for claudefeed errors."""


class ExecutableNotFoundError(ClaudeFeedError):
    """The assistant executable could not be resolved on PATH."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Executable '{name}' not found on PATH")
        self.name = name


class ConfigError(ClaudeFeedError):
    """Configuration file is present but invalid."""
