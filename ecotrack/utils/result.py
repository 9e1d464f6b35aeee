"""Ok/Err results for configuration loading, and CLI exit codes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class ResultError(Exception):
    """Raised when a Result is unwrapped on the wrong side."""

    pass


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ResultError(f"Expected an error, got {self.value!r}")


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ResultError(f"Expected a value, got error: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class ConfigError:
    """A rejected configuration value."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"Config error in '{self.field}': {self.message}"


class ExitCode:
    """Process exit codes of the CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1

    # Configuration (10-19)
    CONFIG_INVALID = 10

    # Run failures (30-39)
    STORE_FAILED = 30
    UPSTREAM_CONTRACT = 31
    REMOTE_FAILED = 32
    COMPILER_FAILED = 33
