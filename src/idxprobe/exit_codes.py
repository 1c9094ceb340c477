"""Standardized CLI exit codes for idxprobe.

Exit code scheme (POSIX + SAST tool conventions):

    0  SUCCESS        -- analysis completed (findings are reported, not fatal)
    1  GENERAL_ERROR  -- unexpected failure, crash, unhandled exception
    2  USAGE_ERROR    -- invalid arguments or configuration (Click default)
    3  INPUT_MISSING  -- a source or migrations directory does not exist
    5  GATE_FAILURE   -- more findings than --fail-threshold allows

Unparseable files and unknown fields are never fatal: they are counted in
the summary and logged.  Only structurally missing input stops a run.
"""

from __future__ import annotations

import click

# ---------------------------------------------------------------------------
# Exit code constants
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_ERROR: int = 1
EXIT_USAGE: int = 2
EXIT_INPUT_MISSING: int = 3
EXIT_GATE_FAILURE: int = 5

DESCRIPTIONS: dict[int, str] = {
    EXIT_SUCCESS: "success",
    EXIT_ERROR: "unexpected error",
    EXIT_USAGE: "invalid usage (bad arguments, flags or config)",
    EXIT_INPUT_MISSING: "input directory or database not found",
    EXIT_GATE_FAILURE: "missing-index gate failed",
}

# ---------------------------------------------------------------------------
# Custom exceptions (caught by Click's standalone handler)
# ---------------------------------------------------------------------------


class IdxprobeError(click.ClickException):
    """Base class for idxprobe errors with exit codes."""

    def __init__(self, message: str, exit_code: int = EXIT_ERROR):
        super().__init__(message)
        self.exit_code = exit_code

    def format_message(self) -> str:
        return self.message


class InputMissingError(IdxprobeError):
    """Raised when a source/migrations directory or database is absent."""

    def __init__(self, message: str = "Input directory not found."):
        super().__init__(message, EXIT_INPUT_MISSING)


class ConfigError(IdxprobeError):
    """Raised for invalid configuration values."""

    def __init__(self, message: str = "Invalid configuration."):
        super().__init__(message, EXIT_USAGE)


class GateFailureError(IdxprobeError):
    """Raised when the finding count exceeds the configured threshold."""

    def __init__(self, message: str = "Missing-index gate failed."):
        super().__init__(message, EXIT_GATE_FAILURE)

