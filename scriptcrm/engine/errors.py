"""
Script errors.
Every failure the script service reports is one of these, so callers
(CLI, HTTP glue) can map them to messages and status codes.
"""

from typing import List


class ScriptError(Exception):
    """Base class for script operation failures."""


class ValidationError(ScriptError):
    """One or more script rules were violated. Carries the full list."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class NotFoundError(ScriptError):
    """The requested script (or template) does not exist."""


class AccessDeniedError(ScriptError):
    """The caller does not own the script."""


class StorageError(ScriptError):
    """The document store failed."""
