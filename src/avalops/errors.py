# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/errors.py

from __future__ import annotations

from typing import Any, Optional


class AvalopsError(RuntimeError):
    """Base class for avalops failures."""


class InvalidInputError(AvalopsError):
    """User-correctable input: validation violations, malformed documents."""

    def __init__(self, message: str, *, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class NotFoundError(AvalopsError):
    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ProviderError(AvalopsError):
    """The cloud collaborator rejected a request. Not retried here."""

    def __init__(self, message: str, *, operation: str = "", code: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.code = code


class TimedOutError(AvalopsError):
    def __init__(self, message: str, *, name: str = "", last_status: Any = None):
        super().__init__(message)
        self.name = name
        self.last_status = last_status


class DecodeError(AvalopsError):
    """Malformed node token or health report. ``stage`` names where it broke."""

    def __init__(self, message: str, *, stage: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage


class ParseError(AvalopsError):
    def __init__(self, message: str, *, path: str):
        super().__init__(message)
        self.path = path


class PersistError(AvalopsError):
    """
    Writing the spec failed after infrastructure changed.
    The stacks exist but the document no longer records them.
    """

    def __init__(self, message: str, *, path: str):
        super().__init__(message)
        self.path = path
