"""Exceptions raised by the annotation data model."""
from __future__ import annotations


class ValidationError(ValueError):
    """Raised when token input is malformed and the unit cannot be processed."""


class AnnotationError(ValueError):
    """Raised when an edit cannot be applied to the current annotations."""


class StaleUnitError(RuntimeError):
    """Raised when an edit or export targets a unit that has been replaced."""


__all__ = ["AnnotationError", "StaleUnitError", "ValidationError"]
