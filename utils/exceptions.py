"""Shared exception types for the archetype pipeline."""


class AppError(Exception):
    """Base exception for application-level errors."""


class TaxonomyError(AppError):
    """Raised when the archetype taxonomy cannot be loaded or populated."""


class ClassificationError(AppError):
    """Raised when a classification run cannot proceed at all."""


class JobCancelled(AppError):
    """Raised between batches when a run was asked to stop."""


class RunLockError(AppError):
    """Raised when another run of the same stage already holds the lock."""
