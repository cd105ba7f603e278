"""Exceptions shared across Storybox components."""


class BackendUnavailableError(RuntimeError):
    """Raised when an optional speech or model backend cannot be loaded."""
