"""Exception hierarchy shared across forgeprep components."""

from __future__ import annotations


class ForgePrepError(Exception):
    """Base class for all forgeprep errors."""


class ConfigurationError(ForgePrepError):
    """A model binding or credential is missing or invalid.

    Always fatal for the call that hit it and never retried.
    """


class UnknownOperationError(ConfigurationError):
    """An operation kind or tier has no binding."""


class ProviderError(ForgePrepError):
    """A backend call failed or timed out."""
