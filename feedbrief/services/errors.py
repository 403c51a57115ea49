from __future__ import annotations


class FeedbriefError(Exception):
    """Base class for pipeline errors."""


class FetchError(FeedbriefError):
    """A source could not be fetched or parsed (network, timeout, bad payload)."""


class ConfigError(FeedbriefError):
    """A source descriptor carries a config its adapter cannot use."""


class SynthesisError(FeedbriefError):
    """The language model call failed or returned nothing usable."""


class DistributionError(FeedbriefError):
    """A webhook message was rejected or could not be sent."""


class PersistenceError(FeedbriefError):
    """The history store or digest sink could not be read or written."""
