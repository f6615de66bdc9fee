"""Exception types raised across the APR pipeline."""

from __future__ import annotations


class AprServiceError(Exception):
    """Base class for every error raised by aprcalc."""


class MissingAddressError(AprServiceError, ValueError):
    """An extractor was asked to match an empty vault/pool address."""


class ConfigurationError(AprServiceError):
    """A required setting (RPC URL, secret) is missing or malformed."""


class UpstreamError(AprServiceError):
    """An external data provider (yDaemon, Merkl, RPC) failed."""


class RpcError(UpstreamError):
    """The JSON-RPC endpoint answered with an error payload."""


class VaultListUnavailableError(UpstreamError):
    """The vault list is empty or unreachable; nothing can be aggregated."""
