"""Exception hierarchy shared by the analysis engine and its transports."""

from __future__ import annotations


class ChainAuditError(Exception):
    """Base class for all chainaudit errors."""


class InvalidRequestError(ChainAuditError):
    """The caller violated the analysis contract (e.g. tools is not a list)."""


class InvalidFindingError(ChainAuditError):
    """A finding was constructed without a type."""


class ToolExecutionError(ChainAuditError):
    """An external analyzer failed to launch, crashed, or produced bad output.

    Never escapes an adapter: it is converted into a failed AnalysisResult.
    """
