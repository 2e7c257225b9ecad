"""Broker error taxonomy.

Every error carries a stable ``error_type`` string which is what endpoints
see in a ``result`` reply.
"""

from __future__ import annotations

from typing import Any, Dict


class BrokerError(Exception):
    """Base class for failures reported back to the requesting endpoint."""

    error_type = "BrokerError"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.error_type, "message": str(self)}


class NotFound(BrokerError):
    """Catalog entry, manifest intent/template or endpoint does not exist."""

    error_type = "NotFound"


class UpstreamFetchFailed(BrokerError):
    """Directory or manifest could not be fetched or parsed."""

    error_type = "UpstreamFetchFailed"


class NoHandler(BrokerError):
    """No live endpoint or catalog entry can handle the intent."""

    error_type = "NoHandler"


class ResolutionCancelled(BrokerError):
    """The resolver collaborator reported a cancellation."""

    error_type = "ResolutionCancelled"


class CollaboratorUnavailable(BrokerError):
    """Launch, resolver or tab host collaborator is not connected."""

    error_type = "CollaboratorUnavailable"


class BadRequest(BrokerError):
    """Malformed or unknown request from an endpoint."""

    error_type = "BadRequest"
