"""Collaborator protocols at the broker boundary.

The broker core never touches sockets, windows or HTTP directly; it talks to
these structural interfaces. ``fdc3hub.web`` and ``fdc3hub.infra`` provide the
concrete implementations.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .models import OutboundMessage


@runtime_checkable
class EndpointConnection(Protocol):
    """Handle used to push messages to one endpoint.

    ``send`` must not block: implementations queue the message and flush it
    from their own writer task.
    """

    def send(self, message: OutboundMessage) -> None: ...


@runtime_checkable
class Launcher(Protocol):
    """Opens (or focuses) a window for *url* under the logical app *name*."""

    def launch(self, url: str, name: str) -> None: ...


@runtime_checkable
class ResolverUI(Protocol):
    """Lets the user choose one candidate.

    Returns the selected candidate payload (as sent back by the UI), or None
    when the user cancelled.
    """

    async def resolve(
        self,
        candidates: List[Dict[str, Any]],
        intent: Optional[str],
        display_names: Dict[str, str],
        context: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]: ...


@runtime_checkable
class TabHost(Protocol):
    """Answers questions about hosting windows."""

    async def get_tab_title(self, tab_id: str) -> str: ...


@runtime_checkable
class DirectorySource(Protocol):
    """Supplies directory records and per-entry manifests as parsed JSON."""

    async def fetch_directory(self) -> List[Dict[str, Any]]: ...

    async def fetch_manifest(self, url: str) -> Dict[str, Any]: ...
