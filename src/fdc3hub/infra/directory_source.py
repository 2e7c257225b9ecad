"""Directory sources: where the catalog and per-app manifests come from.

``HttpDirectorySource`` fetches ``directory.json`` and manifests over HTTP.
``StaticDirectorySource`` serves records held in memory or read from a local
YAML/JSON file, for offline use and tests.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import yaml

from ..core.broker.errors import UpstreamFetchFailed

logger = logging.getLogger(__name__)


class HttpDirectorySource:
    """Fetches the directory and manifests with a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        directory_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.directory_url = directory_url
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=min(self._timeout, 5.0)),
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str) -> Any:
        try:
            resp = await self._get_client().get(url)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise UpstreamFetchFailed(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise UpstreamFetchFailed(f"GET {url} returned invalid JSON: {e}") from e

    async def fetch_directory(self) -> List[Dict[str, Any]]:
        data = await self._get_json(self.directory_url)
        # Accept a bare list or an AppD style {"applications": [...]} envelope.
        if isinstance(data, dict) and isinstance(data.get("applications"), list):
            data = data["applications"]
        if not isinstance(data, list):
            raise UpstreamFetchFailed(f"Directory at {self.directory_url} is not a list")
        return data

    async def fetch_manifest(self, url: str) -> Dict[str, Any]:
        data = await self._get_json(url)
        if not isinstance(data, dict):
            raise UpstreamFetchFailed(f"Manifest at {url} is not an object")
        logger.debug("Fetched manifest %s", url)
        return data


class StaticDirectorySource:
    """Directory records and manifests keyed by URL, held in memory."""

    def __init__(
        self,
        entries: Optional[List[Dict[str, Any]]] = None,
        manifests: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> None:
        self.entries = list(entries or [])
        self.manifests = dict(manifests or {})

    @classmethod
    def from_file(cls, path: Path) -> "StaticDirectorySource":
        """Load ``{"applications": [...], "manifests": {url: {...}}}`` from YAML or JSON.

        A bare list is read as the applications list.
        """
        path = Path(path).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise UpstreamFetchFailed(f"Cannot read directory file {path}: {e}") from e
        if isinstance(data, list):
            return cls(entries=data)
        if not isinstance(data, dict):
            raise UpstreamFetchFailed(f"Directory file {path} has no applications")
        return cls(entries=data.get("applications") or [], manifests=data.get("manifests") or {})

    async def fetch_directory(self) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in self.entries]

    async def fetch_manifest(self, url: str) -> Dict[str, Any]:
        manifest = self.manifests.get(url)
        if manifest is None:
            raise UpstreamFetchFailed(f"No manifest registered for {url}")
        return dict(manifest)


def build_directory_source(directory_cfg: Dict[str, Any]):
    """Pick the source named by the ``fdc3hub.directory`` config section.

    ``file`` wins over ``url``; neither configured yields None.
    """
    file_path = str(directory_cfg.get("file") or "").strip()
    if file_path:
        return StaticDirectorySource.from_file(Path(file_path))
    url = str(directory_cfg.get("url") or "").strip()
    if url:
        return HttpDirectorySource(url, timeout=float(directory_cfg.get("timeout") or 10))
    return None
