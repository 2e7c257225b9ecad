"""In-memory snapshot of the application directory."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .errors import UpstreamFetchFailed
from .models import DirectoryEntry, Manifest, url_origin
from .protocol import DirectorySource

logger = logging.getLogger(__name__)


class DirectoryCatalog:
    """Known applications, refreshable from a :class:`DirectorySource`.

    When the directory cannot be loaded the catalog stays empty and
    ``available`` is False: live-endpoint routing keeps working, only
    directory-backed resolution is lost.
    """

    def __init__(self, source: Optional[DirectorySource] = None, entries: Optional[List[DirectoryEntry]] = None) -> None:
        self._source = source
        self._entries: List[DirectoryEntry] = list(entries or [])
        self.available = entries is not None

    @property
    def entries(self) -> List[DirectoryEntry]:
        return list(self._entries)

    async def refresh(self) -> bool:
        """Reload entries from the source. Returns True on success.

        Manifests already cached for an unchanged entry are carried over.
        """
        if self._source is None:
            logger.warning("No directory source configured; directory-backed resolution unavailable")
            self.available = False
            return False
        try:
            records = await self._source.fetch_directory()
        except UpstreamFetchFailed as e:
            logger.error("Directory load failed: %s", e)
            self.available = False
            return False

        cached = {(e.name, e.manifest_url): e.manifest_content for e in self._entries if e.manifest_content}
        entries: List[DirectoryEntry] = []
        for record in records:
            if not isinstance(record, dict) or not record.get("name"):
                logger.warning("Skipping malformed directory record: %r", record)
                continue
            try:
                entry = DirectoryEntry.from_dict(record)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed directory record %r: %s", record.get("name"), e)
                continue
            if entry.manifest_content is None:
                entry.manifest_content = cached.get((entry.name, entry.manifest_url))
            entries.append(entry)
        self._entries = entries
        self.available = True
        logger.info("Directory loaded: %d entries", len(entries))
        return True

    def find_by_name(self, name: str) -> Optional[DirectoryEntry]:
        for entry in self._entries:
            if entry.name == name:
                return entry
        return None

    def match_origin(self, url: str) -> Optional[DirectoryEntry]:
        """First entry whose start URL shares *url*'s origin.

        Several entries may share an origin; the first one in directory order
        wins.
        """
        origin = url_origin(url)
        if origin is None:
            return None
        for entry in self._entries:
            if entry.origin == origin:
                return entry
        return None

    def entries_for_intent(self, intent: str) -> List[DirectoryEntry]:
        return [entry for entry in self._entries if entry.declares(intent)]

    def intent_names(self) -> List[str]:
        names: List[str] = []
        for entry in self._entries:
            for item in entry.intents:
                if item.name and item.name not in names:
                    names.append(item.name)
        return names

    def display_names(self) -> Dict[str, str]:
        """Intent name -> display name, first declaration wins."""
        names: Dict[str, str] = {}
        for entry in self._entries:
            for item in entry.intents:
                names.setdefault(item.name, item.display_name or item.name)
        return names

    async def get_manifest(self, entry: DirectoryEntry) -> Optional[Manifest]:
        """Return *entry*'s manifest, fetching and caching it on first use.

        Returns None when the entry declares no manifest. Raises
        :class:`UpstreamFetchFailed` when the fetch or parse fails.
        """
        if entry.manifest_content is not None:
            return entry.manifest_content
        if not entry.manifest_url:
            return None
        if self._source is None:
            raise UpstreamFetchFailed(f"No directory source to fetch manifest for {entry.name!r}")
        raw = await self._source.fetch_manifest(entry.manifest_url)
        try:
            manifest = Manifest.from_dict(raw)
        except (ValueError, TypeError, AttributeError) as e:
            raise UpstreamFetchFailed(f"Invalid manifest for {entry.name!r}: {e}") from e
        entry.manifest_content = manifest
        logger.debug("Manifest cached for %s from %s", entry.name, entry.manifest_url)
        return manifest
