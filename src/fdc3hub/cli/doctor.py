"""
Doctor checks for the fdc3hub broker.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import yaml

from ..infra.config import get_default_config, hub_section
from ..infra.directory_source import StaticDirectorySource
from ..infra.system_channels import load_channel_definitions
from ..infra.user_data import UserDataManager
from ..core.broker.errors import UpstreamFetchFailed


@dataclass(frozen=True)
class DoctorItem:
    """A single doctor finding."""

    level: str  # "OK" | "WARN" | "ERROR"
    title: str
    details: str
    hint: Optional[str] = None


def parse_yaml_file(path: Path) -> Dict[str, Any]:
    """Parse YAML file to dict; returns empty dict if not parsable."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def check_directory(directory_cfg: Dict[str, Any], transport: Optional[httpx.BaseTransport] = None) -> DoctorItem:
    """Check that the configured directory can be loaded."""
    file_path = str(directory_cfg.get("file") or "").strip()
    if file_path:
        try:
            source = StaticDirectorySource.from_file(Path(file_path))
        except UpstreamFetchFailed as e:
            return DoctorItem(level="ERROR", title="Directory", details=str(e))
        return DoctorItem(
            level="OK",
            title="Directory",
            details=f"{len(source.entries)} entries in {file_path}",
        )

    url = str(directory_cfg.get("url") or "").strip()
    if not url:
        return DoctorItem(
            level="WARN",
            title="Directory",
            details="No directory configured; only live endpoints can handle intents.",
            hint="Set fdc3hub.directory.url or fdc3hub.directory.file",
        )
    try:
        with httpx.Client(timeout=float(directory_cfg.get("timeout") or 10), transport=transport) as client:
            resp = client.get(url)
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        return DoctorItem(
            level="ERROR",
            title="Directory",
            details=f"Cannot load {url}: {e}",
            hint="Start the directory server or point fdc3hub.directory.url elsewhere.",
        )
    if isinstance(data, dict):
        data = data.get("applications")
    if not isinstance(data, list):
        return DoctorItem(level="ERROR", title="Directory", details=f"{url} is not a list of applications")
    return DoctorItem(level="OK", title="Directory", details=f"{len(data)} entries at {url}")


def collect_doctor_report(
    *,
    hub_home: Optional[Path] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> List[DoctorItem]:
    """Collect doctor report items."""
    user_data = UserDataManager(hub_home=hub_home)
    items: List[DoctorItem] = []

    # Config
    if user_data.config_path.exists():
        items.append(
            DoctorItem(
                level="OK",
                title="Config",
                details=f"Found config: {user_data.config_path}",
            )
        )
        config = parse_yaml_file(user_data.config_path)
    else:
        items.append(
            DoctorItem(
                level="WARN",
                title="Config",
                details=f"Config not found: {user_data.config_path}",
                hint="Run: fdc3hub config --init",
            )
        )
        config = get_default_config()

    # API key
    if hub_section(config, "web").get("api_key"):
        items.append(DoctorItem(level="OK", title="API key", details="fdc3hub.web.api_key is set."))
    else:
        items.append(
            DoctorItem(
                level="WARN",
                title="API key",
                details="No API key; any local process may connect.",
                hint="Set fdc3hub.web.api_key in config.yaml",
            )
        )

    # Channels
    raw_channels = (config.get("fdc3hub", {}) or {}).get("channels")
    definitions = load_channel_definitions(raw_channels)
    if definitions:
        items.append(
            DoctorItem(
                level="OK",
                title="Channels",
                details=", ".join(d.id for d in definitions),
            )
        )
    else:
        items.append(
            DoctorItem(
                level="WARN",
                title="Channels",
                details="No system channels defined; endpoints can only use the default channel.",
            )
        )

    # Web dependencies
    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
        items.append(
            DoctorItem(
                level="OK",
                title="Web deps",
                details="fastapi/uvicorn installed.",
            )
        )
    except ImportError:
        items.append(
            DoctorItem(
                level="ERROR",
                title="Web deps",
                details="fastapi/uvicorn not installed; the broker cannot start.",
                hint="Run: pip install fastapi 'uvicorn[standard]'",
            )
        )

    items.append(check_directory(hub_section(config, "directory"), transport=transport))
    return items
