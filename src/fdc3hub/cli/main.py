"""
CLI entry point
"""

import argparse
import logging
import sys
from pathlib import Path

import httpx
import yaml

from ..infra.user_data import get_user_data_manager
from ..infra.config import get_config, get_default_config, hub_section, reload_config, save_config
from .doctor import collect_doctor_report

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(config, log_level=None):
    """Console logging plus the file named by ``logging.file``."""
    logging_cfg = config.get("logging", {}) or {}
    level = (log_level or logging_cfg.get("level") or "INFO").upper()
    handlers = [logging.StreamHandler()]
    log_file = str(logging_cfg.get("file") or "").strip()
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def cmd_start(args):
    """Run the broker in the foreground."""
    import uvicorn

    config = reload_config(args.config)
    get_user_data_manager().ensure_directories()
    setup_logging(config, args.log_level)

    web_cfg = hub_section(config, "web")
    host = args.host or web_cfg.get("host") or "127.0.0.1"
    port = int(args.port or web_cfg.get("port") or 8765)

    # Imported after the config is cached so the app sees it.
    from ..web.app import app

    logger.info("Starting fdc3hub on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)


def cmd_status(args):
    """Query a running broker's /api/status."""
    config = get_config(args.config)
    web_cfg = hub_section(config, "web")
    url = f"http://{web_cfg.get('host', '127.0.0.1')}:{web_cfg.get('port', 8765)}/api/status"
    headers = {"X-API-Key": str(web_cfg["api_key"])} if web_cfg.get("api_key") else {}
    try:
        resp = httpx.get(url, headers=headers, timeout=5.0)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        print(f"fdc3hub: not reachable at {url} ({e})")
        return 1
    status = resp.json()
    directory = status.get("directory", {})
    host = status.get("host", {})
    print("fdc3hub: running")
    print(f"Host: {'connected' if host.get('connected') else 'not connected'}")
    print(f"Directory: {'available' if directory.get('available') else 'unavailable'} ({directory.get('entries', 0)} entries)")
    endpoints = status.get("endpoints", [])
    print(f"Endpoints: {len(endpoints)}")
    for endpoint in endpoints:
        print(f"  - {endpoint.get('endpointId')} [{endpoint.get('channel')}] {endpoint.get('url', '')}")
    return 0


def cmd_config(args):
    """Show or initialise the config file."""
    if args.show:
        config = get_config(args.config)
        print(yaml.dump(config, default_flow_style=False, allow_unicode=True))
    elif args.init:
        config = get_default_config()
        save_config(config, args.config)
        print(f"Config initialised: {args.config or '~/.fdc3hub/config.yaml'}")
    else:
        print("Use --show to print the config, --init to write the defaults")


def cmd_doctor(args):
    """Run environment checks."""
    items = collect_doctor_report()

    level_order = {"ERROR": 0, "WARN": 1, "OK": 2}
    items = sorted(items, key=lambda x: (level_order.get(x.level, 9), x.title))

    ok = sum(1 for x in items if x.level == "OK")
    warn = sum(1 for x in items if x.level == "WARN")
    err = sum(1 for x in items if x.level == "ERROR")

    print(f"Doctor: OK={ok} WARN={warn} ERROR={err}")
    for item in items:
        prefix = {"OK": "✓", "WARN": "!", "ERROR": "✗"}.get(item.level, "-")
        print(f"{prefix} [{item.level}] {item.title}: {item.details}")
        if item.hint:
            print(f"    Hint: {item.hint}")
    return 1 if err else 0


def main(argv=None):
    """CLI main entry"""
    parser = argparse.ArgumentParser(
        description="fdc3hub - desktop interop broker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument("--config", type=str, help="Config file path")
    parser.add_argument("--log-level", type=str,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    parser_start = subparsers.add_parser("start", help="Run the broker in the foreground")
    parser_start.add_argument("--host", type=str, default=None, help="Bind address (default from config)")
    parser_start.add_argument("--port", type=int, default=None, help="Bind port (default from config)")
    parser_start.set_defaults(func=cmd_start)

    parser_status = subparsers.add_parser("status", help="Show a running broker's state")
    parser_status.set_defaults(func=cmd_status)

    parser_config = subparsers.add_parser("config", help="Config management")
    parser_config.add_argument("--show", action="store_true", help="Print the effective config")
    parser_config.add_argument("--init", action="store_true", help="Write the default config")
    parser_config.set_defaults(func=cmd_config)

    parser_doctor = subparsers.add_parser("doctor", help="Check config, directory and dependencies")
    parser_doctor.set_defaults(func=cmd_doctor)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
