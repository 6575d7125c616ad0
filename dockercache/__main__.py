"""CLI entry point for dockercache."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import load_config
from .errors import DockerCacheError, StoreConnectionError
from .monitor import run_monitor
from .runtime import DockerRuntime
from .store import Cache


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


async def cmd_run(args: argparse.Namespace) -> int:
    """Run the monitor."""
    config = load_config(args.config)
    if args.api:
        config.api.enabled = True

    print(f"Starting dockercache host: {config.node.id}")
    print(f"Store: {config.store.url}")
    print(f"Docker: {config.docker.url}")
    print(f"Update interval: {config.sync.update_interval_seconds}s (ttl {config.ttl_seconds:g}s)")

    try:
        await run_monitor(config)
    except StoreConnectionError as e:
        print(f"Cannot connect to the store: {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")

    return 0


async def cmd_api(args: argparse.Namespace) -> int:
    """Serve the read-only query API."""
    config = load_config(args.config)

    try:
        import uvicorn

        from .api import create_app
    except ImportError as e:
        print(f"API dependencies not installed: {e}", file=sys.stderr)
        return 1

    try:
        cache = await Cache.connect(
            config.store.url,
            config.node.id,
            ttl=config.ttl_seconds,
            update_interval=config.sync.update_interval_seconds,
            connect_timeout=config.store.connect_timeout_seconds,
            announce=False,
        )
    except StoreConnectionError as e:
        print(f"Cannot connect to the store: {e}", file=sys.stderr)
        return 1

    host = args.host or config.api.host
    port = args.port or config.api.port
    print(f"URL: http://{host}:{port}")

    app = create_app(config, cache)
    try:
        verbose = getattr(args, "verbose", False)
        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                log_level="info" if verbose else "warning",
            )
        )
        await server.serve()
    finally:
        await cache.close()

    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check store and Docker connectivity."""
    config = load_config(args.config)

    status_data: dict = {
        "timestamp": datetime.now().isoformat(),
        "node": {"id": config.node.id},
    }

    store_status: dict = {"url": config.store.url, "connected": False, "hosts": {}}
    try:
        cache = await Cache.connect(
            config.store.url,
            config.node.id,
            ttl=config.ttl_seconds,
            connect_timeout=config.store.connect_timeout_seconds,
            announce=False,
        )
    except StoreConnectionError as e:
        store_status["error"] = str(e)
    else:
        store_status["connected"] = True
        try:
            store_status["hosts"] = await cache.list_hosts()
        except DockerCacheError as e:
            store_status["error"] = str(e)
        finally:
            await cache.close()
    status_data["store"] = store_status

    docker_status: dict = {"url": config.docker.url, "connected": False}
    runtime = DockerRuntime(config.docker.url, timeout=config.docker.timeout_seconds)
    try:
        docker_status["version"] = str(await runtime.version())
        docker_status["connected"] = True
    except DockerCacheError as e:
        docker_status["error"] = str(e)
    finally:
        await runtime.close()
    status_data["docker"] = docker_status

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        print("dockercache Status Check")
        print("========================")
        print(f"Host id: {config.node.id}")
        print()

        print(f"Store ({store_status['url']}):")
        if store_status["connected"]:
            print("  Status: Connected")
            print(f"  Known hosts: {len(store_status['hosts'])}")
            for host_id, record in store_status["hosts"].items():
                running = record.get("containers_running", "?")
                print(f"    - {host_id} ({running} containers, last update {record.get('last_update', '?')})")
        else:
            print(f"  Status: Not connected ({store_status.get('error')})")

        print()

        print(f"Docker ({docker_status['url']}):")
        if docker_status["connected"]:
            print("  Status: Connected")
            print(f"  Version: {docker_status['version']}")
        else:
            print(f"  Status: Not connected ({docker_status.get('error')})")

    return 0 if store_status["connected"] and docker_status["connected"] else 1


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="dockercache",
        description="Mirror running Docker containers into a shared Redis store",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Mirror this host's containers into the store")
    run_parser.add_argument(
        "--api",
        action="store_true",
        help="Also serve the query API",
    )
    run_parser.set_defaults(func=cmd_run)

    api_parser = subparsers.add_parser("api", help="Serve the read-only query API")
    api_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to serve on (default: api.port, 8080)",
    )
    api_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: api.host, 0.0.0.0)",
    )
    api_parser.set_defaults(func=cmd_api)

    status_parser = subparsers.add_parser("status", help="Check store and Docker connectivity")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
