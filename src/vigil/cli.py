"""CLI entry point for vigil."""

import argparse
import json
import logging
import signal
import socket
import sys
import threading
from pathlib import Path

import yaml

from .config import VigilConfig, load_config, merge_cli_args
from .coordinator import Coordinator
from .errors import ConfigurationError
from .registry import ServiceRegistryClient
from .reporter import RegistryReporter, make_reporter


# ---------------------------------------------------------------------------
# vigil run
# ---------------------------------------------------------------------------

def _add_daemon_args(parser: argparse.ArgumentParser) -> None:
    """Add flags that override config file settings."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--instance-id", type=str, dest="instance_id", help="Identifier of this host")
    parser.add_argument(
        "--listen-host", type=str, dest="listen_host",
        help="Address of the registration socket (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--listen-port", type=int, dest="listen_port",
        help="Port of the registration socket (default: 1025)",
    )
    parser.add_argument(
        "--ephemeral-service-expiry", type=int, dest="ephemeral_service_expiry",
        help="Seconds an ephemeral registration lives without a heartbeat (default: 60)",
    )
    parser.add_argument(
        "--tick-interval", type=float, dest="tick_interval",
        help="Seconds between health check rounds (default: 1)",
    )
    parser.add_argument(
        "--reporter", choices=["log", "registry"],
        help="Where statuses are reported (default: log)",
    )
    parser.add_argument(
        "--registry-host", type=str, dest="registry_host",
        help="Address the registry reporter's HTTP API binds to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--registry-port", type=int, dest="registry_port",
        help="Port of the registry reporter's HTTP API (default: 8471)",
    )
    parser.add_argument(
        "--log-level", type=str, dest="log_level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_run(args) -> None:
    _setup_logging(args.log_level)

    try:
        config = load_config(args.config) if args.config else VigilConfig()
        merge_cli_args(config, args)
        config.validate()
        reporter = make_reporter(config)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except OSError as exc:
        print(f"Error: cannot start status registry: {exc}", file=sys.stderr)
        sys.exit(1)

    coordinator = Coordinator(reporter)

    def _handle_signal(signum, frame):
        print(f"Caught signal {signal.Signals(signum).name}", file=sys.stderr)
        coordinator.stop()

    try:
        try:
            coordinator.start(config)
        except ConfigurationError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)

        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, _handle_signal)

        try:
            coordinator.run()
        except OSError as exc:
            print(
                f"Error: cannot listen on {config.listen_host}:{config.listen_port}: {exc}",
                file=sys.stderr,
            )
            sys.exit(1)
    finally:
        if isinstance(reporter, RegistryReporter):
            reporter.shutdown()


# ---------------------------------------------------------------------------
# vigil register
# ---------------------------------------------------------------------------

def _parse_service_specs(specs: list[str], services_file: str | None) -> dict:
    """Collect NAME=JSON specs and an optional YAML/JSON file into one mapping."""
    services: dict = {}
    if services_file:
        with open(Path(services_file)) as f:
            data = yaml.safe_load(f) or {}
        services.update(data.get("services", data))
    for spec in specs:
        name, sep, raw = spec.partition("=")
        if not sep or not name:
            raise ValueError(f"expected NAME=JSON, got '{spec}'")
        params = json.loads(raw)
        if not isinstance(params, dict):
            raise ValueError(f"parameters for '{name}' must be a JSON object")
        services[name] = params
    return services


def cmd_register(args) -> None:
    try:
        services = _parse_service_specs(args.services, args.services_file)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    if not services:
        print("Error: at least one service is required.", file=sys.stderr)
        sys.exit(1)

    payload = json.dumps({"services": services}).encode()
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())

    try:
        sock = socket.create_connection((args.host, args.port), timeout=10)
    except OSError as exc:
        print(f"Error: cannot connect to {args.host}:{args.port}: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"Registering {', '.join(sorted(services))} with {args.host}:{args.port}", file=sys.stderr)
    with sock:
        try:
            sock.sendall(payload)
            while not stop.wait(args.interval):
                if not args.once:
                    sock.sendall(payload)
        except KeyboardInterrupt:
            pass
        except OSError as exc:
            print(f"Error: connection lost: {exc}", file=sys.stderr)
            sys.exit(1)
    print("Disconnected; registrations withdrawn.", file=sys.stderr)


# ---------------------------------------------------------------------------
# vigil registry subcommands
# ---------------------------------------------------------------------------

def _format_record(r) -> str:
    kind = "ephemeral" if r.ephemeral else "static"
    return f"{r.key}  {r.host}:{r.port}  {r.status}  {kind}  last_seen={r.last_seen:.1f}"


def _format_records(records, fmt: str) -> str:
    """Format a list of ServiceRecord objects for output."""
    if fmt == "json":
        return json.dumps([r.to_dict() for r in records], indent=2)
    lines = [_format_record(r) for r in records]
    return "\n".join(lines) if lines else "(no services)"


def _client(args) -> ServiceRegistryClient:
    return ServiceRegistryClient(host=args.registry_host, port=args.registry_port)


def cmd_registry_list(args) -> None:
    records = _client(args).list(name=args.name, status_filter=args.status)
    print(_format_records(records, args.format))


def cmd_registry_get(args) -> None:
    record = _client(args).get(args.key)
    if record is None:
        print(f"Service '{args.key}' not found.", file=sys.stderr)
        sys.exit(1)
    if args.format == "json":
        print(json.dumps(record.to_dict(), indent=2))
    else:
        print(_format_record(record))


def cmd_registry_list_healthy(args) -> None:
    records = _client(args).healthy(name=args.name, max_age_seconds=args.max_age)
    print(_format_records(records, args.format))


def cmd_registry_count(args) -> None:
    print(_client(args).count(name=args.name))


def _add_registry_args(parser: argparse.ArgumentParser) -> None:
    """Add --registry-host and --registry-port to a registry sub-parser."""
    parser.add_argument(
        "--registry-host", type=str, default="127.0.0.1",
        help="Host running the vigil registry reporter (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--registry-port", type=int, default=8471,
        help="Port of the registry HTTP API (default: 8471)",
    )
    parser.add_argument(
        "--format", choices=["text", "json"], default="text",
        help="Output format (default: text)",
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Vigil: local service health checking and registration daemon",
    )
    subparsers = parser.add_subparsers(dest="command")

    # run
    run_parser = subparsers.add_parser("run", help="Run the health checking daemon")
    _add_daemon_args(run_parser)
    run_parser.set_defaults(func=cmd_run)

    # register
    register_parser = subparsers.add_parser(
        "register", help="Register ephemeral services with a running daemon",
    )
    register_parser.add_argument(
        "services", nargs="*", metavar="NAME=JSON",
        help='Service definition, e.g. web=\'{"host": "127.0.0.1", "port": 8080}\'',
    )
    register_parser.add_argument(
        "--services-file", type=str, dest="services_file",
        help="YAML or JSON file with a services mapping",
    )
    register_parser.add_argument("--host", type=str, default="127.0.0.1", help="Daemon address")
    register_parser.add_argument("--port", type=int, default=1025, help="Daemon registration port")
    register_parser.add_argument(
        "--interval", type=float, default=30,
        help="Seconds between heartbeat re-registrations (default: 30)",
    )
    register_parser.add_argument(
        "--once", action="store_true",
        help="Register once and hold the connection open without heartbeats",
    )
    register_parser.set_defaults(func=cmd_register)

    # registry
    registry_parser = subparsers.add_parser(
        "registry", help="Query the status registry of a running daemon",
    )
    registry_sub = registry_parser.add_subparsers(dest="registry_command")

    # registry list
    reg_list = registry_sub.add_parser("list", help="List all watched services")
    _add_registry_args(reg_list)
    reg_list.add_argument("--name", type=str, default=None, help="Filter by service name")
    reg_list.add_argument("--status", choices=["healthy", "unhealthy"], default=None, help="Filter by status")
    reg_list.set_defaults(func=cmd_registry_list)

    # registry get
    reg_get = registry_sub.add_parser("get", help="Get a single service by key (NAME_PORT)")
    _add_registry_args(reg_get)
    reg_get.add_argument("key", type=str, help="Watcher key")
    reg_get.set_defaults(func=cmd_registry_get)

    # registry list-healthy
    reg_healthy = registry_sub.add_parser("list-healthy", help="List healthy services")
    _add_registry_args(reg_healthy)
    reg_healthy.add_argument("--name", type=str, default=None, help="Filter by service name")
    reg_healthy.add_argument(
        "--max-age", type=float, default=30, dest="max_age",
        help="Ignore statuses older than this many seconds (default: 30)",
    )
    reg_healthy.set_defaults(func=cmd_registry_list_healthy)

    # registry count
    reg_count = registry_sub.add_parser("count", help="Count watched services")
    _add_registry_args(reg_count)
    reg_count.add_argument("--name", type=str, default=None, help="Filter by service name")
    reg_count.set_defaults(func=cmd_registry_count)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "registry" and not args.registry_command:
        registry_parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
