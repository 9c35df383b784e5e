"""PressBox command line entry point.

Usage:
    pressbox env                               Show backend capabilities
    pressbox list [--json]                     List sites in both environments
    pressbox create blog [--backend docker]    Create a site
    pressbox start blog                        Start a site (local sites serve until Ctrl+C)
    pressbox stop blog
    pressbox delete blog
    pressbox switch docker                     Change the default backend for this run
    pressbox migrate blog --from local --to docker
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from pydantic import ValidationError as PydanticValidationError

from pressbox import __version__
from pressbox.core.config import Settings, get_settings
from pressbox.core.container import Container, wire_services
from pressbox.core.exceptions import PressBoxError
from pressbox.core.logging import get_logger, setup_logging
from pressbox.services.environment import (
    Backend,
    DockerOptions,
    SiteDescriptor,
    SiteRecord,
)
from pressbox.services.environment_manager import EnvironmentManager

logger = get_logger(__name__)

Command = Callable[[EnvironmentManager, argparse.Namespace], Awaitable[int]]


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncIterator[EnvironmentManager]:
    """Wire services, initialize the environment manager and tear it all down on exit."""
    setup_logging(settings)
    container = Container()
    await wire_services(container, settings)
    manager: EnvironmentManager = await container.get_async("environment_manager")
    await manager.initialize()
    try:
        yield manager
    finally:
        await container.shutdown()


def _print_sites(records: list[SiteRecord], as_json: bool) -> None:
    if as_json:
        print(json.dumps([record.model_dump(mode="json") for record in records], indent=2))
        return
    if not records:
        print("No sites found")
        return
    for record in records:
        print(f"{record.name:<24} {record.environment.value:<8} {record.status.value:<8} {record.url}")


async def cmd_env(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    snapshot = await manager.get_capabilities()
    if args.json:
        print(json.dumps({"current": manager.current_backend.value, **snapshot.to_dict()}, indent=2))
        return 0

    print(f"Current environment: {manager.current_backend}")
    for backend in Backend:
        capability = snapshot[backend]
        marks = []
        if capability.available:
            marks.append("available")
        if capability.preferred:
            marks.append("preferred")
        print(f"  {backend.value:<8} [{', '.join(marks) or 'unavailable'}] {capability.description}")
    return 0


async def cmd_list(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    _print_sites(await manager.list_sites(), args.json)
    return 0


async def cmd_create(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    descriptor = SiteDescriptor(
        name=args.name,
        port=args.port,
        php_version=args.php_version,
        wordpress_version=args.wordpress_version,
        backend=Backend(args.backend) if args.backend else None,
        docker_options=DockerOptions(
            web_server=args.web_server,
            database=args.database,
            xdebug=args.xdebug,
            mailpit=not args.no_mailpit,
        ),
    )
    await manager.create_site(descriptor)
    print(f"Created site {descriptor.name}")
    return 0


async def cmd_start(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    backend = Backend(args.backend) if args.backend else None
    if not await manager.start_site(args.name, backend):
        print(f"Site {args.name} did not start", file=sys.stderr)
        return 1

    records = {record.name: record for record in await manager.list_sites()}
    record = records.get(args.name)
    print(f"Started {args.name}" + (f" at {record.url}" if record else ""))
    if record is not None and record.environment is Backend.LOCAL and not args.detach:
        # The PHP server lives as long as this process
        print("Serving; press Ctrl+C to stop")
        await asyncio.Event().wait()
    return 0


async def cmd_stop(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    backend = Backend(args.backend) if args.backend else None
    stopped = await manager.stop_site(args.name, backend)
    print(f"Stopped {args.name}" if stopped else f"Site {args.name} was not running")
    return 0


async def cmd_delete(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    backend = Backend(args.backend) if args.backend else None
    if await manager.delete_site(args.name, backend):
        print(f"Deleted {args.name}")
        return 0
    print(f"Failed to delete {args.name}", file=sys.stderr)
    return 1


async def cmd_switch(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    await manager.switch_environment(Backend(args.backend))
    print(f"Switched to {args.backend} environment")
    return 0


async def cmd_migrate(manager: EnvironmentManager, args: argparse.Namespace) -> int:
    await manager.migrate_site(args.name, Backend(args.source), Backend(args.target))
    print(f"Migrated {args.name} from {args.source} to {args.target}")
    return 0


COMMANDS: dict[str, Command] = {
    "env": cmd_env,
    "list": cmd_list,
    "create": cmd_create,
    "start": cmd_start,
    "stop": cmd_stop,
    "delete": cmd_delete,
    "switch": cmd_switch,
    "migrate": cmd_migrate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pressbox",
        description="Local WordPress environments on the PHP built-in server or Docker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)
    backends = [backend.value for backend in Backend]

    env_parser = subparsers.add_parser("env", help="Show backend capabilities")
    env_parser.add_argument("--json", action="store_true", help="Print JSON")

    list_parser = subparsers.add_parser("list", help="List sites in both environments")
    list_parser.add_argument("--json", action="store_true", help="Print JSON")

    create_parser = subparsers.add_parser("create", help="Create a WordPress site")
    create_parser.add_argument("name")
    create_parser.add_argument(
        "--backend",
        "-b",
        choices=backends,
        help="Target environment (default: current preferred environment)",
    )
    create_parser.add_argument("--port", type=int, default=8080)
    create_parser.add_argument("--php-version", default="8.2")
    create_parser.add_argument("--wordpress-version", default="latest")
    create_parser.add_argument("--web-server", choices=["nginx", "apache"], default="nginx")
    create_parser.add_argument("--database", choices=["mysql", "mariadb"], default="mysql")
    create_parser.add_argument("--xdebug", action="store_true", help="Enable Xdebug (Docker only)")
    create_parser.add_argument(
        "--no-mailpit", action="store_true", help="Skip the Mailpit container (Docker only)"
    )

    for name, help_text in (
        ("start", "Start a site"),
        ("stop", "Stop a site"),
        ("delete", "Delete a site and its data"),
    ):
        site_parser = subparsers.add_parser(name, help=help_text)
        site_parser.add_argument("name")
        site_parser.add_argument(
            "--backend",
            "-b",
            choices=backends,
            help="Environment owning the site (default: looked up)",
        )
        if name == "start":
            site_parser.add_argument(
                "--detach",
                "-d",
                action="store_true",
                help="Return immediately; a local site's server exits with this process",
            )

    switch_parser = subparsers.add_parser("switch", help="Change the default environment")
    switch_parser.add_argument("backend", choices=backends)

    migrate_parser = subparsers.add_parser("migrate", help="Move a site between environments")
    migrate_parser.add_argument("name")
    migrate_parser.add_argument("--from", dest="source", choices=backends, required=True)
    migrate_parser.add_argument("--to", dest="target", choices=backends, required=True)

    return parser


async def run(args: argparse.Namespace, settings: Settings | None = None) -> int:
    async with lifespan(settings) as manager:
        try:
            return await COMMANDS[args.command](manager, args)
        except PressBoxError as e:
            logger.debug(
                f"Command {args.command} failed: {e.message}",
                extra={"error_code": e.error_code, "details": e.details},
            )
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        except PydanticValidationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args, get_settings()))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
