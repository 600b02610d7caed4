"""Vigil CLI — serve the hub and administer users and sensors."""

import argparse
import sys


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Vigil — presence sensor hub",
    )
    parser.add_argument("--db", default=None, help="SQLite database path (default: $VIGIL_DB_PATH or ~/.vigil/vigil.db)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Hub serve command
    serve_parser = subparsers.add_parser("serve", help="Start the webhook and dashboard API")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: 8000)")
    serve_parser.add_argument("--host", default=None, help="Host (default: 127.0.0.1)")
    serve_parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging")
    serve_parser.add_argument("--quiet", action="store_true", help="Only show WARNING and above")

    # Admin commands
    user_parser = subparsers.add_parser("create-user", help="Register a username")
    user_parser.add_argument("username")

    sensor_parser = subparsers.add_parser("register-sensor", help="Register a sensor and print its token")
    sensor_parser.add_argument("username")
    sensor_parser.add_argument("name")

    list_parser = subparsers.add_parser("list-sensors", help="List a user's sensors")
    list_parser.add_argument("username")

    summary_parser = subparsers.add_parser("summary", help="Show a user's presence summary")
    summary_parser.add_argument("username")
    summary_parser.add_argument("--json", action="store_true", dest="json_output", help="Output as JSON")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _dispatch(args)


def _load_config(args):
    from vigil.config import VigilConfig

    config = VigilConfig.from_env()
    if args.db:
        config.db_path = args.db
    return config


def _dispatch(args):
    """Route CLI commands to the hub."""
    import asyncio

    from vigil.exceptions import VigilError

    config = _load_config(args)

    if args.command == "serve":
        if args.host:
            config.host = args.host
        if args.port:
            config.port = args.port
        if args.verbose:
            config.log_level = "DEBUG"
        elif args.quiet:
            config.log_level = "WARNING"
        _serve(config)
        return

    commands = {
        "create-user": _create_user,
        "register-sensor": _register_sensor,
        "list-sensors": _list_sensors,
        "summary": _summary,
    }
    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    try:
        asyncio.run(_with_hub(config, handler, args))
    except VigilError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


async def _with_hub(config, handler, args):
    from vigil.hub.core import PresenceHub

    hub = PresenceHub(config.db_path, token_bytes=config.token_bytes)
    await hub.initialize()
    try:
        await handler(hub, args)
    finally:
        await hub.shutdown()


async def _create_user(hub, args):
    user = await hub.users.create_user(args.username)
    print(f"Created user {user.username} (id={user.id})")


async def _register_sensor(hub, args):
    user = await hub.users.get_user_by_username(args.username)
    sensor = await hub.sensors.register_sensor(user.id, args.name)
    print(f"Registered sensor {sensor.name} (id={sensor.id})")
    print(f"Token (shown once): {sensor.token}")


async def _list_sensors(hub, args):
    user = await hub.users.get_user_by_username(args.username)
    sensors = await hub.sensors.list_sensors(user.id)
    if not sensors:
        print("No sensors registered")
        return
    for sensor in sensors:
        print(f"{sensor.id:>6}  {sensor.registered_at:%Y-%m-%d %H:%M}  {sensor.name}")


async def _summary(hub, args):
    import json

    user = await hub.users.get_user_by_username(args.username)
    summary = await hub.aggregation.dashboard_summary(user.id)

    if args.json_output:
        print(json.dumps(summary.to_dict(), indent=2))
        return

    last = summary.last_detection_at.isoformat() if summary.last_detection_at else "never"
    print(f"Sensors:         {summary.total_sensors}")
    print(f"Detections:      {summary.total_detections}")
    print(f"Last detection:  {last}")
    for item in summary.sensors:
        seen = item.last_presence.registered_at.isoformat() if item.last_presence else "never"
        print(f"  {item.sensor.name}: {item.total_detections} detections, last {seen}")


def _serve(config):
    """Start the Vigil hub and API server."""
    import asyncio
    import logging

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("vigil.serve")

    import uvicorn

    from vigil.hub.api import create_api
    from vigil.hub.core import PresenceHub

    async def start():
        logger.info("=" * 70)
        logger.info("Vigil — presence sensor hub")
        logger.info("=" * 70)
        logger.info(f"Database: {config.db_path}")
        logger.info(f"Server: http://{config.host}:{config.port}")
        logger.info(f"Webhook: http://{config.host}:{config.port}/webhook/detect")
        logger.info("=" * 70)

        hub = PresenceHub(config.db_path, token_bytes=config.token_bytes)
        await hub.initialize()

        app = create_api(hub, config)

        server_config = uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
            access_log=(config.log_level != "WARNING"),
        )
        server = uvicorn.Server(server_config)

        try:
            await server.serve()
        finally:
            if hub.is_running():
                await hub.shutdown()

    asyncio.run(start())


if __name__ == "__main__":
    main()
