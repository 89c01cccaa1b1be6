"""Run the Fabric Matrix agent.

Usage:
    matrix-agent [OPTIONS]
    matrix-agent --help

Options:
    --config PATH       JSON config file (default: ~/.config/matrix/config.json)
    --homeserver URL    Homeserver base URL
    --handle USER_ID    Agent's own Matrix user ID (@user:server)
    --coordinator ROOM  Coordinator room ID or alias
    --token TOKEN       Pre-issued access token
    --no-connect        Do not touch the network
    --no-autojoin       Ignore room invites
    --logout            Remove stored device credentials and exit
    --debug             Show debug information

Examples:
    # Run with the default config file
    matrix-agent

    # Run against a local homeserver
    matrix-agent --homeserver http://localhost:8008 --handle '@bot:localhost'
"""

import argparse
import asyncio
import json
import logging
import sys

from fabric_matrix.config import load_config
from fabric_matrix.errors import ConfigError, ExternalCallError, ProtocolViolation
from fabric_matrix.messages import handle_message
from fabric_matrix.service import MatrixService
from fabric_matrix.store import delete_credentials

logger = logging.getLogger("fabric_matrix.agent")


def build_service(settings: dict, client=None) -> MatrixService:
    """Construct the service and wire the default handlers."""
    service = MatrixService(settings, client=client)

    service.on("message", handle_message)
    service.on("activity", lambda activity: logger.info("[ACTIVITY] %s", json.dumps(activity)))
    service.on("ready", lambda: logger.info("[MATRIX:AGENT] Ready as %s", service.settings["handle"]))

    return service


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Relay a Matrix coordinator room as local activity")
    parser.add_argument("--config", metavar="PATH", help="JSON config file")
    parser.add_argument("--homeserver", help="Homeserver base URL")
    parser.add_argument("--handle", metavar="USER_ID", help="Agent's own Matrix user ID")
    parser.add_argument("--coordinator", metavar="ROOM", help="Coordinator room ID or alias")
    parser.add_argument("--token", help="Pre-issued access token")
    parser.add_argument("--no-connect", action="store_true", help="Do not touch the network")
    parser.add_argument("--no-autojoin", action="store_true", help="Ignore room invites")
    parser.add_argument("--logout", action="store_true",
                        help="Remove stored device credentials and exit")
    parser.add_argument("--debug", action="store_true", help="Show debug info")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    overrides = {
        key: value
        for key, value in {
            "homeserver": args.homeserver,
            "handle": args.handle,
            "coordinator": args.coordinator,
            "token": args.token,
        }.items()
        if value is not None
    }
    if args.no_connect:
        overrides["connect"] = False
    if args.no_autojoin:
        overrides["autojoin"] = False

    try:
        settings = load_config(args.config, **overrides)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.logout:
        if delete_credentials(settings):
            print("Stored credentials removed")
        else:
            print("No stored credentials")
        return 0

    service = build_service(settings)

    try:
        asyncio.run(service.run())
    except ProtocolViolation as e:
        logger.error("[MATRIX:AGENT] Fatal: %s", e)
        return 2
    except ExternalCallError as e:
        logger.error("[MATRIX:AGENT] Main Process Exception: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("[MATRIX:AGENT] Interrupted")

    return 0


if __name__ == "__main__":
    sys.exit(main())
