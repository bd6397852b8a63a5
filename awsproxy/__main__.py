# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command-line entry point: run the signing proxy.

Loads configuration, then runs mitmproxy's ``DumpMaster`` in reverse
proxy mode with the ``AwsSigningProxy`` addon.

Usage:
    python -m awsproxy --config ~/.config/awsproxy/awsproxy.yaml
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from mitmproxy.options import Options
from mitmproxy.tools.dump import DumpMaster

from awsproxy.addon import AwsSigningProxy
from awsproxy.config import ProxyConfig
from awsproxy.errors import ConfigurationError
from awsproxy.logging import configure_logging


logger = logging.getLogger(__name__)

#: Reverse-mode placeholder; the addon rewrites every request's target.
REVERSE_MODE = "reverse:https://s3.amazonaws.com"


async def run_proxy(
    config: ProxyConfig,
    listen_host: str,
    listen_port: int,
) -> None:
    """Run mitmproxy with the signing addon until shut down."""
    options = Options(
        listen_host=listen_host,
        listen_port=listen_port,
        mode=[REVERSE_MODE],
    )
    master = DumpMaster(options, with_termlog=False, with_dumper=False)
    master.addons.add(AwsSigningProxy(config))
    logger.info(
        "Listening on %s:%d (mount prefix %r)",
        listen_host,
        listen_port,
        config.mount_prefix or "/",
    )
    await master.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Exit code (0=success, 1=config error, 3=runtime error).
    """
    parser = argparse.ArgumentParser(
        description="AWS SigV4 signing reverse proxy",
        epilog=(
            "Requests to /{host}/{path} are forwarded to "
            "https://{host}/{path} with an AWS Signature V4."
        ),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to awsproxy.yaml config file"
            " (default: ~/.config/awsproxy/awsproxy.yaml)"
        ),
    )
    parser.add_argument(
        "--listen-host",
        default=None,
        metavar="HOST",
        help="Address to listen on (overrides config)",
    )
    parser.add_argument(
        "--listen-port",
        type=int,
        default=None,
        metavar="PORT",
        help="Port to listen on (overrides config)",
    )
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    try:
        config = ProxyConfig.from_yaml(config_path=args.config)
    except ConfigurationError as e:
        logger.critical("Configuration error: %s", e)
        return 1

    try:
        asyncio.run(
            run_proxy(
                config,
                args.listen_host or config.listen_host,
                args.listen_port or config.listen_port,
            )
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal runtime error: %s", e)
        return 3


if __name__ == "__main__":
    sys.exit(main())
