"""HubP - Docker Hub proxy server.

Usage:
    python -m hubproxy -l 0.0.0.0 -p 18826 -ll debug -w www.bing.com
    python -m hubproxy --listen=0.0.0.0 --port=18826 --log-level=debug --disguise=www.bing.com

Environment variables (flags take precedence):
    HUBP_LISTEN, HUBP_PORT, HUBP_LOG_LEVEL, HUBP_DISGUISE
"""

import argparse

import structlog
import uvicorn

from hubproxy.settings import settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hubp",
        description="HubP - Docker Hub proxy server",
    )
    parser.add_argument(
        "-l",
        "--listen",
        default=settings.LISTEN,
        help=f"Listen address (default: {settings.LISTEN})",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Listen port (default: {settings.PORT})",
    )
    parser.add_argument(
        "-ll",
        "--log-level",
        default=settings.LOG_LEVEL,
        help="Log level: debug, info, warn, error "
        f"(default: {settings.LOG_LEVEL})",
    )
    parser.add_argument(
        "-w",
        "--disguise",
        default=settings.DISGUISE,
        help=f"Disguise website host (default: {settings.DISGUISE})",
    )
    return parser.parse_args(argv)


def apply_args(args: argparse.Namespace) -> None:
    settings.LISTEN = args.listen
    settings.PORT = args.port
    settings.LOG_LEVEL = args.log_level
    settings.DISGUISE = args.disguise


def log_banner() -> None:
    logger = structlog.stdlib.get_logger("hubproxy")
    logger.info("============================================")
    logger.info("HubP Docker Hub proxy", version=settings.VERSION)
    logger.info("============================================")
    logger.info("Listen address", listen=settings.LISTEN)
    logger.info("Listen port", port=settings.PORT)
    logger.info("Log level", log_level=settings.LOG_LEVEL)
    logger.info("Disguise site", disguise=settings.DISGUISE)
    logger.info("Upstream registry", upstream=settings.UPSTREAM_REGISTRY_HOST)
    logger.info("============================================")


def main(argv=None) -> None:
    apply_args(parse_args(argv))

    # Logging is configured when the app module is imported
    from hubproxy.main import app

    log_banner()
    uvicorn.run(
        app,
        host=settings.LISTEN,
        port=settings.PORT,
        timeout_keep_alive=settings.IDLE_TIMEOUT,
        log_config=None,
        access_log=False,
    )


if __name__ == "__main__":
    main()
