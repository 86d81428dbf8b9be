#!/usr/bin/env python3
"""
Entrypoint for the gatekeeper.

Loads settings, opens the log and the allow-list, starts the control server on
a background thread and then runs the gated proxy in the foreground.
"""

import argparse
import asyncio
import logging
import sys

from allowlist import AllowList
from control_server import ControlServer, create_app
from errors import ConfigError, StorageError
from log_sink import LogSink, install_logging
from mailer import Mailer
from proxy import ProxyServer
from settings import CONFIG_PATH, load_settings
from stepup import StepUpAuthenticator

log = logging.getLogger(__name__)


def build(settings, sink):
    """Wire the authenticator, control app and proxy from *settings*."""
    allowlist = AllowList.load(settings.allowlist_path)
    authenticator = StepUpAuthenticator(
        allowlist,
        Mailer.from_settings(settings.smtp),
        recipients=settings.emails,
        api_url=settings.default_api_url,
    )
    app = create_app(authenticator, sink, settings.api_whitelist)
    proxy = ProxyServer(
        settings.proxy_address, settings.redirect_address, authenticator
    )
    return authenticator, app, proxy


def main(argv=None):
    parser = argparse.ArgumentParser(description="IP-gated TCP relay")
    parser.add_argument(
        "--config", default=CONFIG_PATH, help=f"Settings file (default: {CONFIG_PATH})"
    )
    parser.add_argument(
        "--log-level", default="INFO", help="Logging level (default: INFO)"
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"❌ Invalid settings: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        sink = LogSink(settings.logger_path)
    except OSError as exc:
        print(f"❌ Cannot open log file {settings.logger_path}: {exc}", file=sys.stderr)
        sys.exit(1)
    install_logging(sink, args.log_level)
    log.info("Loaded settings from %s", args.config)

    try:
        _, app, proxy = build(settings, sink)
    except StorageError as exc:
        log.error("Cannot open the allow-list: %s", exc)
        sys.exit(1)

    try:
        control = ControlServer(app, *settings.api_address)
    except OSError as exc:
        log.error("Cannot bind the control server: %s", exc)
        sys.exit(1)
    control.start()

    try:
        asyncio.run(proxy.serve_forever())
    except OSError as exc:
        log.error("Error binding to address: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        log.info("Shutting down")
    finally:
        control.shutdown()
        sink.close()


if __name__ == "__main__":
    main()
