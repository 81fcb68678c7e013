"""
Slack Patrol Bot
================

Watches Slack channels for messages that skip a mention, reply outside a
thread, or flood the channel, and answers them with rate-limited ephemeral
warnings.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. PATROLBOT_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("PATROLBOT_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()

import asyncio
import signal
from dataclasses import dataclass
from dotenv import load_dotenv

from patrolbot.configuration.app_configuration import CONFIG_PATH, AppConfig, ConfigError
from patrolbot.listener.event_feed import run_event_feed
from patrolbot.services.audit_service import WebhookAuditRecorder
from patrolbot.services.notification_service import SlackNotifier
from patrolbot.services.patrol_service import PatrolService
from patrolbot.util.logger import (
    configure_logging,
    get_logger,
    handle_exception,
    resolve_log_file,
    resolve_log_level,
)


logger = get_logger("main")

SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM", "SIGQUIT")


@dataclass(frozen=True)
class RuntimeEnvironment:
    bot_token: str
    sheets_webhook_url: str | None
    app_env: str
    config_path: Path


def load_environment() -> RuntimeEnvironment:
    """Load ``.env`` and collect the runtime environment.

    Raises
    ------
    SystemExit
        If the required ``SLACK_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = (os.getenv("SLACK_BOT_TOKEN") or "").strip()
    if not token:
        logger.critical("'SLACK_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)

    config_setting = os.getenv("PATROLBOT_CONFIG")
    config_path = Path(config_setting) if config_setting else CONFIG_PATH
    if not config_path.is_absolute():
        config_path = (BASE_DIR / config_path).resolve()

    return RuntimeEnvironment(
        bot_token=token,
        sheets_webhook_url=os.getenv("SHEETS_WEBHOOK_URL"),
        app_env=(os.getenv("APP_ENV") or "production").strip().lower(),
        config_path=config_path,
    )


def load_configuration(env: RuntimeEnvironment) -> AppConfig:
    """Load, validate and apply logging settings.

    Raises
    ------
    SystemExit
        If the configuration is invalid.
    """
    try:
        app_config = AppConfig(env.config_path, base_dir=BASE_DIR)
    except ConfigError as exc:
        for error in exc.errors:
            logger.critical("[CONFIG] %s", error)
        sys.exit(1)

    logging_settings = app_config.settings.logging
    level = resolve_log_level(logging_settings.level, env.app_env)
    log_file = resolve_log_file(logging_settings.file, env.app_env, BASE_DIR)
    configure_logging(level, log_file)
    logger.info("Logger initialized (env=%s, level=%s, file=%s)", env.app_env, level, log_file)
    return app_config


def build_service(env: RuntimeEnvironment, app_config: AppConfig) -> PatrolService:
    """Construct the patrol service and its collaborators."""
    return PatrolService(
        settings=app_config.settings,
        state_path=app_config.state_file_path,
        notifier=SlackNotifier(env.bot_token, app_config.messages),
        audit=WebhookAuditRecorder(env.sheets_webhook_url),
    )


def install_signal_handlers(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> None:
    """Route termination signals to ``stop``; unsupported signals are skipped."""
    for name in SHUTDOWN_SIGNALS:
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, lambda n=name: _request_stop(stop, n))
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal %s not supported on this platform", name)


def _request_stop(stop: asyncio.Event, reason: str) -> None:
    if not stop.is_set():
        logger.info("Shutdown requested (%s)", reason)
        stop.set()


async def run_service(service: PatrolService, stop: asyncio.Event) -> None:
    """Consume the event feed until EOF or until ``stop`` is set."""
    feed = asyncio.create_task(run_event_feed(service.handle_event))
    stopper = asyncio.create_task(stop.wait())
    try:
        done, _ = await asyncio.wait({feed, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if feed in done:
            dispatched = feed.result()
            logger.info("Event feed finished after %d events", dispatched)
    finally:
        for task in (feed, stopper):
            if not task.done():
                task.cancel()
        await asyncio.gather(feed, stopper, return_exceptions=True)


async def async_main() -> int:
    """Bootstrap the service, run it, and shut down gracefully.

    Returns
    -------
    int
        Process exit code.
    """
    env = load_environment()
    app_config = load_configuration(env)

    try:
        service = build_service(env, app_config)
    except Exception as exc:
        logger.critical("Failed to initialize patrol service: %s", exc)
        return 1

    stop = asyncio.Event()
    install_signal_handlers(asyncio.get_running_loop(), stop)
    logger.info(
        "Slack Patrol Bot started (mode=%s, env=%s, state=%s)",
        app_config.settings.mode, env.app_env, app_config.state_file_path
    )

    exit_code = 0
    try:
        await run_service(service, stop)
    except Exception as exc:
        logger.exception("Unexpected runtime error: %s", exc)
        exit_code = 1
    finally:
        try:
            await service.shutdown()
        except Exception as exc:
            logger.warning("Final cooldown save failed: %s", exc)

    return exit_code


def main() -> int:
    """Entrypoint that orchestrates the async runtime and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting Slack Patrol Bot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
