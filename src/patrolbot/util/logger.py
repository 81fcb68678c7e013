import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
ROOT_LOGGER_NAME: str = "patrolbot"

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_LEVELS: dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

LOG_COLORS = {
    "DEBUG": "\033[36m",      # Cyan
    "INFO": "\033[32m",       # Green
    "WARNING": "\033[33m",    # Yellow
    "ERROR": "\033[31m",      # Red
    "CRITICAL": "\033[38;5;88m",  # Dark Red (ANSI 256-color)
}
RESET_COLOR = "\033[0m"


# -------------------- Formatters --------------------
class ColorFormatter(logging.Formatter):
    """
    Custom log formatter that applies ANSI color codes based on log level.

    Colors are assigned by severity: DEBUG cyan, INFO green, WARNING yellow,
    ERROR red and CRITICAL dark red.
    """

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Logging handler that writes through prompt_toolkit.

    Uses print_formatted_text so ANSI sequences are rendered consistently on
    every terminal prompt_toolkit supports.

    Args:
        formatter (logging.Formatter | None): Optional formatter to apply to log records.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            print_formatted_text(ANSI(msg))
        except Exception:
            self.handleError(record)


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def should_use_color() -> bool:
    """
    Determine if the current environment supports colorized terminal output.

    Returns:
        bool: True if stderr is attached to a TTY, False otherwise.
    """
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


color_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


# -------------------- Level / file resolution --------------------

def resolve_log_level(configured: str | None, app_env: str) -> str:
    """Pick the active level name.

    Order: ``LOG_LEVEL`` environment variable, then the configured value,
    then ``debug`` for development or ``info`` otherwise. Unknown names fall
    back to the environment default.
    """
    default = "debug" if app_env == "development" else "info"
    candidate = (os.getenv("LOG_LEVEL") or configured or default).strip().lower()
    return candidate if candidate in LOG_LEVELS else default


def resolve_log_file(configured: str | None, app_env: str, base_dir: Path) -> Path:
    """Pick the log file path, relative paths being anchored at ``base_dir``."""
    default = "logs/dev.log" if app_env == "development" else "logs/app.log"
    setting = Path(os.getenv("LOG_FILE") or configured or default)
    return setting if setting.is_absolute() else (base_dir / setting).resolve()


# -------------------- Logger Setup --------------------

def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        root.setLevel(logging.INFO)
        root.propagate = False
        console_handler = PromptToolkitHandler(formatter=color_formatter)
        root.addHandler(console_handler)
    return root


def configure_logging(level_name: str, log_filepath: Path | None) -> logging.Logger:
    """Apply the runtime level and attach the rotating file handler.

    Parameters
    ----------
    level_name:
        One of the keys of :data:`LOG_LEVELS`.
    log_filepath:
        File to append to. ``None`` keeps console-only logging.

    Returns
    -------
    logging.Logger
        The configured package root logger.
    """
    root = _root_logger()
    root.setLevel(LOG_LEVELS.get(level_name, logging.INFO))

    for handler in list(root.handlers):
        if isinstance(handler, RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()

    if log_filepath is not None:
        log_filepath.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_filepath,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(plain_formatter)
        root.addHandler(file_handler)

    return root


def get_logger(logger_name: str) -> logging.Logger:
    """Retrieve a logger under the ``patrolbot`` namespace.

    Parameters
    ----------
    logger_name:
        Component name, e.g. ``"rule_engine"``.

    Returns
    -------
    logging.Logger
        Child logger sharing the package handlers.
    """
    _root_logger()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{logger_name}")


# -------------------- Exception Handling --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    Global exception handler that logs uncaught exceptions.

    KeyboardInterrupt is passed to the default hook so Ctrl+C still
    terminates normally.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
    else:
        get_logger("main").error(
            "Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback)
        )


# -------------------- Suppress Noisy Libraries --------------------
NOISY_LOGGERS = ["urllib3", "urllib3.connectionpool", "asyncio"]

for noisy_logger in NOISY_LOGGERS:
    lg = logging.getLogger(noisy_logger)
    lg.setLevel(logging.WARNING)
