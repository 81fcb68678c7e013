from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import fcntl
from typing import Any, Dict, FrozenSet, List, Tuple
import yaml

from patrolbot.datatypes.rule_datatypes import RuleName
from patrolbot.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("config/app_config.yml")
DEFAULT_MESSAGES_FILE = "config/messages.yml"
DEFAULT_STATE_FILE = "cooldown_state.csv"
DEFAULT_MAX_TRACKED_KEYS = 10_000

VALID_MODES = ("include", "exclude")

# (key, minimum) for the required integer settings
NUMERIC_SETTINGS = (
    ("cooldown_sec_user", 0),
    ("cooldown_sec_channel", 0),
    ("flood_window_sec", 1),
    ("flood_max_posts", 1),
)


class ConfigError(RuntimeError):
    """Raised when the configuration cannot be used; carries every problem found."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Configuration validation failed: " + "; ".join(self.errors))


@dataclass(frozen=True)
class RuleToggles:
    no_mention: bool
    non_thread_reply: bool
    flood: bool

    def is_enabled(self, rule: RuleName) -> bool:
        return bool(getattr(self, rule.value))


@dataclass(frozen=True)
class LoggingSettings:
    level: str | None = None
    file: str | None = None


@dataclass(frozen=True)
class PatrolSettings:
    """Validated settings consumed by the rule engine and runtime."""

    mode: str
    channels: FrozenSet[str]
    rules: RuleToggles
    cooldown_sec_user: int
    cooldown_sec_channel: int
    flood_window_sec: int
    flood_max_posts: int
    max_tracked_keys: int = DEFAULT_MAX_TRACKED_KEYS
    state_file: str = DEFAULT_STATE_FILE
    messages_file: str = DEFAULT_MESSAGES_FILE
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def include_mode(self) -> bool:
        return self.mode == "include"

    @property
    def cooldown_ms_user(self) -> int:
        return self.cooldown_sec_user * 1000

    @property
    def cooldown_ms_channel(self) -> int:
        return self.cooldown_sec_channel * 1000

    def is_monitored_channel(self, channel: str | None) -> bool:
        """Include mode watches only the listed channels, exclude mode everything else."""
        if not channel:
            return False
        listed = channel in self.channels
        return listed if self.include_mode else not listed


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config_schema(cfg: Any) -> List[str]:
    """Return a list of human-readable problems; an empty list means valid."""
    if not isinstance(cfg, dict):
        return ["configuration root must be a mapping"]

    errors: List[str] = []
    if cfg.get("mode") not in VALID_MODES:
        errors.append(f"mode must be one of {' / '.join(VALID_MODES)}")

    channels = cfg.get("channels")
    if not isinstance(channels, list) or any(not isinstance(ch, str) for ch in channels):
        errors.append("channels must be a list of channel id strings")

    for key, minimum in NUMERIC_SETTINGS:
        value = cfg.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{key} must be a number")
        elif not _is_int(value) and not float(value).is_integer():
            errors.append(f"{key} must be an integer")
        elif value < minimum:
            errors.append(f"{key} must be >= {minimum}")

    rules = cfg.get("rules")
    if not isinstance(rules, dict):
        errors.append("rules section is missing")
    else:
        for rule in RuleName:
            if not isinstance(rules.get(rule.value), bool):
                errors.append(f"rules.{rule.value} must be true or false")

    max_keys = cfg.get("max_tracked_keys")
    if max_keys is not None and (not _is_int(max_keys) or max_keys < 1):
        errors.append("max_tracked_keys must be an integer >= 1")

    for key in ("state_file", "messages_file"):
        if key in cfg and not isinstance(cfg[key], str):
            errors.append(f"{key} must be a string path")

    logging_cfg = cfg.get("logging")
    if logging_cfg is not None:
        if not isinstance(logging_cfg, dict):
            errors.append("logging must be a mapping")
        else:
            if logging_cfg.get("level") is not None and not isinstance(logging_cfg["level"], str):
                errors.append("logging.level must be a string")
            if logging_cfg.get("file") is not None and not isinstance(logging_cfg["file"], str):
                errors.append("logging.file must be a string path")

    return errors


def validate_messages(messages: Any) -> List[str]:
    """Every rule needs a non-empty warning template."""
    if not isinstance(messages, dict):
        return ["messages file root must be a mapping"]
    return [
        f"messages.{rule.value} must be a non-empty string"
        for rule in RuleName
        if not isinstance(messages.get(rule.value), str) or not messages[rule.value].strip()
    ]


def build_settings(cfg: Dict[str, Any]) -> PatrolSettings:
    """Validate the raw mapping and convert it to :class:`PatrolSettings`.

    Raises:
        ConfigError: If any check fails.
    """
    errors = validate_config_schema(cfg)
    if errors:
        raise ConfigError(errors)

    rules = cfg["rules"]
    logging_cfg = cfg.get("logging") or {}
    return PatrolSettings(
        mode=cfg["mode"],
        channels=frozenset(cfg["channels"]),
        rules=RuleToggles(
            no_mention=rules["no_mention"],
            non_thread_reply=rules["non_thread_reply"],
            flood=rules["flood"],
        ),
        cooldown_sec_user=int(cfg["cooldown_sec_user"]),
        cooldown_sec_channel=int(cfg["cooldown_sec_channel"]),
        flood_window_sec=int(cfg["flood_window_sec"]),
        flood_max_posts=int(cfg["flood_max_posts"]),
        max_tracked_keys=int(cfg.get("max_tracked_keys", DEFAULT_MAX_TRACKED_KEYS)),
        state_file=cfg.get("state_file", DEFAULT_STATE_FILE),
        messages_file=cfg.get("messages_file", DEFAULT_MESSAGES_FILE),
        logging=LoggingSettings(level=logging_cfg.get("level"), file=logging_cfg.get("file")),
    )


def read_yaml_file(path: Path) -> Any:
    """Read a YAML (or JSON) document under a shared file lock.

    Returns an empty dict when the file is missing or unreadable.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            # Acquire a shared lock for reading
            fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            try:
                return yaml.safe_load(f)
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except FileNotFoundError:
        logger.error("[APP CONFIGURATION] Config file %s not found.", path)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("[APP CONFIGURATION] Failed to load config %s: %s", path, exc)
    return {}


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    Loads ``config_path`` and the referenced messages file, validates both,
    and exposes the typed :class:`PatrolSettings` plus the warning templates.
    Relative paths inside the configuration are resolved against ``base_dir``.
    """

    def __init__(self, config_path: Path, base_dir: Path | None = None) -> None:
        self.config_path = Path(config_path)
        self.base_dir = Path(base_dir) if base_dir is not None else self.config_path.parent.parent
        self._settings, self._messages = self._load()

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> PatrolSettings:
        """Re-read both files and re-validate.

        The previous settings stay in place when validation fails.

        Raises:
            ConfigError: With every configuration and message problem found.
        """
        self._settings, self._messages = self._load()
        return self._settings

    @property
    def settings(self) -> PatrolSettings:
        return self._settings

    @property
    def messages(self) -> Dict[str, str]:
        """Warning templates keyed by rule name."""
        return dict(self._messages)

    def resolve_path(self, value: str | Path) -> Path:
        path = Path(value)
        return path if path.is_absolute() else (self.base_dir / path).resolve()

    @property
    def state_file_path(self) -> Path:
        return self.resolve_path(self.settings.state_file)

    def _load(self) -> Tuple[PatrolSettings, Dict[str, str]]:
        raw = read_yaml_file(self.config_path)
        errors = validate_config_schema(raw)
        if errors:
            raise ConfigError(errors)

        settings = build_settings(raw)
        messages = read_yaml_file(self.resolve_path(settings.messages_file))
        message_errors = validate_messages(messages)
        if message_errors:
            raise ConfigError(message_errors)

        return settings, {rule.value: str(messages[rule.value]) for rule in RuleName}
