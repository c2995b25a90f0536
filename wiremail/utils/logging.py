"""Logging utility for wiremail"""

import json
import logging
import re
from datetime import datetime, timezone
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

from rich.logging import RichHandler

from .paths import LOGS_DIR

ROOT_LOGGER_NAME = "wiremail"


## Custom JSON Formatter


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for log records."""

    # Attributes every LogRecord carries; anything else came in via ``extra``
    _RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED
        }
        if extra:
            log_entry["context"] = extra

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter to add contextual information."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        if "extra" not in kwargs:
            kwargs["extra"] = {}

        kwargs["extra"].update(self.extra)
        return msg, kwargs


## Log Masking


def _mask_partial(value: str) -> str:
    if len(value) <= 6:
        return "[REDACTED]"
    return value[:3] + "*" * (len(value) - 6) + value[-3:]


def mask_address(address: str) -> str:
    """Keep the first character of the local part and domain of an address."""
    local, _, domain = address.partition("@")
    masked_local = local[0] + "***" if len(local) > 1 else "***"
    masked_domain = domain[0] + ("***" if len(domain) > 1 else "*")
    return f"{masked_local}@{masked_domain}"


class SensitiveDataMasker:
    """Masks credentials and mailbox addresses in log text.

    Wire traces are the main source: IMAP ``LOGIN`` arguments and
    ``key=value`` secrets are replaced outright, while addresses keep their
    first characters so a trace still shows which mailbox was involved.
    """

    # group 1 is kept, group 2 is masked
    SECRET_PATTERNS = {
        "login": re.compile(r"(\bLOGIN\s+)(\S+\s+\S+)", re.IGNORECASE),
        "password": re.compile(
            r'((?:password|passwd|pass)["\']?\s*[:=]\s*["\']?)([^"\'}\s]+)',
            re.IGNORECASE,
        ),
        "token": re.compile(
            r'(token["\']?\s*[:=]\s*["\']?)([^"\'}\s]+)', re.IGNORECASE
        ),
        "secret": re.compile(
            r'(secret["\']?\s*[:=]\s*["\']?)([^"\'}\s]+)', re.IGNORECASE
        ),
    }

    EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

    SENSITIVE_FIELDS = frozenset(
        {"password", "passwd", "pwd", "pass", "secret", "token", "auth", "credential"}
    )

    STRATEGIES = {
        "full": lambda _: "[REDACTED]",
        "partial": _mask_partial,
    }

    def __init__(self, strategy: str = "full"):
        if strategy not in self.STRATEGIES:
            raise ValueError(f"Unknown masking strategy: {strategy}")

        self.strategy = strategy
        self.mask_func = self.STRATEGIES[strategy]

    def mask_string(self, text: str) -> str:
        """Mask secrets and addresses in a string; other values pass through."""
        if not isinstance(text, str) or not text:
            return text

        for pattern in self.SECRET_PATTERNS.values():
            text = pattern.sub(lambda m: m.group(1) + self.mask_func(m.group(2)), text)

        return self.EMAIL_PATTERN.sub(lambda m: mask_address(m.group(0)), text)

    def mask_value(self, key: str, value: Any) -> Any:
        """Mask one named field of a record or dictionary."""
        if str(key).lower() in self.SENSITIVE_FIELDS:
            return self.mask_func(str(value))
        if isinstance(value, str):
            return self.mask_string(value)
        if isinstance(value, dict):
            return self.mask_dict(value)
        return value

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return data
        return {key: self.mask_value(key, value) for key, value in data.items()}


class SensitiveDataFilter(logging.Filter):
    """Logging filter that masks the message and ``extra`` fields of a record."""

    _UNMASKED = frozenset({"msg", "args", "levelname", "name"})

    def __init__(self, strategy: str = "full"):
        super().__init__()
        self.masker = SensitiveDataMasker(strategy)

    def filter(self, record) -> bool:
        record.msg = self.masker.mask_string(record.msg)

        for key, value in list(vars(record).items()):
            if key not in self._UNMASKED:
                setattr(record, key, self.masker.mask_value(key, value))

        return True


## Main Log Manager


class LogManager:
    """Manages logging configuration and provides logger instances."""

    def __init__(
        self,
        log_level: str = "INFO",
        log_to_file: bool = True,
        log_dir: Optional[Path] = None,
    ):
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir = log_dir or LOGS_DIR
        self.root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.root_logger.setLevel(logging.DEBUG)
        self._setup_handlers(log_to_file)

    def _setup_handlers(self, log_to_file: bool) -> None:
        """Setup console and file handlers with sensitive data filtering."""

        sensitive_filter = SensitiveDataFilter(strategy="full")

        for handler in self.root_logger.handlers:
            handler.close()
        self.root_logger.handlers.clear()

        console_handler = RichHandler(
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        console_handler.setLevel(max(self.log_level, logging.WARNING))
        console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        console_handler.addFilter(sensitive_filter)
        self.root_logger.addHandler(console_handler)

        if not log_to_file:
            return

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            app_handler = RotatingFileHandler(
                self.log_dir / "wiremail.log",
                maxBytes=5_242_880,
                backupCount=5,
                encoding="utf-8",
            )

        except OSError as e:
            # Console logging still works; a read-only home must not break mail
            self.root_logger.warning(
                f"File logging disabled, cannot write to {self.log_dir}: {e}"
            )
            return

        app_handler.setLevel(self.log_level)
        app_handler.setFormatter(JSONFormatter())
        app_handler.addFilter(sensitive_filter)
        self.root_logger.addHandler(app_handler)

    def get_logger(
        self, name: Optional[str] = None, **context
    ) -> logging.Logger | ContextAdapter:
        """Get a logger with optional context.

        Returns:
            logging.Logger or ContextAdapter: Logger instance, possibly wrapped with context.
        """

        if name and (name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}.")):
            logger = logging.getLogger(name)
        else:
            logger = logging.getLogger(
                f"{ROOT_LOGGER_NAME}.{name}" if name else ROOT_LOGGER_NAME
            )

        if context:
            return ContextAdapter(logger, context)

        return logger

    def configure(self, log_level: str, log_to_file: bool) -> None:
        """Rebuild handlers with a new level and file logging choice."""

        self.log_level = getattr(logging, log_level.upper())
        self._setup_handlers(log_to_file)

    def set_level(self, level: str) -> None:
        """Set logging level at runtime"""

        try:
            self.log_level = getattr(logging, level.upper())

        except AttributeError as e:
            raise ValueError(f"Invalid logging level: {level}") from e

        for handler in self.root_logger.handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(max(self.log_level, logging.WARNING))
            else:
                handler.setLevel(self.log_level)

    def log_event(self, event_type: str, message: str, level: str = "INFO", **extra):
        """Log an event with specific type and extra context."""

        extra_dict = {"event_type": event_type}
        extra_dict.update(extra)

        try:
            log_level = getattr(logging, level.upper())

        except AttributeError as e:
            raise ValueError(f"Invalid logging level: {level}") from e

        self.root_logger.log(log_level, message, extra=extra_dict)


## Decorators for Logging


def async_log_call(func):
    """Async decorator to log entry, exit and duration of a coroutine."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        func_name = f"{func.__module__}.{func.__qualname__}"
        logger.debug(f"-> Entering {func_name} (async)")
        start_time = datetime.now()

        try:
            result = await func(*args, **kwargs)
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"<- Exiting {func_name} (Duration: {duration:.3f}s)")
            return result

        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"<- Error in {func_name} after {duration:.3f}s: {e}")
            raise

    return wrapper


## Module-level LogManager Instance and Helper Functions

_log_manager: Optional[LogManager] = None


def init_logging(
    log_level: str = "INFO", log_to_file: bool = True, log_dir: Optional[Path] = None
) -> LogManager:
    """Initialize logging system and return LogManager instance.

    Calling it again reconfigures the existing manager, so an entry point can
    apply settings after modules have already fetched their loggers.
    """

    global _log_manager

    if _log_manager is None:
        _log_manager = LogManager(log_level, log_to_file=log_to_file, log_dir=log_dir)
    else:
        if log_dir is not None:
            _log_manager.log_dir = log_dir
        _log_manager.configure(log_level, log_to_file)

    return _log_manager


def get_logger(
    name: Optional[str] = None, **context
) -> logging.Logger | ContextAdapter:
    """Get a logger instance with optional context."""

    global _log_manager
    if _log_manager is None:
        _log_manager = init_logging()

    return _log_manager.get_logger(name, **context)


def log_event(event_type: str, message, **extra):
    """Log an event with specific type and extra context (module-level wrapper)."""

    global _log_manager
    if _log_manager is None:
        _log_manager = init_logging()

    if isinstance(message, dict):
        extra.update(message)
        message = f"Event: {event_type}"

    return _log_manager.log_event(event_type, message, **extra)
