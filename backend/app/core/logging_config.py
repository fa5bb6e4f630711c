"""
Structured logging for the order widget backend

Records go to stdout and, optionally, a rotating file, as JSON or plain text.
Request context set by LoggingContextMiddleware is merged into every JSON record,
payment secrets and LOA payloads are masked before anything is written, and
records are counted per level.
"""
import json
import logging
import re
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.core.config import Settings, get_settings

request_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("request_context", default=None)

ROTATION_SCHEDULES = ("midnight", "W0", "W1", "W2", "W3", "W4", "W5", "W6")

# Attributes every LogRecord has; everything else arrived through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class SensitiveDataFilter(logging.Filter):
    """Masks credentials, card tokens and base64 LOA payloads"""

    KEY_VALUE_PATTERN = re.compile(
        r"(?P<key>[\w-]*(?:password|secret|api[_-]?key|token|cvv|card_?number|routing_number|account_number))"
        r"(?P<sep>[\"']?\s*[:=]\s*[\"']?)[^\"'\s&,}]+",
        re.IGNORECASE,
    )
    AUTH_HEADER_PATTERN = re.compile(r"\b(Bearer|Basic)\s+[^\s\"]+", re.IGNORECASE)

    SECRET_FIELDS = frozenset({
        "password", "secret_key", "auth_token", "stripe_token", "card_token", "cvv", "CreditCardNumber",
    })
    # Large base64 blobs are replaced by their size
    PAYLOAD_FIELDS = frozenset({"loa_html", "utility_bill_base64", "signature", "pdf", "attachment"})

    def __init__(self, enabled: bool = True):
        super().__init__()
        self.enabled = enabled

    def mask(self, text: str) -> str:
        text = self.KEY_VALUE_PATTERN.sub(r"\g<key>\g<sep>***", text)
        return self.AUTH_HEADER_PATTERN.sub(r"\1 ***", text)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.enabled:
            return True

        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self.mask(arg) if isinstance(arg, str) else arg for arg in record.args)

        for key, value in list(record.__dict__.items()):
            if key in self.SECRET_FIELDS:
                setattr(record, key, "***")
            elif key in self.PAYLOAD_FIELDS and value:
                setattr(record, key, f"<{len(str(value))} chars>")

        return True


class ContextualFormatter(logging.Formatter):
    """One JSON object per record: base fields, request context, then extra= fields"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        entry.update(request_context.get() or {})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                entry[key] = value

        return json.dumps(entry, ensure_ascii=False, default=str)


class LoggingConfig:
    """Process-wide logging setup; configured on first get_logger() call"""

    _configured = False
    _module_levels: Dict[str, str] = {}
    _counts: Dict[str, int] = {level: 0 for level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")}

    class _CountingHandler(logging.Handler):
        def emit(self, record: logging.LogRecord):
            if record.levelname in LoggingConfig._counts:
                LoggingConfig._counts[record.levelname] += 1

    @staticmethod
    def _resolve_levels(settings: Settings, overrides: Optional[Dict[str, str]]) -> Dict[str, str]:
        levels = {
            "root": settings.log_level,
            "app": settings.log_level,
            "httpx": "WARNING",
            "httpcore": "WARNING",
            "xhtml2pdf": "WARNING",
            "uvicorn.error": "INFO",
            "uvicorn.access": "INFO" if settings.log_uvicorn_access else "WARNING",
        }
        if settings.log_module_levels:
            try:
                levels.update(json.loads(settings.log_module_levels))
            except (json.JSONDecodeError, TypeError):
                print(f"Ignoring invalid LOG_MODULE_LEVELS: {settings.log_module_levels!r}", file=sys.stderr)
        levels.update(overrides or {})
        return levels

    @staticmethod
    def _build_handlers(settings: Settings) -> List[logging.Handler]:
        if settings.log_format.lower() == "json":
            formatter: logging.Formatter = ContextualFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            )

        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

        if settings.log_file_enabled:
            log_path = Path(settings.log_file_path)
            if not log_path.is_absolute():
                log_path = settings.project_root / log_path
            log_path.parent.mkdir(parents=True, exist_ok=True)
            when = settings.log_file_rotation if settings.log_file_rotation in ROTATION_SCHEDULES else "midnight"
            handlers.append(TimedRotatingFileHandler(
                filename=str(log_path),
                when=when,
                backupCount=settings.log_file_retention,
                encoding="utf-8",
            ))

        masking = SensitiveDataFilter(enabled=not settings.log_sensitive_data)
        for handler in handlers:
            handler.setFormatter(formatter)
            handler.addFilter(masking)
        return handlers

    @classmethod
    def configure(cls, module_levels: Optional[Dict[str, str]] = None):
        """Install handlers and module levels once per process"""
        if cls._configured:
            return

        settings = get_settings()
        levels = cls._resolve_levels(settings, module_levels)

        logging.basicConfig(
            level=levels["root"].upper(),
            handlers=cls._build_handlers(settings),
            force=True
        )
        for module, level in levels.items():
            if module == "root":
                continue
            module_logger = logging.getLogger(module)
            module_logger.setLevel(level.upper())
            if module.startswith("uvicorn"):
                module_logger.propagate = False

        logging.getLogger().addHandler(cls._CountingHandler(level=logging.DEBUG))
        cls._module_levels = levels
        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._configured:
            cls.configure()
        return logging.getLogger(name)

    @classmethod
    def set_module_level(cls, module: str, level: str):
        logging.getLogger(module).setLevel(level.upper())
        cls._module_levels[module] = level

    @classmethod
    def get_module_level(cls, module: str) -> str:
        return logging.getLevelName(logging.getLogger(module).level)

    @classmethod
    def set_context(cls, **kwargs):
        """Attach fields to every record logged in the current request"""
        request_context.set({**(request_context.get() or {}), **kwargs})

    @classmethod
    def clear_context(cls):
        request_context.set(None)

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        """Records emitted per level since start (or the last reset)"""
        return dict(cls._counts)

    @classmethod
    def reset_metrics(cls):
        cls._counts = {level: 0 for level in cls._counts}
