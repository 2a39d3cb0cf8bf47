"""Structured logging configuration using structlog."""

import logging
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, override

import structlog

REQUEST_LOGGER = "om_intel.request"
FILE_LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
_URL_SIGNATURE = re.compile(
    r"([?&](?:X-Amz-Signature|X-Amz-Credential|signature|sig|token)=)[^&\s\"']+",
    re.IGNORECASE,
)
_API_KEY = re.compile(r"\b(?:sk-|sk-ant-|AKIA)[A-Za-z0-9_-]{16,}\b")
_EMAIL = re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


def redact(text: str) -> str:
    """Hide presigned URL signatures, API keys and the local part of e-mails."""
    text = _URL_SIGNATURE.sub(r"\1***", text)
    text = _API_KEY.sub("***", text)
    return _EMAIL.sub(r"***@\2", text)


def redact_event(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: object URLs are presigned, never log them as-is."""
    for key, value in event_dict.items():
        if isinstance(value, str) and ("url" in key or "error" in key):
            event_dict[key] = redact(value)
    return event_dict


@dataclass(frozen=True)
class LogFile:
    filename: str
    level: int
    max_size_mb: int
    keep_days: int
    line_format: str = FILE_LINE_FORMAT


LOG_FILES = (
    LogFile("app.log", logging.DEBUG, max_size_mb=10, keep_days=30),
    LogFile("error.log", logging.ERROR, max_size_mb=5, keep_days=60),
)
REQUEST_LOG = LogFile(
    "request.log", logging.INFO, max_size_mb=20, keep_days=7, line_format="%(asctime)s | %(message)s"
)


class PlainTextFileHandler(logging.Handler):
    """Appends colourless lines to a file, rotating it by size and age."""

    def __init__(self, path: Path, max_size_mb: int, keep_days: int):
        super().__init__()
        self.path = path
        self.max_bytes = max_size_mb * 1024 * 1024
        self.keep_days = keep_days

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = _ANSI_ESCAPE.sub("", self.format(record))
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
            if self.path.stat().st_size > self.max_bytes:
                self._rotate()
        except Exception:
            self.handleError(record)

    def _rotate(self) -> None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.path.rename(self.path.with_suffix(f".{stamp}.log"))

        cutoff = datetime.now() - timedelta(days=self.keep_days)
        for rotated in self.path.parent.glob(f"{self.path.stem}.*.log"):
            try:
                created = datetime.strptime(rotated.stem.rsplit(".", 1)[-1], "%Y%m%d_%H%M%S")
            except ValueError:
                continue
            if created < cutoff:
                rotated.unlink(missing_ok=True)


def _file_handler(log_dir: Path, log_file: LogFile) -> PlainTextFileHandler:
    handler = PlainTextFileHandler(
        log_dir / log_file.filename, log_file.max_size_mb, log_file.keep_days
    )
    handler.setLevel(log_file.level)
    handler.setFormatter(logging.Formatter(log_file.line_format, datefmt=TIMESTAMP_FORMAT))
    return handler


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    log_to_file: bool = True,
    log_dir: str | Path = "logs",
) -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines when True, coloured console output otherwise
        log_to_file: Also write ``app.log``, ``error.log`` and ``request.log``
        log_dir: Directory for the log files
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console)

    request_logger = logging.getLogger(REQUEST_LOGGER)
    request_logger.handlers.clear()
    request_logger.setLevel(logging.INFO)
    request_logger.propagate = not log_to_file

    if log_to_file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        for log_file in LOG_FILES:
            root_logger.addHandler(_file_handler(directory, log_file))
        request_logger.addHandler(_file_handler(directory, REQUEST_LOG))

    # Quiet chatty client libraries
    for name in ("httpx", "httpcore", "pdfminer"):
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt=TIMESTAMP_FORMAT),
        redact_event,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


def log_request(
    method: str,
    path: str,
    request_id: str | None = None,
    document_id: str | None = None,
    user_message: str | None = None,
    duration_ms: float | None = None,
    status_code: int | None = None,
    error_code: str | None = None,
) -> None:
    """One line per API call in ``request.log``.

    The user message is cut to 300 characters and redacted.
    """
    fields = [f"[{method}] {path}"]
    if request_id:
        fields.append(f"rid={request_id}")
    if document_id:
        fields.append(f"doc={document_id}")
    if status_code is not None:
        fields.append(f"status={status_code}")
    if duration_ms is not None:
        fields.append(f"took={duration_ms:.0f}ms")
    if error_code:
        fields.append(f"error={error_code}")
    if user_message:
        snippet = user_message if len(user_message) <= 300 else user_message[:300] + "..."
        fields.append(f'q="{redact(snippet)}"')

    logging.getLogger(REQUEST_LOGGER).info(" ".join(fields))
