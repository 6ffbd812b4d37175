"""Custom logging -- shorten absolute paths to relative in log output."""

from __future__ import annotations

import logging
import traceback
from pathlib import Path

_DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def _shorten_path(text: str, root_normalized: str) -> str:
    """Replace backend-absolute paths with relative ones in a string."""
    if not text or not root_normalized:
        return text
    normalized = text.replace("\\", "/")
    if root_normalized not in normalized:
        return text
    return normalized.replace(root_normalized + "/", "").replace(root_normalized, ".")


def _detect_backend_root() -> Path:
    # beautycache/infra/logging_config.py -> backend/
    return Path(__file__).resolve().parent.parent.parent


class ShortPathFormatter(logging.Formatter):

    def __init__(self, *args, backend_root: Path | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.backend_root = backend_root or _detect_backend_root()
        self._root_norm = str(self.backend_root).replace("\\", "/")

    def _shorten(self, text: str) -> str:
        return _shorten_path(text, self._root_norm)

    def _shorten_logger_name(self, name: str) -> str:
        if name == "uvicorn.error":
            return "uvicorn"
        if name.startswith(("beautycache.", "apscheduler")):
            return name
        if "." in name:
            return ".".join(name.split(".")[-2:])
        return name

    def format(self, record: logging.LogRecord) -> str:
        original_name = record.name
        record.name = self._shorten_logger_name(record.name)
        try:
            message = self._shorten(super().format(record))
        finally:
            record.name = original_name
        return message

    def formatException(self, ei) -> str:
        return "".join(self._shorten(line) for line in traceback.format_exception(*ei))


def configure_logging(
    formatter: logging.Formatter | None = None,
    *,
    level: int | None = None,
) -> None:
    if formatter is None:
        formatter = ShortPathFormatter(_DEFAULT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    if level is not None:
        root.setLevel(level)

    # uvicorn has its own handlers -- override them
    for name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.addHandler(handler)
        lg.propagate = False
