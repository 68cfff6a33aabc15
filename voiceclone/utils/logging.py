import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler


class LevelIconFilter(logging.Filter):
    """Adds a level icon to each record for console output."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            record.level_icon = "✖"
        elif record.levelno >= logging.WARNING:
            record.level_icon = "⚠"
        elif record.levelno >= logging.INFO:
            record.level_icon = "✔"
        else:
            record.level_icon = "ℹ"
        return True


class JsonlFormatter(logging.Formatter):
    """Structured JSONL formatter with a frozen key set."""

    KEYS = (
        "ts",
        "level",
        "name",
        "subsys",
        "event",
        "stage",
        "detail",
    )

    def format(self, record: logging.LogRecord) -> str:
        # Local time with millisecond precision
        ts = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .astimezone()
            .strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        )

        detail: Any = getattr(record, "detail", None)
        if detail is None:
            detail = record.getMessage()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "name": record.name,
            "subsys": getattr(record, "subsys", None),
            "event": getattr(record, "event", None),
            "stage": getattr(record, "stage", None),
            "detail": detail,
        }

        # Drop None keys; preserve order of KEYS
        obj = {k: payload[k] for k in self.KEYS if payload.get(k) is not None}
        return json.dumps(obj, ensure_ascii=False, default=str)


def init_logging(level: Optional[str] = None, jsonl_path: Optional[str] = None) -> None:
    """Configure logging: Rich console sink plus an optional JSONL file sink.

    ``level`` defaults to ``LOG_LEVEL`` (INFO); ``jsonl_path`` defaults to
    ``LOG_JSONL_PATH``. Without a JSONL path only the console sink is installed.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    jsonl_path = jsonl_path or os.getenv("LOG_JSONL_PATH", "").strip() or None

    pretty = RichHandler(
        rich_tracebacks=True,
        show_path=False,
        show_time=True,
        enable_link_path=False,
        log_time_format="%Y-%m-%d %H:%M:%S.%f",
    )
    pretty.set_name("pretty_handler")
    pretty.addFilter(LevelIconFilter())
    pretty.setFormatter(logging.Formatter(fmt="%(level_icon)s %(message)s"))
    handlers: list[logging.Handler] = [pretty]

    if jsonl_path:
        path = Path(jsonl_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        jsonl = logging.FileHandler(str(path), encoding="utf-8")
        jsonl.set_name("jsonl_handler")
        jsonl.setFormatter(JsonlFormatter())
        handlers.append(jsonl)

    logging.basicConfig(handlers=handlers, level=level, force=True, format="%(message)s")

    # jieba prints its dictionary build progress at DEBUG/INFO
    third_party_level = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING").upper()
    for name in ("jieba", "onnxruntime"):
        logging.getLogger(name).setLevel(third_party_level)

    logging.getLogger(__name__).debug(
        "Logging initialized (%s)", ", ".join(h.get_name() for h in handlers),
        extra={"subsys": "logging"},
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
