"""
GemFuse Utilities
==================

Small helpers shared across modules: run ids, canonical hashing,
logging setup, oracle-text cleanup and JSON files on disk.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
import time
import uuid
from pathlib import Path
from typing import Any


def new_run_id(prefix: str = "gemfuse") -> str:
    """
    Id stamped on every log line of one CLI invocation.

    Example: gemfuse-20250209-143022-a1b2c3d4
    """
    return f"{prefix}-{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


# ── Hashing ────────────────────────────────────────────────────────

def canonical_json(obj: Any) -> str:
    """Key-sorted JSON text; equal objects always give equal text."""
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, default=str)


def short_hash(data: str | bytes | dict, length: int = 16) -> str:
    """
    SHA-256 hex digest cut to `length` characters.

    Dicts are hashed through their canonical JSON form.
    """
    if isinstance(data, dict):
        data = canonical_json(data)
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:length]


def compute_content_hash(obj: Any) -> str:
    """Full SHA-256 of an object's canonical JSON."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


# ── Logging ────────────────────────────────────────────────────────

class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, tagged with the run id when given."""

    def __init__(self, run_id: str | None = None):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.run_id:
            entry["run_id"] = self.run_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    format_style: str = "text",
    run_id: str | None = None,
) -> logging.Logger:
    """
    Install a single stdout handler on the "gemfuse" logger.

    Module loggers ("gemfuse.fusion.engine", ...) inherit it. Calling
    this again replaces the handler instead of stacking a second one.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        format_style: "json" for machine-readable lines, "text" otherwise.
        run_id: Tag added to every line.
    """
    logger = logging.getLogger("gemfuse")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format_style == "json":
        handler.setFormatter(JsonLogFormatter(run_id))
    else:
        tag = f" | {run_id}" if run_id else ""
        handler.setFormatter(logging.Formatter(
            f"%(asctime)s | %(levelname)-8s{tag} | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        ))
    logger.addHandler(handler)
    return logger


# ── Text Helpers ───────────────────────────────────────────────────

def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace (including newlines) into one space."""
    return " ".join(text.split())


def strip_code_fence(text: str) -> str:
    """Drop a surrounding ```json ... ``` block if the model added one."""
    body = text.strip()
    if not body.startswith("```"):
        return body
    lines = body.splitlines()[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return "\n".join(lines).strip()


# ── JSON files ─────────────────────────────────────────────────────

def save_json(data: Any, path: str | Path, indent: int = 2) -> Path:
    """Write UTF-8 JSON, creating parent folders."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=indent, ensure_ascii=False, default=str), encoding="utf-8")
    return path


def load_json(path: str | Path) -> Any:
    """Read a UTF-8 JSON file."""
    return json.loads(Path(path).read_text(encoding="utf-8"))
