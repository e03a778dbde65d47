"""``event key=value`` logging shared by the search pipeline and the key-value service."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

ROOT = "propsearch"
FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def quote_value(value: Any) -> str:
    """Render one value so it stays a single token after ``key=``."""

    text = str(value)
    if text and not any(ch.isspace() or ch in '="' for ch in text):
        return text
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'


class KeyValueFormatter(logging.Formatter):
    """Quotes ``%s`` arguments so locations, URLs and error texts do not split pairs."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.args, tuple) and record.args:
            record = logging.makeLogRecord(record.__dict__)
            record.args = tuple(quote_value(arg) for arg in record.args)
        return super().format(record)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach the stream handler to the ``propsearch`` logger once and (re)apply the level.

    The level defaults to ``LOG_LEVEL`` from the environment, read at call time.
    """

    logger = logging.getLogger(ROOT)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(KeyValueFormatter(fmt=FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    return logger


def get_logger(component: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger(ROOT)
    if not root.handlers:
        configure_logging()
    return root.getChild(component) if component else root


__all__ = ["KeyValueFormatter", "configure_logging", "get_logger", "quote_value"]
