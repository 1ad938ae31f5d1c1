"""
Logging configuration for azmap.

The CLI, the scene controller and the API all log through the `azmap` logger;
library modules use `logging.getLogger(__name__)` and never attach handlers.

Handlers carry no level of their own. Filtering happens on the loggers, so
`project.log_levels` can turn one module up to DEBUG (for example
`geometry.map_data` while tuning the split threshold) without flooding the
output with every other module's debug lines.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

ROOT_LOGGER = "azmap"
LOG_FILENAME = "azmap.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_level(level: str | int) -> int:
    """Turn "info" / "DEBUG" / 10 into a logging level, rejecting unknown names."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    # getLevelName maps unknown names to the string "Level <name>".
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def _module_logger_name(name: str) -> str:
    # Accept both "geometry.map_data" and "azmap.geometry.map_data".
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def _sync_handlers(logger: logging.Logger, log_path: Path) -> None:
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    stream_handlers = [
        h for h in logger.handlers if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]

    if not stream_handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(fmt)
        logger.addHandler(stream)

    # A second bootstrap with another logs_dir (tests, a different config) moves the file.
    target = os.path.abspath(log_path)
    for handler in file_handlers:
        if handler.baseFilename != target:
            logger.removeHandler(handler)
            handler.close()
    if not any(h.baseFilename == target for h in logger.handlers if isinstance(h, logging.FileHandler)):
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)


def configure_logging(
    log_dir: Path,
    level: str | int = "INFO",
    module_levels: Mapping[str, str | int] | None = None,
) -> logging.Logger:
    """
    Configure the `azmap` logger: stderr plus `<log_dir>/azmap.log`.

    Safe to call repeatedly: handlers are reused and the `azmap` level
    follows the latest call. Module levels stay set until overridden.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(parse_level(level))
    # Keep azmap output out of the root logger (and out of uvicorn's handlers).
    logger.propagate = False
    _sync_handlers(logger, log_dir / LOG_FILENAME)

    for name, module_level in (module_levels or {}).items():
        logging.getLogger(_module_logger_name(name)).setLevel(parse_level(module_level))

    return logger
