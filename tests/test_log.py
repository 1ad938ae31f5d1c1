import logging
from pathlib import Path

import pytest

from azmap.log import configure_logging, parse_level


def test_parse_level() -> None:
    assert parse_level("info") == logging.INFO
    assert parse_level(" DEBUG ") == logging.DEBUG
    assert parse_level(30) == logging.WARNING
    with pytest.raises(ValueError, match="Unknown log level"):
        parse_level("chatty")


def test_module_levels_and_repeat_bootstrap(tmp_path: Path) -> None:
    logger = configure_logging(tmp_path / "a", level="warning", module_levels={"geometry.map_data": "debug"})
    assert logger.level == logging.WARNING
    assert not logger.propagate
    assert logging.getLogger("azmap.geometry.map_data").level == logging.DEBUG

    logging.getLogger("azmap.geometry.map_data").debug("split tuning")
    logging.getLogger("azmap.scene").debug("hidden")

    # Bootstrapping again moves the log file and keeps one handler of each kind.
    configure_logging(tmp_path / "b", level="INFO", module_levels={"azmap.scene": "ERROR"})
    files = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    assert len(files) == 1
    assert files[0].baseFilename == str(tmp_path / "b" / "azmap.log")
    assert len(logger.handlers) == 2
    assert logger.level == logging.INFO
    assert logging.getLogger("azmap.scene").level == logging.ERROR

    text = (tmp_path / "a" / "azmap.log").read_text(encoding="utf-8")
    assert "split tuning" in text
    assert "hidden" not in text

    for name in ("azmap.geometry.map_data", "azmap.scene"):
        logging.getLogger(name).setLevel(logging.NOTSET)
