from __future__ import annotations

import logging
from io import StringIO

from bom_reconcile.logging.init import (
    LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)


def test_setup_logging_creates_single_stdout_handler():
    logger = setup_logging()
    assert logger.name == LOGGER_NAME == "bom_reconcile"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False
    # idempotent
    assert setup_logging() is logger
    assert len(logger.handlers) == 1


def test_labeled_prefixes():
    stream = StringIO()
    logger = logging.getLogger("test_bom_reconcile_labels")
    logger.setLevel(logging.INFO)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    logger.info("Test info message")
    logger.warning("Test warning message")
    logger.error("Test error message")
    logger.log(SUMMARY_LEVEL, "Test summary message")

    lines = stream.getvalue().strip().split("\n")
    assert lines == [
        "INFO Test info message",
        "WARN Test warning message",
        "ERROR Test error message",
        "SUMMARY Test summary message",
    ]


def test_module_loggers_share_the_package_handler(capsys):
    setup_logging()
    logging.getLogger("bom_reconcile.services.classifier").info("classified rows=1")
    log_summary("namespace=ACME rows=1")
    out = capsys.readouterr().out
    assert "INFO classified rows=1" in out
    assert "SUMMARY namespace=ACME rows=1" in out


def test_get_logger_and_reset():
    logger = get_logger()
    assert logger is setup_logging()
    reset_logging()
    assert logger.handlers == []
    assert logger.propagate is True
    assert get_logger() is not None
