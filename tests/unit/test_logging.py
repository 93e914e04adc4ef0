"""
Logging Setup Tests.
"""

import logging

import pytest
from loguru import logger

from src.utils.logging import get_logger, setup_logging


@pytest.fixture
def captured():
    setup_logging(level="DEBUG")
    messages: list[str] = []
    sink_id = logger.add(messages.append, format="{level} {message}", level="DEBUG")
    yield messages
    logger.remove(sink_id)


@pytest.mark.unit
class TestLogging:
    def test_stdlib_records_reach_loguru(self, captured):
        logging.getLogger("src.services.payments.reconciliation").warning("payment locked")

        assert any("WARNING payment locked" in m for m in captured)

    def test_bound_logger(self, captured):
        get_logger("src.api.main").info("starting")

        assert any("INFO starting" in m for m in captured)
