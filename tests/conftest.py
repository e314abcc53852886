import logging

import pytest
import structlog

from etch.logging_setup import ETCH_LOGGER_NAME, configure_library_logging


@pytest.fixture(autouse=True)
def library_logging():
    """Puts structlog back to the library default after tests that configure CLI logging."""
    yield
    etch_logger = logging.getLogger(ETCH_LOGGER_NAME)
    etch_logger.handlers.clear()
    etch_logger.setLevel(logging.NOTSET)
    etch_logger.propagate = True
    structlog.reset_defaults()
    configure_library_logging()
