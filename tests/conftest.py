import logging

import pytest

from codegen_cli.logging_utils import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_codegen_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
