import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_fuzzpatch_handlers():
    yield
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_fuzzpatch_handler", False):
            root_logger.removeHandler(handler)
            handler.close()
    logging.getLogger("fuzzpatch").setLevel(logging.NOTSET)
