import logging

import pytest

from arch_graph.collaborators import RecordingView
from arch_graph.logging_config import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_project_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_arch_graph", False):
            logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture(autouse=True)
def no_openai_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
