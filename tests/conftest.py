import logging
import os
import textwrap
from unittest.mock import patch

import pytest

from ltf_translator.logging_config import LOGGER_NAME

SAMPLE_LTF_CONTENT = textwrap.dedent("""\
    LANGNAME: English
    GENDERS: 0
    BASESTRINGS: 0

    KEY-1: Board expects a top-half finish
    STR-1:
    KEY-2: Score [%num#1] goals [COMMENT: goal count]
    STR-1: Cetak [%num#1] gol
    KEY-3: Transfer budget adjusted
    STR-1:
""")


@pytest.fixture(scope="session", autouse=True)
def setup_global_test_environment():
    """
    Session-scoped, autouse fixture that keeps tests away from real credentials
    and lets caplog see records from the package logger.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    previous_propagate = package_logger.propagate
    package_logger.propagate = True
    with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-dummy-key-for-testing"}):
        yield
    package_logger.propagate = previous_propagate


@pytest.fixture
def sample_ltf_content():
    return SAMPLE_LTF_CONTENT


@pytest.fixture
def ltf_file(tmp_path, sample_ltf_content):
    """Write the sample document to a temporary .ltf file."""
    file_path = tmp_path / "match.ltf"
    file_path.write_text(sample_ltf_content, encoding="utf-8")
    return str(file_path)
