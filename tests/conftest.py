"""
Shared fixtures for the pipeline test suite.

The language model is always mocked; no test makes a network call.
"""

from unittest.mock import AsyncMock

import pytest

from catalai.config import OverridePolicy
from catalai.schemas.classification import RawClassification, TransformationCategory
from catalai.services.interview_controller import InterviewController, InterviewLimits
from catalai.services.llm_client import DegenerateResponseDetector
from catalai.services.rule_engine import RuleEngine
from tests.samples import classification_json

DEGENERATE_PATTERNS = [
    r"^\s*$",
    r"^\s*clarification\s+\d+\s*$",
    r"^\s*question\s+\d+\s*$",
]


@pytest.fixture
def degenerate():
    return DegenerateResponseDetector(DEGENERATE_PATTERNS)


@pytest.fixture
def controller():
    return InterviewController(InterviewLimits())


@pytest.fixture
def engine():
    return RuleEngine(OverridePolicy.LAST_WINS)


@pytest.fixture
def mock_llm():
    """A TextGenerator whose ``chat`` is an AsyncMock."""
    llm = AsyncMock()
    llm.chat = AsyncMock(return_value=classification_json())
    return llm


@pytest.fixture
def rpa_classification():
    return RawClassification(
        category=TransformationCategory.RPA,
        confidence=0.8,
        rationale="Repetitive rule-based work",
    )
