"""
Unit tests for the Clarification Service.
"""

import json

import pytest

from catalai.exceptions import MalformedResponseError
from catalai.services.clarification import ClarificationService
from tests.samples import POOR_DESCRIPTION


def _questions(*texts: str) -> str:
    return json.dumps({"questions": [{"question": t, "purpose": "frequency"} for t in texts]})


@pytest.fixture
def service(mock_llm, controller, degenerate):
    return ClarificationService(mock_llm, controller, degenerate)


@pytest.mark.asyncio
async def test_generates_questions(service, mock_llm, rpa_classification):
    mock_llm.chat.return_value = _questions("How often does this run?", "Who runs it?")

    questions = await service.generate_questions(POOR_DESCRIPTION, rpa_classification, [], budget=3)

    assert [q.question for q in questions] == ["How often does this run?", "Who runs it?"]
    assert questions[0].purpose == "frequency"
    prompt = mock_llm.chat.await_args.args[0][1].content
    assert "Generate at most 3 clarifying question(s)." in prompt
    assert "- Confidence: 0.80" in prompt


@pytest.mark.asyncio
async def test_trims_to_budget(service, mock_llm, rpa_classification):
    mock_llm.chat.return_value = _questions("One?", "Two?", "Three?")

    questions = await service.generate_questions(POOR_DESCRIPTION, rpa_classification, [], budget=1)
    assert [q.question for q in questions] == ["One?"]


@pytest.mark.asyncio
async def test_zero_budget_skips_the_call(service, mock_llm, rpa_classification):
    questions = await service.generate_questions(POOR_DESCRIPTION, rpa_classification, [], budget=0)

    assert questions == []
    mock_llm.chat.assert_not_awaited()


@pytest.mark.asyncio
async def test_explicit_empty_list(service, mock_llm, rpa_classification):
    mock_llm.chat.return_value = json.dumps({"questions": []})

    assert await service.generate_questions(POOR_DESCRIPTION, rpa_classification, [], budget=2) == []


def test_bare_array_accepted(service):
    questions = service.parse_response('[{"question": "How many users?"}]', budget=3)
    assert questions[0].question == "How many users?"
    assert questions[0].purpose == "General clarification"


def test_blank_and_malformed_items_skipped(service):
    content = json.dumps({"questions": [{"question": "   "}, "not an object", {"question": "Which systems?"}]})
    assert [q.question for q in service.parse_response(content, budget=3)] == ["Which systems?"]


def test_only_unusable_items_raise(service):
    with pytest.raises(MalformedResponseError, match="No usable questions"):
        service.parse_response(json.dumps({"questions": [{"question": ""}]}), budget=3)


def test_missing_questions_key_raises(service):
    with pytest.raises(MalformedResponseError):
        service.parse_response(json.dumps({"items": []}), budget=3)


def test_degenerate_output_raises(service):
    with pytest.raises(MalformedResponseError):
        service.parse_response("Question 4", budget=3)
