"""
Unit tests for the Attribute Extractor.

Every required attribute must come back on every call, whatever the
model returns.
"""

import json

import pytest

from catalai.exceptions import LLMError
from catalai.schemas.extraction import UNKNOWN
from catalai.services.attribute_extraction import (
    FAILED_EXPLANATION,
    MISSING_EXPLANATION,
    REQUIRED_ATTRIBUTES,
    AttributeExtractor,
)
from tests.samples import GOOD_DESCRIPTION, make_turns


@pytest.fixture
def extractor(mock_llm, degenerate):
    return AttributeExtractor(mock_llm, degenerate=degenerate)


def _nested(**values) -> str:
    return json.dumps({k: {"value": v, "explanation": f"Stated {k}"} for k, v in values.items()})


class TestExtract:

    @pytest.mark.asyncio
    async def test_full_response(self, extractor, mock_llm):
        mock_llm.chat.return_value = _nested(**{name: "low" for name in REQUIRED_ATTRIBUTES})

        result = await extractor.extract(GOOD_DESCRIPTION, make_turns(2))

        assert set(result.attributes) == set(REQUIRED_ATTRIBUTES)
        assert result.unresolved == []
        assert result.extraction_error is None
        assert result["risk"].explanation == "Stated risk"

    @pytest.mark.asyncio
    async def test_partial_response_fills_sentinel(self, extractor, mock_llm):
        mock_llm.chat.return_value = _nested(frequency="daily", user_count="1-5")

        result = await extractor.extract(GOOD_DESCRIPTION)

        assert set(REQUIRED_ATTRIBUTES) <= set(result.attributes)
        assert result["frequency"].value == "daily"
        assert result["risk"].value == UNKNOWN
        assert result["risk"].explanation == MISSING_EXPLANATION
        assert "risk" in result.unresolved
        assert "frequency" not in result.unresolved

    @pytest.mark.asyncio
    async def test_empty_object_gives_all_sentinels(self, extractor, mock_llm):
        mock_llm.chat.return_value = "{}"

        result = await extractor.extract(GOOD_DESCRIPTION)

        assert sorted(result.unresolved) == sorted(REQUIRED_ATTRIBUTES)
        assert result.extraction_error is None

    @pytest.mark.asyncio
    async def test_failed_call_raises(self, extractor, mock_llm):
        mock_llm.chat.side_effect = LLMError("Language model request timed out")

        with pytest.raises(LLMError, match="timed out"):
            await extractor.extract(GOOD_DESCRIPTION)

    @pytest.mark.asyncio
    async def test_http_error_raises(self, extractor, mock_llm):
        mock_llm.chat.side_effect = LLMError("Language model returned HTTP 503", status_code=503)

        with pytest.raises(LLMError) as exc_info:
            await extractor.extract(GOOD_DESCRIPTION)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_unparseable_response_is_contained(self, extractor, mock_llm):
        mock_llm.chat.return_value = "Clarification 3"

        result = await extractor.extract(GOOD_DESCRIPTION)

        assert sorted(result.unresolved) == sorted(REQUIRED_ATTRIBUTES)
        assert result["frequency"].explanation == FAILED_EXPLANATION
        assert result.extraction_error is not None

    @pytest.mark.asyncio
    async def test_transcript_in_prompt(self, extractor, mock_llm):
        mock_llm.chat.return_value = "{}"
        transcript = make_turns(1, answer="Every Monday")

        await extractor.extract(GOOD_DESCRIPTION, transcript)

        prompt = mock_llm.chat.await_args.args[0][1].content
        assert "Conversation History:" in prompt
        assert "A: Every Monday" in prompt


class TestResolve:

    def test_aliases(self, extractor):
        attrs = extractor.resolve({
            "judgement_required": {"value": "yes", "explanation": "Needs review"},
            "blockers": "legacy ERP",
        })
        assert attrs["judgment_required"].value == "yes"
        assert attrs["judgment_required"].explanation == "Needs review"
        assert attrs["risks_constraints"].value == "legacy ERP"
        assert attrs["risks_constraints"].explanation == "Extracted via alias"
        assert "judgement_required" not in attrs
        assert "blockers" not in attrs

    def test_canonical_key_beats_alias(self, extractor):
        attrs = extractor.resolve({"business_value": "high", "impact": "low"})
        assert attrs["business_value"].value == "high"
        assert attrs["impact"].value == "low"

    def test_flat_values(self, extractor):
        attrs = extractor.resolve({"frequency": "weekly", "user_count": 12})
        assert attrs["frequency"].value == "weekly"
        assert attrs["frequency"].explanation == "Extracted from conversation (flat format)"
        assert attrs["user_count"].value == 12

    def test_extra_keys_kept(self, extractor):
        attrs = extractor.resolve({"region": {"value": "EMEA"}})
        assert attrs["region"].value == "EMEA"

    @pytest.mark.parametrize("raw", [None, "", "   ", {"value": None}, {"value": ["a"]}, ["daily"]])
    def test_unusable_values_become_sentinel(self, extractor, raw):
        attrs = extractor.resolve({"frequency": raw})
        assert attrs["frequency"].value == UNKNOWN

    def test_custom_required_list(self, mock_llm):
        extractor = AttributeExtractor(mock_llm, required=("frequency",), aliases={})
        attrs = extractor.resolve({})
        assert list(attrs) == ["frequency"]
