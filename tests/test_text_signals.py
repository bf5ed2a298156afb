"""
Unit tests for the textual signal detectors and text-quality heuristic.
"""

import pytest

from catalai.schemas.classification import TextQuality
from catalai.services.text_signals import (
    COMPLETENESS_DETECTORS,
    assess_text_quality,
    detected_signals,
    extract_key_facts,
    information_score,
    word_count,
)
from tests.samples import GOOD_DESCRIPTION, MARGINAL_DESCRIPTION, POOR_DESCRIPTION


def test_good_description_scores_all_signals():
    assert word_count(GOOD_DESCRIPTION) == 61
    assert information_score(GOOD_DESCRIPTION) == 5
    assert assess_text_quality(GOOD_DESCRIPTION) == TextQuality.GOOD


def test_short_description_is_poor():
    assert assess_text_quality(POOR_DESCRIPTION) == TextQuality.POOR


def test_twenty_words_with_two_signals_is_marginal():
    assert word_count(MARGINAL_DESCRIPTION) == 20
    assert sorted(detected_signals(MARGINAL_DESCRIPTION)) == ["current_state", "frequency"]
    assert assess_text_quality(MARGINAL_DESCRIPTION) == TextQuality.MARGINAL


def test_nineteen_words_is_poor_regardless_of_signals():
    text = " ".join(MARGINAL_DESCRIPTION.split()[1:])
    assert word_count(text) == 19
    assert assess_text_quality(text) == TextQuality.POOR


def test_long_description_with_one_signal_is_poor():
    text = " ".join(["lorem"] * 60 + ["daily"])
    assert information_score(text) == 1
    assert assess_text_quality(text) == TextQuality.POOR


def test_long_description_with_two_signals_is_marginal():
    text = " ".join(["lorem"] * 60 + ["daily", "spreadsheet"])
    assert assess_text_quality(text) == TextQuality.MARGINAL


def test_completeness_detectors_include_data_source():
    assert "data_source" in detected_signals(GOOD_DESCRIPTION, COMPLETENESS_DETECTORS)
    assert len(detected_signals(GOOD_DESCRIPTION, COMPLETENESS_DETECTORS)) == 6


def test_detection_is_case_insensitive():
    assert detected_signals("WEEKLY") == ["frequency"]


@pytest.mark.parametrize("answers, expected", [
    (["We run it daily"], "Process frequency: daily"),
    (["about 200 invoices a month"], "Scale: 200 invoices"),
    (["mostly in Excel"], "Current state: Manual/paper-based process"),
    (["it lives in the CRM system"], "Current state: Digital/system-based"),
    (["there are 12 steps"], "Process complexity: 12 steps"),
    (["we use 3 systems"], "Systems involved: 3 systems"),
    (["it is slow"], "Pain point: Time-consuming process"),
    (["lots of mistakes"], "Pain point: Error-prone"),
    (["this is critical for payroll"], "Business value: High/Critical"),
    (["contains personal data"], "Data sensitivity: High"),
])
def test_extract_key_facts(answers, expected):
    assert expected in extract_key_facts(answers)


def test_extract_key_facts_empty_when_nothing_matches():
    assert extract_key_facts(["no idea", "maybe"]) == []
