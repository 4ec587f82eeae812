"""Tests for keyword tagging with stemming."""

from __future__ import annotations

from supportflow.classifiers.tagging import analyze_tags, stem_tokens


class TestAnalyzeTags:
    def test_no_keywords_yields_other(self):
        result = analyze_tags("", "zzz qqq")
        assert result.tags == ["other"]
        assert result.primary_tag == "other"

    def test_empty_text_yields_other(self):
        result = analyze_tags("", "")
        assert result.tags == ["other"]

    def test_mixed_request_complaint_billing(self):
        result = analyze_tags("", "URGENT please help me ASAP, this is a complaint about billing charges")
        assert set(result.tags) == {"request", "complaint", "billing"}
        assert result.primary_tag == "billing"

    def test_stemmed_token_matches(self):
        # "crashes" stems to "crash"
        result = analyze_tags("App crashes", "It crashes every time")
        assert "technical_issue" in result.tags
        assert result.primary_tag == "technical_issue"

    def test_subject_is_considered(self):
        result = analyze_tags("Invoice", "see attached")
        assert result.tags == ["billing"]

    def test_tags_are_unique_and_in_category_order(self):
        result = analyze_tags("", "please refund, the payment was wrong")
        assert len(result.tags) == len(set(result.tags))
        order = ["question", "request", "complaint", "compliment", "feedback", "technical_issue", "billing"]
        assert result.tags == [t for t in order if t in result.tags]

    def test_primary_tie_goes_to_first_category(self):
        # "bug" (technical) and "refund" (billing) score the same
        result = analyze_tags("", "bug refund")
        assert result.scores["technical_issue"] == result.scores["billing"]
        assert result.primary_tag == "technical_issue"

    def test_primary_is_among_tags(self):
        result = analyze_tags("Thanks", "great support, thank you")
        assert result.primary_tag in result.tags
        assert result.primary_tag == "compliment"


def test_stem_tokens_lowercases():
    assert stem_tokens("Charges BILLING") == {"charg", "bill"}
