"""Tests for prompt templates."""

from correlator.ai.prompts import DEFAULT_MATCHING_CRITERIA, PersonalizationPrompt, SimilarityPrompt, has_criteria_sections


def test_default_criteria_has_both_sections():
    assert has_criteria_sections(DEFAULT_MATCHING_CRITERIA)


def test_sections_must_appear_in_order():
    assert not has_criteria_sections("Answer NO if:\n- x\nAnswer YES if:\n- y")
    assert not has_criteria_sections("Answer YES if:\n- only accepts")
    assert not has_criteria_sections(None)
    assert has_criteria_sections("answer yes if:\n- a\nanswer no if:\n- b")


def test_similarity_prompt_uses_unknown_brand():
    prompt = SimilarityPrompt(
        primary_title="Acme Speaker",
        candidate_asin="B0TESTSIM1",
        candidate_title="Acme Speaker Mini",
    ).to_prompt()

    assert "Brand: Unknown" in prompt
    assert "ASIN: B0TESTSIM1" in prompt
    assert prompt.endswith("Answer with ONLY: YES or NO")


def test_personalization_prompt_without_examples():
    prompt = PersonalizationPrompt(total=5, accepted_count=5, declined_count=0).to_prompt()

    assert "No examples yet" in prompt
    assert "Total decisions: 5" in prompt
