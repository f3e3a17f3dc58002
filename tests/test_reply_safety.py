"""Tests for the customer-facing reply safety filter."""

import pytest

from replyflow.services.qualifiers.golden_visa import GoldenVisaQualifier, STEP_CATEGORY
from replyflow.services.qualifiers.safety import (
    apply_reply_safety,
    contains_denylisted,
    limit_to_one_question,
    strip_denylisted,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Your visa is guaranteed. We reply fast.", "Your visa is. We reply fast."),
        ("Approval guaranteed within a week", "within a week"),
        ("We are 100% sure.", "We are sure."),
        ("We have an Inside Contact at immigration.", "We have an at immigration."),
    ],
)
def test_strip_denylisted(text, expected):
    cleaned = strip_denylisted(text)

    assert cleaned == expected
    assert not contains_denylisted(cleaned)


def test_denylist_matches_whole_words_only():
    assert not contains_denylisted("This outcome is unguaranteed.")
    assert contains_denylisted("There is NO RISK at all")


def test_limit_to_one_question_keeps_the_first():
    text = "Which visa do you need? When do you travel? Thanks."

    assert limit_to_one_question(text) == "Which visa do you need? Thanks."


def test_limit_to_one_question_across_lines():
    assert limit_to_one_question("Hello!\nWhich visa?\nAnd when?") == "Hello!\nWhich visa?"


def test_apply_reply_safety_combines_both_filters():
    reply = apply_reply_safety("Which visa? Approval is 100% certain. Where do you live?")

    assert reply == "Which visa? Approval is certain."


def test_numbered_options_survive_the_filter():
    qualifier = GoldenVisaQualifier()
    question = qualifier.question_text(STEP_CATEGORY, qualifier.state_model())

    assert apply_reply_safety(question) == question
