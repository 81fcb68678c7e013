import pytest

from patrolbot.moderation.text_rules import contains_user_mention, looks_like_reply_text


@pytest.mark.parametrize(
    "text",
    ["<@U123ABC> please check", "thanks <@W0XYZ>", "<@U1|alice> ok"],
)
def test_contains_user_mention_detects_tokens(text):
    assert contains_user_mention(text) is True


@pytest.mark.parametrize(
    "text",
    ["no mention here", "@alice plain text", "<#C123|general>", "<@u123>", "", None],
)
def test_contains_user_mention_rejects_other_text(text):
    assert contains_user_mention(text) is False


@pytest.mark.parametrize(
    "text",
    ["re: understood", "Re: please confirm", "  RE: test ", "<@U999> re: ok"],
)
def test_reply_marker_detected(text):
    assert looks_like_reply_text(text) is True


@pytest.mark.parametrize(
    "text",
    ["thanks for the reply", "reference value", "see re: above", "", None],
)
def test_reply_marker_not_detected(text):
    assert looks_like_reply_text(text) is False
