import pytest

from dialogcast.pipeline.processors.markup import (
    format_turn,
    narration_char_spans,
    to_narration,
    to_synthesizable,
)
from dialogcast.pipeline.processors.markup.ssml import cleanup, strip_tags
from dialogcast.schema.types import (
    DEFAULT_TIMING,
    DialogueTurn,
    IntentType,
    TimingDecision,
    TurnModifiers,
)

DECISIONS = [
    DEFAULT_TIMING,
    TimingDecision(pre_pause=0.6, post_pause=0.4, pace=1.2, emotional_tone="excited"),
    TimingDecision(pre_pause=0.0, post_pause=1.0, pace=0.8, emotional_tone="sad", intent_type=IntentType.QUESTION),
    TimingDecision(pre_pause=1.5, post_pause=0.3, pace=1.0, natural_breaks=(0.3,), intent_type=IntentType.EXCLAMATION),
]

TEXTS = [
    "Hello there!",
    "Well, I think... maybe; we could try -- or not?",
    "Fish & chips <cheap> for 'everyone'.",
    "  spaced   out\ttext  ",
    "one, two, three, four, five, six, seven, eight.",
    "Wait… what",
]


@pytest.mark.parametrize("decision", DECISIONS)
@pytest.mark.parametrize("text", TEXTS)
def test_narration_round_trip(text, decision):
    markup = to_synthesizable(text, decision)
    assert to_narration(markup) == " ".join(text.split())


def test_punctuation_breaks_without_pauses():
    markup = to_synthesizable("Hello, world. Ok", DEFAULT_TIMING)
    assert markup == (
        '<prosody volume="+0dB" pitch="medium" rate="100%">'
        'Hello,<break time="0.2s"/> world.<break time="0.5s"/> Ok'
        "</prosody>"
    )


def test_pre_and_post_pause_breaks():
    decision = TimingDecision(pre_pause=0.6, post_pause=0.45, pace=1.0)
    markup = to_synthesizable("Right", decision)
    assert markup.startswith('<break time="0.6s"/><prosody')
    assert markup.endswith('</prosody><break time="0.45s"/>')

    quiet = TimingDecision(pre_pause=0.29, post_pause=0.2, pace=1.0)
    assert "<break" not in to_synthesizable("Right", quiet)


def test_break_durations_by_punctuation():
    markup = to_synthesizable("A? B! C… D... E", DEFAULT_TIMING)
    assert 'A?<break time="0.5s"/>' in markup
    assert 'B!<break time="0.5s"/>' in markup
    assert 'C…<break time="1s"/>' in markup
    assert 'D...<break time="1s"/>' in markup


def test_break_cap_drops_extra_breaks():
    decision = TimingDecision(pre_pause=0.5, post_pause=0.5, pace=1.0)
    markup = to_synthesizable("a, b, c, d, e, f, g.", decision)
    assert markup.count("<break") == 5
    # 前置停顿优先保留，后置停顿在超出上限时被丢弃
    assert markup.startswith('<break time="0.5s"/>')
    assert markup.endswith("</prosody>")
    assert 'd,<break time="0.2s"/> e, f, g.</prosody>' in markup


def test_prosody_mapping():
    excited = to_synthesizable("Yes", TimingDecision(0.0, 0.0, 1.1, emotional_tone="excited"))
    assert '<prosody volume="+2dB" pitch="high" rate="110%">' in excited

    sad = to_synthesizable("Yes", TimingDecision(0.0, 0.0, 0.8, emotional_tone="contemplative"))
    assert '<prosody volume="-2dB" pitch="low" rate="80%">' in sad

    question = to_synthesizable("Yes", TimingDecision(0.0, 0.0, 1.0, emotional_tone="sad", intent_type=IntentType.QUESTION))
    assert 'volume="-2dB" pitch="high"' in question

    exclaim = to_synthesizable("Yes", TimingDecision(0.0, 0.0, 1.0, intent_type=IntentType.EXCLAMATION))
    assert 'pitch="x-high"' in exclaim


def test_explicit_breaks_reinserted_at_recorded_offsets():
    turn = DialogueTurn(
        speaker_name="adam",
        text="hi there",
        order_index=0,
        modifiers=TurnModifiers(breaks=(0.7,), break_offsets=(2,)),
    )
    markup = format_turn(turn, DEFAULT_TIMING)
    assert 'hi<break time="0.7s"/> there' in markup


def test_explicit_break_with_stale_offset_is_appended():
    markup = to_synthesizable("hello", DEFAULT_TIMING, [(2, 0.7)])
    assert 'hello<break time="0.7s"/></prosody>' in markup


def test_explicit_break_wins_over_punctuation_at_same_position():
    markup = to_synthesizable("Hello there!", DEFAULT_TIMING, [(12, 0.3)])
    assert 'there!<break time="0.3s"/></prosody>' in markup
    assert markup.count("<break") == 1


EXPLICIT_CASES = [
    ("Hi, there", [(4, 0.4)]),
    ("Well, I think... maybe; we could try -- or not?", [(6, 0.3), (17, 0.8)]),
    ("one, two, three, four", [(0, 0.5), (5, 0.3), (10, 0.3)]),
    ("  spaced   out\ttext  ", [(8, 0.6), (12, 0.2)]),
]


@pytest.mark.parametrize("decision", DECISIONS)
@pytest.mark.parametrize("text,breaks", EXPLICIT_CASES)
def test_narration_round_trip_with_explicit_breaks(text, breaks, decision):
    markup = to_synthesizable(text, decision, breaks)
    assert to_narration(markup) == " ".join(text.split())


def test_explicit_break_after_punctuation_keeps_word_gap():
    markup = to_synthesizable("Hi, there", DEFAULT_TIMING, [(4, 0.4)])
    assert 'Hi,<break time="0.2s"/> there' in markup
    assert to_narration(markup) == "Hi, there"


def test_explicit_offsets_follow_whitespace_normalization():
    # 原文 "a   b" 中位置 4 (b 之前) -> 规范化后位置 2
    markup = to_synthesizable("a   b", DEFAULT_TIMING, [(4, 0.7)])
    assert 'a <break time="0.7s"/>b' in markup


def test_natural_breaks_inserted():
    decision = TimingDecision(0.0, 0.0, 1.0, natural_breaks=(0.3, 0.3))
    markup = to_synthesizable("first; then -- later", decision)
    assert 'first;<break time="0.3s"/> then<break time="0.3s"/> -- later' in markup


def test_cleanup_rules():
    assert cleanup('  <break time="1s"/>  <break time="2s"/>x  ') == '<break time="1s"/> x'
    assert cleanup('a <prosody rate="90%">  </prosody> b') == "a b"


def test_strip_tags_unescapes_and_collapses():
    assert strip_tags('<prosody pitch="high">Fish &amp; chips<break time="1s"/>  now</prosody>') == "Fish & chips now"


@pytest.mark.parametrize("text", TEXTS)
def test_char_spans_match_narration(text):
    markup = to_synthesizable(text, DECISIONS[1])
    spans = narration_char_spans(markup)
    assert "".join(c for c, _, _ in spans) == to_narration(markup)
    for ch, start, end in spans:
        assert start < end
        if ch not in " &<>":
            assert markup[start:end] == ch
