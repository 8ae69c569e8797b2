import json
from types import SimpleNamespace

import pytest

from dialogcast.pipeline.processors.timing import (
    DEFAULT_ANALYSIS,
    AnalysisCache,
    AnalysisRequest,
    ConversationAnalysis,
    OpenAIDialogueAnalyzer,
)
from dialogcast.schema.types import IntentType
from dialogcast.utils.retry import RetryPolicy


class _FakeCompletions:
    def __init__(self, contents):
        self.contents = list(contents)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        content = self.contents.pop(0)
        if isinstance(content, Exception):
            raise content
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(*contents):
    completions = _FakeCompletions(contents)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)


def test_from_dict_is_tolerant():
    analysis = ConversationAnalysis.from_dict(
        {
            "emotional_tone": "EXCITED",
            "intent_type": "question",
            "topic_continuity": 3,
            "emphasis": "n/a",
            "tempo": "warp",
            "is_delayed_response": True,
        }
    )
    assert analysis.emotional_tone == "excited"
    assert analysis.intent_type == IntentType.QUESTION
    assert analysis.topic_continuity == 1.0
    assert analysis.emphasis == DEFAULT_ANALYSIS.emphasis
    assert analysis.tempo == "normal"
    assert analysis.is_delayed_response is True
    assert ConversationAnalysis.from_dict({}) == DEFAULT_ANALYSIS


def test_cache_key_depends_on_context():
    a = AnalysisRequest("hi", "before", "after", True)
    assert a.cache_key() == AnalysisRequest("hi", "before", "after", True, history_text="x").cache_key()
    assert a.cache_key() != AnalysisRequest("hi", "before", "after", False).cache_key()
    assert a.cache_key() != AnalysisRequest("hi", None, "after", True).cache_key()


def test_cache_expires_after_ttl():
    now = [100.0]
    cache = AnalysisCache(ttl=10.0, clock=lambda: now[0])
    cache.put("k", DEFAULT_ANALYSIS)
    now[0] = 109.0
    assert cache.get("k") == DEFAULT_ANALYSIS
    now[0] = 111.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_analyzer_parses_json_and_uses_cache():
    client, completions = _client(json.dumps({"emotional_tone": "sad", "intent_type": "response"}))
    cache = AnalysisCache()
    analyzer = OpenAIDialogueAnalyzer(client=client, model="test-model", retry_policy=NO_WAIT, cache=cache)
    request = AnalysisRequest("I see.", "It failed.", None, True)

    first = analyzer.analyze(request)
    second = analyzer.analyze(request)

    assert first.emotional_tone == "sad"
    assert first.intent_type == IntentType.RESPONSE
    assert second is first
    assert len(completions.calls) == 1
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    assert "Current line: I see." in call["messages"][1]["content"]


def test_analyzer_retries_transient_errors():
    client, completions = _client(RuntimeError("timeout"), json.dumps({"emphasis": 0.9}))
    analyzer = OpenAIDialogueAnalyzer(client=client, retry_policy=NO_WAIT)
    analysis = analyzer.analyze(AnalysisRequest("Now!"))
    assert analysis.emphasis == 0.9
    assert len(completions.calls) == 2


def test_analyzer_rejects_non_json():
    client, _ = _client("not json at all")
    analyzer = OpenAIDialogueAnalyzer(client=client, retry_policy=NO_WAIT)
    with pytest.raises(ValueError):
        analyzer.analyze(AnalysisRequest("hello"))
