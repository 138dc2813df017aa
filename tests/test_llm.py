"""Tests for the Ollama planner with a fake client."""

import json

import pytest

from webcli.errors import PlanningError, UnavailableError
from webcli.llm import (
    PLAN_CONTENT_LIMIT,
    STATUS_EMPTY,
    STATUS_FAILED,
    STATUS_OK,
    STATUS_UNAVAILABLE,
    OllamaPlanner,
    focus_content,
    normalize_verbs,
    parse_json_content,
)
from webcli.types import MAX_VERB_DEPTH, Verb


class FakeOllamaClient:
    """Answers chat calls from a queue of canned replies."""

    def __init__(self, replies=None, reachable=True, chat_error=None):
        self.replies = list(replies or [])
        self.reachable = reachable
        self.chat_error = chat_error
        self.list_calls = 0
        self.messages = []

    def list(self):
        self.list_calls += 1
        if not self.reachable:
            raise ConnectionError("connection refused")
        return {"models": []}

    def chat(self, model, messages, options=None):
        self.messages.append(messages)
        if self.chat_error is not None:
            raise self.chat_error
        return {"message": {"content": self.replies.pop(0)}}


def planner_with(*replies, **kwargs):
    client = FakeOllamaClient(replies=replies, **kwargs)
    return OllamaPlanner(client=client), client


def nested(depth):
    """A verb dict nested depth levels deep."""
    verb = {"name": f"level-{depth}", "description": "", "type": "navigate"}
    for level in range(depth - 1, 0, -1):
        verb = {"name": f"level-{level}", "description": "", "type": "navigate", "subverbs": [verb]}
    return verb


def tree_depth(verb):
    if not verb.subverbs:
        return 1
    return 1 + max(tree_depth(v) for v in verb.subverbs)


class TestAvailability:

    def test_disabled_planner_is_unavailable(self):
        client = FakeOllamaClient()
        planner = OllamaPlanner(enabled=False, client=client)

        assert not planner.is_available()
        assert client.list_calls == 0

    def test_probe_is_cached(self):
        planner, client = planner_with()

        assert planner.is_available()
        assert planner.is_available()
        assert client.list_calls == 1

    def test_unreachable_server(self):
        planner, _ = planner_with(reachable=False)
        assert not planner.is_available()


class TestExtract:

    def test_extracts_verbs(self):
        reply = json.dumps({"verbs": [
            {"name": "Read Article", "description": "Open the article", "type": "navigate",
             "target": "https://example.com/a"},
            {"name": "search", "description": "Search", "type": "form", "params": ["q"]},
        ]})
        planner, client = planner_with(reply)

        result = planner.extract("page text", "https://example.com", html='<a href="/a">Article</a>')

        assert result.status == STATUS_OK
        assert result.ok
        assert [v.name for v in result.verbs] == ["read-article", "search"]
        prompt = client.messages[0][1]["content"]
        assert "Article → /a" in prompt
        assert "Focus on the few actions" in prompt

    def test_guidance_replaces_default(self):
        planner, client = planner_with('{"verbs": [{"name": "x-verb", "description": "", "type": "action"}]}')

        planner.extract("text", "https://example.com", guidance="only the results")

        prompt = client.messages[0][1]["content"]
        assert "SPECIFIC GUIDANCE:\nonly the results" in prompt
        assert "Focus on the few actions" not in prompt

    def test_unavailable(self):
        planner, client = planner_with(reachable=False)

        result = planner.extract("text", "https://example.com")

        assert result.status == STATUS_UNAVAILABLE
        assert client.messages == []

    def test_empty_answer(self):
        planner, _ = planner_with('{"verbs": []}')
        assert planner.extract("text", "https://example.com").status == STATUS_EMPTY

    def test_unparseable_answer(self):
        planner, _ = planner_with("I could not find any verbs, sorry.")

        result = planner.extract("text", "https://example.com")

        assert result.status == STATUS_FAILED
        assert result.error

    def test_chat_failure(self):
        planner, _ = planner_with(chat_error=RuntimeError("model not found"))

        result = planner.extract("text", "https://example.com")

        assert result.status == STATUS_FAILED
        assert "model not found" in result.error

    def test_non_list_params_do_not_raise(self):
        planner, _ = planner_with('{"verbs": [{"name": "search", "type": "form", "params": 5}]}')

        result = planner.extract("text", "https://example.com")

        assert result.status == STATUS_OK
        assert result.verbs[0].name == "search"
        assert result.verbs[0].params is None

    def test_string_params_become_one_field(self):
        planner, _ = planner_with('{"verbs": [{"name": "search", "type": "form", "params": "query"}]}')

        result = planner.extract("text", "https://example.com")

        assert result.verbs[0].params == ["query"]

    def test_malformed_verb_entries_fail_cleanly(self, monkeypatch):
        planner, _ = planner_with('{"verbs": [{"name": "search", "type": "form"}]}')

        def _boom(raw, depth=1):
            raise TypeError("unexpected verb shape")

        monkeypatch.setattr("webcli.llm.normalize_verbs", _boom)

        result = planner.extract("text", "https://example.com")

        assert result.status == STATUS_FAILED
        assert result.verbs == []
        assert "unexpected verb shape" in result.error

    def test_accepts_bare_list(self):
        planner, _ = planner_with('```json\n[{"name": "next", "description": "", "type": "navigate"}]\n```')
        assert [v.name for v in planner.extract("text", "https://example.com").verbs] == ["next"]


class TestPlan:

    def test_returns_plan(self):
        planner, client = planner_with(json.dumps({
            "method": "navigate",
            "target_url": "/about",
            "description": "Open the about page",
        }))
        verb = Verb(name="about", description="About the company", type="navigate")

        plan = planner.plan(verb, '<a href="/about">About</a>', "https://example.com")

        assert plan.method == "navigate"
        assert plan.target_url == "/about"
        prompt = client.messages[0][1]["content"]
        assert "[About](/about)" in prompt
        assert "- Name: about" in prompt

    def test_unusable_answer_is_none(self):
        planner, _ = planner_with("no idea")
        verb = Verb(name="about", description="", type="action")
        assert planner.plan(verb, "", "https://example.com") is None

    def test_unknown_method_is_none(self):
        planner, _ = planner_with('{"method": "teleport", "description": "?"}')
        verb = Verb(name="about", description="", type="action")
        assert planner.plan(verb, "", "https://example.com") is None

    def test_chat_failure_raises(self):
        planner, _ = planner_with(chat_error=RuntimeError("timeout"))
        verb = Verb(name="about", description="", type="action")

        with pytest.raises(PlanningError, match="timeout"):
            planner.plan(verb, "", "https://example.com")

    def test_unavailable_raises(self):
        planner = OllamaPlanner(enabled=False, client=FakeOllamaClient())
        verb = Verb(name="about", description="", type="action")

        with pytest.raises(UnavailableError):
            planner.plan(verb, "", "https://example.com")


class TestNormalizeVerbs:

    def test_sanitizes_and_drops_invalid(self):
        verbs = normalize_verbs([
            {"name": "Good Verb!", "description": "d", "type": "navigate"},
            {"name": "!!!", "description": "no usable name", "type": "navigate"},
            {"name": "bad-type", "description": "", "type": "hover"},
            "not a dict",
        ])
        assert [v.name for v in verbs] == ["good-verb"]

    def test_dedupes_keeping_first(self):
        verbs = normalize_verbs([
            {"name": "next", "description": "first", "type": "navigate"},
            {"name": "Next", "description": "second", "type": "navigate"},
        ])
        assert [v.description for v in verbs] == ["first"]

    def test_bounds_depth(self):
        verbs = normalize_verbs([nested(MAX_VERB_DEPTH + 3)])
        assert tree_depth(verbs[0]) == MAX_VERB_DEPTH

    def test_keeps_trees_within_bound(self):
        verbs = normalize_verbs([nested(3)])
        assert tree_depth(verbs[0]) == 3

    def test_empty_subverbs_become_leaf(self):
        verbs = normalize_verbs([
            {"name": "menu", "description": "", "type": "navigate", "subverbs": [{"name": "!!", "type": "navigate"}]},
        ])
        assert verbs[0].subverbs is None
        assert not verbs[0].is_container


class TestHelpers:

    def test_parse_plain_json(self):
        assert parse_json_content(' {"a": 1} ') == {"a": 1}

    def test_parse_fenced_json(self):
        assert parse_json_content('Here you go:\n```json\n{"a": 1}\n```\nDone.') == {"a": 1}

    def test_parse_bare_fence(self):
        assert parse_json_content('```\n{"a": 2}\n```') == {"a": 2}

    def test_parse_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_json_content("nothing here")

    def test_short_content_is_whole(self):
        verb = Verb(name="about", description="", type="navigate")
        assert focus_content("[About](/about)", verb) == "[About](/about)"

    def test_long_content_focuses_on_verb(self):
        verb = Verb(name="checkout", description="Proceed to checkout", type="navigate")
        markdown = "x" * 30000 + "[Checkout](/checkout)" + "y" * 30000

        focused = focus_content(markdown, verb)

        assert "[Checkout](/checkout)" in focused
        assert len(focused) <= PLAN_CONTENT_LIMIT

    def test_long_content_without_match_keeps_start(self):
        verb = Verb(name="missing", description="", type="navigate")
        markdown = "a" * 50000
        assert focus_content(markdown, verb) == "a" * PLAN_CONTENT_LIMIT
