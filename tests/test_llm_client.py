import json
from types import SimpleNamespace

import pytest

from formula_graph import llm_client
from formula_graph.llm_client import LLMClient, fallback_explanation, parse_json_response
from formula_graph.models import Formula, Variable


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_client(content, model="gpt-4o"):
    completions = FakeCompletions(content)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return LLMClient(model=model, client=fake), completions


@pytest.fixture
def formulas(formula_factory):
    return [
        formula_factory("eq1", ["x"], role="definition"),
        formula_factory("eq2", ["x", "y"]),
    ]


@pytest.mark.parametrize(
    "text",
    [
        '{"a": 1}',
        '```json\n{"a": 1}\n```',
        'Here you go: {"a": 1} Hope this helps.',
    ],
)
def test_parse_json_response(text):
    assert parse_json_response(text) == {"a": 1}


def test_parse_json_response_list():
    assert parse_json_response("[1, 2]") == [1, 2]


def test_parse_json_response_rejects_prose():
    with pytest.raises(ValueError):
        parse_json_response("no json here")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(llm_client, "load_dotenv", lambda: None)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError):
        LLMClient()


def test_model_from_environment(monkeypatch):
    monkeypatch.setattr(llm_client, "load_dotenv", lambda: None)
    monkeypatch.setenv("FORMULA_GRAPH_MODEL", "gpt-4o-mini")
    client = LLMClient(client=SimpleNamespace())
    assert client.model == "gpt-4o-mini"


def test_complete_sends_temperature_and_json_mode():
    client, completions = make_client("  hello  ")
    assert client.complete("system", "user", json_mode=True) == "hello"
    call = completions.calls[0]
    assert call["model"] == "gpt-4o"
    assert call["temperature"] == 0.3
    assert call["response_format"] == {"type": "json_object"}
    assert [m["role"] for m in call["messages"]] == ["system", "user"]


def test_request_timeout_is_forwarded():
    completions = FakeCompletions("ok")
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    LLMClient(model="gpt-4o", client=fake, timeout=2.5).complete("system", "user")
    assert completions.calls[0]["timeout"] == 2.5


def test_no_timeout_by_default():
    client, completions = make_client("ok")
    client.complete("system", "user")
    assert "timeout" not in completions.calls[0]


def test_gpt5_models_get_no_temperature():
    client, completions = make_client("ok", model="gpt-5-mini")
    client.complete("system", "user")
    assert "temperature" not in completions.calls[0]


def test_propose_dependencies(formulas):
    payload = {"dependencies": [{"from": "eq1", "to": "eq2", "type": "uses_variable"}]}
    client, completions = make_client(json.dumps(payload))
    assert client.propose_dependencies(formulas) == payload["dependencies"]
    assert "eq1" in completions.calls[0]["messages"][1]["content"]


def test_propose_dependencies_needs_two_formulas(formulas):
    client, completions = make_client("{}")
    assert client.propose_dependencies(formulas[:1]) == []
    assert completions.calls == []


def test_propose_dependencies_rejects_missing_list(formulas):
    client, _ = make_client('{"edges": "none"}')
    with pytest.raises(ValueError):
        client.propose_dependencies(formulas)


def test_describe_role_flow(formulas):
    client, completions = make_client("Definitions come first.")
    assert client.describe_role_flow(formulas, language="ko") == "Definitions come first."
    assert "Korean" in completions.calls[0]["messages"][1]["content"]


def test_explain_formula():
    payload = {
        "summary": "Squared loss",
        "components": [{"symbol": "L", "explanation": "loss"}, "junk", {"latex": "y"}],
        "meaning": "Measures error",
        "relatedFormulas": ["eq2"],
    }
    client, _ = make_client(json.dumps(payload))
    formula = Formula(id="eq3", latex="L = y^2", type="equation", role="objective")

    explanation = client.explain_formula(formula)
    assert explanation.formula_id == "eq3"
    assert explanation.summary == "Squared loss"
    assert [(c.symbol, c.latex, c.type) for c in explanation.components] == [("L", "L", "variable")]
    assert explanation.role == "objective"
    assert explanation.related_formulas == ["eq2"]


def test_fallback_explanation():
    formula = Formula(
        id="eq1",
        latex="x := a",
        type="definition",
        role="definition",
        variables=[Variable(symbol="x", latex="x", type="scalar")],
    )
    explanation = fallback_explanation(formula)
    assert explanation.summary == "Formula eq1: a definition formula"
    assert explanation.components[0].explanation == "Variable (scalar)"
    assert explanation.role == "definition"
