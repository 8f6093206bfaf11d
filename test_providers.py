#!/usr/bin/env python3
"""
LLM provider parsing tests - the chat model is replaced by a canned responder
"""

import json

import pytest
from langchain_core.messages import AIMessage

from blogsmith.agents.prompts import PromptTemplates
from blogsmith.agents.providers import (
    LLMAssetGenerator,
    LLMCaseStudyFinder,
    LLMDraftGenerator,
    create_chat_model,
    parse_json_response,
    strip_code_fences,
)
from blogsmith.models.schemas import SourceReference, SourceStatus
from blogsmith.utils.config import ThresholdConfig
from blogsmith.utils.error_handler import FatalConfigurationError, InvalidContentError, MalformedResponseError

from sample_posts import NETFLIX_CASE


class CannedChatModel:
    """Returns the given replies in order and keeps the prompts it was sent"""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def invoke(self, messages):
        self.prompts.append([m.content for m in messages])
        return AIMessage(content=self.replies.pop(0))


DRAFT_JSON = {
    "title": "Circuit Breakers in Practice",
    "intro": "Circuit breakers stop cascading failures.",
    "sections": [
        {"title": "The Problem", "body": "Slow dependencies exhaust thread pools [1]."},
        {"title": "The Pattern", "body": "A breaker opens after repeated failures [2]."},
    ],
    "conclusion": "Use circuit breakers on every remote call.",
    "real_world_example": {"company": "Netflix", "scenario": "Hystrix", "lesson": "Fail fast"},
    "sources": [
        "https://martinfowler.com/bliki/CircuitBreaker.html",
        {"title": "Hystrix wiki", "url": "https://github.com/Netflix/Hystrix/wiki"},
    ],
}


def test_strip_code_fences():
    assert strip_code_fences("```json\n{\"a\": 1}\n```") == '{"a": 1}'
    assert strip_code_fences("```mermaid\ngraph TD\n    A --> B\n```") == "graph TD\n    A --> B"
    assert strip_code_fences("  plain  ") == "plain"


def test_parse_json_response_accepts_prose_wrapped_objects():
    assert parse_json_response('Here you go: {"entity": "Netflix"} Enjoy!', "test") == {"entity": "Netflix"}

    with pytest.raises(MalformedResponseError):
        parse_json_response("no json here", "test")
    with pytest.raises(MalformedResponseError):
        parse_json_response("[1, 2, 3]", "test")


def test_draft_generator_parses_mixed_source_shapes():
    llm = CannedChatModel("```json\n" + json.dumps(DRAFT_JSON) + "\n```")
    generator = LLMDraftGenerator(llm=llm)

    draft = generator.generate("circuit breakers", NETFLIX_CASE, [], ["[HIGH] Add more sources"],
                               keywords=["circuit breaker"])

    assert draft.title == "Circuit Breakers in Practice"
    assert len(draft.sections) == 2
    assert draft.sources == [
        "https://martinfowler.com/bliki/CircuitBreaker.html",
        "https://github.com/Netflix/Hystrix/wiki",
    ]
    assert draft.source_titles == {"https://github.com/Netflix/Hystrix/wiki": "Hystrix wiki"}
    assert draft.real_world_example.company == "Netflix"

    # Guidance from the failed attempt reaches the prompt
    user_prompt = llm.prompts[0][1]
    assert "[HIGH] Add more sources" in user_prompt
    assert "Netflix" in user_prompt


@pytest.mark.parametrize("payload", [
    {"title": "Empty", "sections": []},
    {"title": "Blank", "sections": [{"title": "A", "body": "   "}]},
    {"title": "Wrong", "sections": [{"heading": "missing body"}]},
])
def test_unusable_drafts_are_invalid_content(payload):
    generator = LLMDraftGenerator(llm=CannedChatModel(json.dumps(payload)))

    with pytest.raises(InvalidContentError):
        generator.generate("topic", None, [], [])


def test_case_study_finder_skips_excluded_entities():
    reply = json.dumps({"entity": "Netflix", "source_url": NETFLIX_CASE.source_url, "summary": "s"})

    found = LLMCaseStudyFinder(llm=CannedChatModel(reply)).find("microservices", [])
    assert found.entity == "Netflix"
    assert found.source_url == NETFLIX_CASE.source_url

    llm = CannedChatModel(reply)
    assert LLMCaseStudyFinder(llm=llm).find("microservices", ["Netflix"]) is None
    assert "Netflix" in llm.prompts[0][1]


def test_asset_generators():
    diagram = LLMAssetGenerator("diagram", llm=CannedChatModel("```mermaid\ngraph LR\n    A --> B\n```"))
    assert diagram.generate({"topic": "t", "outline": "- A"}) == "graph LR\n    A --> B"

    svg_reply = "Sure! <svg viewBox='0 0 10 10'><rect/></svg> Hope that helps."
    image = LLMAssetGenerator("illustration", llm=CannedChatModel(svg_reply))
    assert image.generate({"topic": "t", "outline": "- A"}) == "<svg viewBox='0 0 10 10'><rect/></svg>"

    no_svg = LLMAssetGenerator("illustration", llm=CannedChatModel("I cannot draw."))
    assert no_svg.generate({"topic": "t"}) is None


def test_empty_reply_is_malformed():
    with pytest.raises(MalformedResponseError):
        LLMCaseStudyFinder(llm=CannedChatModel("   ")).find("topic", [])


def test_missing_credentials_are_fatal(monkeypatch):
    for var in ("OPENAI_API_KEY", "AZURE_ENDPOINT", "AZURE_SUBSCRIPTION_KEY", "AZURE_API_VERSION"):
        monkeypatch.delenv(var, raising=False)

    with pytest.raises(FatalConfigurationError):
        create_chat_model()


def test_draft_prompt_leaves_citation_numbering_to_the_draft():
    sources = [
        SourceReference(url="https://a.example.com", title="A", status=SourceStatus.LIVE),
        SourceReference(url="https://b.example.com", status=SourceStatus.DEAD),
        SourceReference(url="https://c.example.com", status=SourceStatus.LIVE),
    ]
    prompt = PromptTemplates.get_draft_instruction("circuit breakers", "circuit breaker", None, sources,
                                                   ThresholdConfig())

    verified, unusable = prompt.split("**Verified sources you may cite:**")[1].split("**Unreachable sources (do not cite):**")
    assert "- A - https://a.example.com" in verified
    assert "- https://c.example.com - https://c.example.com" in verified
    assert "b.example.com" not in verified
    assert "https://b.example.com" in unusable
    # No numbered list a [n] marker could be read against
    assert "[1]" not in verified and "[2]" not in verified
    assert '[n] refers to the n-th entry of your "sources" array' in prompt
