"""
External collaborators of the pipeline
Protocols describe what the orchestrator needs; the LLM-backed classes are the
default implementations on langchain chat models (Azure OpenAI or OpenAI)
"""

import json
import os
import re
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import openai
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import AzureChatOpenAI, ChatOpenAI
from pydantic import ValidationError

from blogsmith.agents.prompts import PromptTemplates
from blogsmith.models.schemas import CaseStudy, Draft, GenerationRecord, SourceReference
from blogsmith.utils.config import ThresholdConfig
from blogsmith.utils.error_handler import (
    FatalConfigurationError,
    InvalidContentError,
    MalformedResponseError,
    TransientNetworkError,
    error_handler,
)


@runtime_checkable
class CaseStudyFinder(Protocol):
    def find(self, topic: str, exclude: List[str]) -> Optional[CaseStudy]:
        ...


@runtime_checkable
class DraftGenerator(Protocol):
    def generate(
        self,
        topic: str,
        case_study: Optional[CaseStudy],
        sources: List[SourceReference],
        prior_issues: List[str],
        keywords: Optional[List[str]] = None
    ) -> Draft:
        ...


@runtime_checkable
class AssetGenerator(Protocol):
    def generate(self, context: Dict[str, Any]) -> Optional[str]:
        ...


@runtime_checkable
class PublishSink(Protocol):
    def publish(self, record: GenerationRecord) -> str:
        ...


def is_azure_configured() -> bool:
    """Check if Azure OpenAI configuration is available"""
    required_vars = ["AZURE_ENDPOINT", "AZURE_SUBSCRIPTION_KEY", "AZURE_API_VERSION"]
    return all(os.getenv(var) for var in required_vars)


def create_chat_model(temperature: float = 0.7, max_completion_tokens: int = 8000, timeout: Optional[float] = None):
    """Azure OpenAI when its variables are set, otherwise OpenAI"""
    if is_azure_configured():
        return AzureChatOpenAI(
            azure_endpoint=os.getenv("AZURE_ENDPOINT"),
            azure_deployment=os.getenv("AZURE_DEPLOYMENT", "gpt-4.1-mini"),
            api_key=os.getenv("AZURE_SUBSCRIPTION_KEY"),
            api_version=os.getenv("AZURE_API_VERSION"),
            temperature=temperature,
            timeout=timeout,
            max_retries=0,
            max_tokens=max_completion_tokens
        )
    if os.getenv("OPENAI_API_KEY"):
        return ChatOpenAI(
            model=os.getenv("BLOGSMITH_MODEL", "gpt-4o-mini"),
            temperature=temperature,
            timeout=timeout,
            max_retries=0,
            max_tokens=max_completion_tokens
        )
    raise FatalConfigurationError("No LLM configuration found: set AZURE_* or OPENAI_API_KEY")


def strip_code_fences(content: str) -> str:
    content = content.strip()
    fenced = re.match(r"^```[a-zA-Z]*\s*\n(.*)\n```$", content, re.DOTALL)
    return fenced.group(1).strip() if fenced else content


def parse_json_response(content: str, operation: str) -> Dict[str, Any]:
    """Decode a JSON object; anything undecodable is a malformed (retryable) response"""
    text = strip_code_fences(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if not match:
            raise MalformedResponseError(f"{operation}: response is not JSON")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"{operation}: could not decode JSON ({e.msg})") from e

    if not isinstance(data, dict):
        raise MalformedResponseError(f"{operation}: expected a JSON object, got {type(data).__name__}")
    return data


class LLMProvider:
    """Shared invoke path; maps transport failures onto the pipeline's error taxonomy"""

    name = "llm"

    def __init__(self, llm=None, temperature: float = 0.7):
        self._llm = llm
        self.temperature = temperature

    @property
    def llm(self):
        if self._llm is None:
            self._llm = create_chat_model(self.temperature)
        return self._llm

    def invoke(self, system_prompt: str, user_prompt: str) -> str:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt)
        ]
        try:
            response = self.llm.invoke(messages)
        except (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as e:
            raise TransientNetworkError(f"{self.name}: {e}") from e
        except openai.AuthenticationError as e:
            raise FatalConfigurationError(f"{self.name}: authentication failed ({e})") from e

        content = response.content if hasattr(response, 'content') else str(response)
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponseError(f"{self.name}: empty response")
        return content


class LLMCaseStudyFinder(LLMProvider):
    name = "case_study_finder"

    def __init__(self, llm=None):
        super().__init__(llm, temperature=0.3)

    def find(self, topic: str, exclude: List[str]) -> Optional[CaseStudy]:
        content = self.invoke(
            PromptTemplates.get_case_study_system(),
            PromptTemplates.get_case_study_instruction(topic, exclude)
        )
        data = parse_json_response(content, self.name)

        entity = (data.get("entity") or "").strip()
        if not entity or entity in exclude:
            return None
        try:
            return CaseStudy(**{**data, "entity": entity})
        except ValidationError as e:
            raise MalformedResponseError(f"{self.name}: unexpected case study shape ({e.error_count()} errors)") from e


class LLMDraftGenerator(LLMProvider):
    name = "draft_generator"

    def __init__(self, thresholds: Optional[ThresholdConfig] = None, llm=None):
        super().__init__(llm, temperature=0.7)
        self.thresholds = thresholds or ThresholdConfig()

    def generate(
        self,
        topic: str,
        case_study: Optional[CaseStudy],
        sources: List[SourceReference],
        prior_issues: List[str],
        keywords: Optional[List[str]] = None
    ) -> Draft:
        primary_term = keywords[0] if keywords else topic
        content = self.invoke(
            PromptTemplates.get_writer_system(),
            PromptTemplates.get_draft_instruction(
                topic, primary_term, case_study, sources, self.thresholds, prior_issues
            )
        )
        return self.parse_draft(parse_json_response(content, self.name))

    def parse_draft(self, data: Dict[str, Any]) -> Draft:
        """Well-formed JSON that is not a usable draft is invalid content, not a transport problem"""
        data = dict(data)

        urls, titles = [], {}
        for item in data.pop("sources", None) or []:
            if isinstance(item, str):
                urls.append(item)
            elif isinstance(item, dict) and item.get("url"):
                urls.append(item["url"])
                if item.get("title"):
                    titles[item["url"]] = item["title"]
        data["sources"] = urls
        data["source_titles"] = titles

        if isinstance(data.get("real_world_example"), dict) and not data["real_world_example"].get("company"):
            data["real_world_example"] = None

        try:
            draft = Draft(**data)
        except ValidationError as e:
            raise InvalidContentError(f"Draft does not match the expected structure: {e.error_count()} error(s)") from e

        if not draft.sections:
            raise InvalidContentError("Draft has no sections")
        if any(not s.body.strip() for s in draft.sections):
            raise InvalidContentError("Draft contains empty sections")
        return draft


class LLMAssetGenerator(LLMProvider):
    """Generates a mermaid diagram or an SVG illustration from the draft outline"""

    def __init__(self, kind: str = "diagram", llm=None):
        if kind not in ("diagram", "illustration"):
            raise ValueError(f"Unknown asset kind: {kind}")
        super().__init__(llm, temperature=0.4)
        self.kind = kind
        self.name = f"{kind}_generator"

    def generate(self, context: Dict[str, Any]) -> Optional[str]:
        topic = context.get("topic", "")
        outline = context.get("outline", "")

        if self.kind == "diagram":
            content = self.invoke(
                PromptTemplates.get_diagram_system(),
                PromptTemplates.get_diagram_instruction(topic, outline)
            )
            diagram = strip_code_fences(content)
            return diagram or None

        content = self.invoke(
            PromptTemplates.get_illustration_system(),
            PromptTemplates.get_illustration_instruction(topic, outline)
        )
        svg = re.search(r"<svg.*?</svg>", content, re.DOTALL | re.IGNORECASE)
        if not svg:
            error_handler.logger.warning(f"{self.name}: response contained no <svg> element")
            return None
        return svg.group(0)
