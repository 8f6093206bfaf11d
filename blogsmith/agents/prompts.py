import json
from typing import List, Optional

from blogsmith.models.schemas import CaseStudy, SourceReference, SourceStatus
from blogsmith.utils.config import ThresholdConfig


JSON_OUTPUT_RULE = "Return ONLY valid JSON. No markdown fences, no commentary before or after the JSON."

DRAFT_SCHEMA = {
    "title": "Compelling title that names the topic",
    "intro": "Opening paragraph that states the topic and why it matters",
    "sections": [
        {"title": "Section heading", "body": "Section content in markdown with inline citations [1], [2]"}
    ],
    "real_world_example": {"company": "Named company or project", "scenario": "What happened", "lesson": "Takeaway"},
    "diagram": "Mermaid diagram source (without the ```mermaid wrapper), or null",
    "glossary": [{"term": "Technical term", "definition": "Plain explanation"}],
    "quick_reference": ["Key point 1", "Key point 2", "Key point 3"],
    "sources": [{"title": "Source title (cited as [1])", "url": "https://..."}],
    "conclusion": "What readers should take away, tied back to the topic",
    "tags": ["tag1", "tag2"]
}

CASE_STUDY_SCHEMA = {
    "entity": "Company or project name, or null if none is documented",
    "source_url": "Public URL documenting the case (engineering blog, postmortem, talk)",
    "summary": "One paragraph summary",
    "scenario": "What happened",
    "lesson": "What engineers can learn"
}


class PromptTemplates:
    """Prompt templates - each provider only gets what it needs"""

    @staticmethod
    def get_case_study_system() -> str:
        return (
            "You are a technical researcher who finds well-documented real-world engineering case studies. "
            "Only name companies or projects whose case is publicly documented at a URL you are confident exists. "
            + JSON_OUTPUT_RULE
        )

    @staticmethod
    def get_case_study_instruction(topic: str, exclude: List[str]) -> str:
        instruction = f"""Find ONE compelling real-world case study that illustrates: {topic}

Prefer engineering blog posts, public postmortems and conference talks from the company itself."""

        if exclude:
            instruction += f"\n\nDo NOT use any of these (their sources could not be verified): {', '.join(exclude)}"

        instruction += f"""

If no documented case exists, return {{"entity": null}}.

Output this exact JSON structure:
{json.dumps(CASE_STUDY_SCHEMA, indent=2)}"""
        return instruction

    @staticmethod
    def get_writer_system() -> str:
        return """You are a senior engineer writing in-depth technical blog posts.

Writing rules:
- Write in third person or address the reader as "you"; NEVER use first person (I, we, our)
- Keep sentences between 10 and 25 words on average; avoid runs of long sentences
- Connect ideas with transition words (however, therefore, for example, as a result)
- Support every factual claim with an inline citation [n] whose number matches the sources list
- Spread citations across every section
""" + JSON_OUTPUT_RULE

    @staticmethod
    def get_draft_instruction(
        topic: str,
        primary_term: str,
        case_study: Optional[CaseStudy],
        sources: List[SourceReference],
        thresholds: ThresholdConfig,
        prior_issues: Optional[List[str]] = None
    ) -> str:
        t = thresholds
        instruction = f"""Write a technical blog post about: {topic}

**Requirements:**
• {t.min_sections}-{t.max_sections} sections, each {t.min_section_length}-{t.max_section_length} characters
• Introduction and conclusion of at least {max(t.min_intro_length, t.min_conclusion_length)} characters, both mentioning "{primary_term}"
• Use "{primary_term}" naturally, roughly once every 40-80 words
• At least {t.min_sources} sources and at least {t.min_inline_citations} inline citations
• A mermaid diagram of the core architecture or flow
• A glossary and a quick-reference list"""

        if case_study:
            instruction += f"""

**Real-world case to feature:**
Company: {case_study.entity}
Summary: {case_study.summary or 'N/A'}
Scenario: {case_study.scenario or 'N/A'}
Lesson: {case_study.lesson or 'N/A'}
Source: {case_study.source_url or 'N/A'}"""

        live_sources = [s for s in sources if s.status == SourceStatus.LIVE]
        if live_sources:
            instruction += "\n\n**Verified sources you may cite:**\n"
            instruction += "\n".join(f"- {s.title or s.url} - {s.url}" for s in live_sources)

        unusable = [s for s in sources if s.status in (SourceStatus.DEAD, SourceStatus.ERROR)]
        if unusable:
            instruction += "\n\n**Unreachable sources (do not cite):**\n"
            instruction += "\n".join(f"- {s.url}" for s in unusable)

        instruction += (
            "\n\n**Citations:** [n] refers to the n-th entry of your \"sources\" array. "
            "List every source you cite there, in the order you want them numbered."
        )

        if prior_issues:
            instruction += "\n\n**The previous draft failed the quality gate. Fix these issues first:**\n"
            instruction += "\n".join(prior_issues)

        instruction += f"""

Output this exact JSON structure:
{json.dumps(DRAFT_SCHEMA, indent=2)}"""
        return instruction

    @staticmethod
    def get_diagram_system() -> str:
        return (
            "You create clear mermaid diagrams for technical articles. "
            "Return only the mermaid source, without code fences or commentary."
        )

    @staticmethod
    def get_diagram_instruction(topic: str, outline: str) -> str:
        return f"""Create a mermaid flowchart or sequence diagram for an article about: {topic}

**Article outline:**
{outline}

Keep it under 15 nodes and label every edge."""

    @staticmethod
    def get_illustration_system() -> str:
        return (
            "You create simple SVG illustrations for technical articles. "
            "Return only a single <svg> element, no commentary."
        )

    @staticmethod
    def get_illustration_instruction(topic: str, outline: str) -> str:
        return f"""Create a clean, flat SVG illustration (800x400) for an article about: {topic}

**Article outline:**
{outline}

Use at most 5 colors and no embedded text longer than 3 words."""
