import re
from typing import List, Tuple

from blogsmith.models.schemas import Citation, CitationMetrics, Draft


CITATION_PATTERN = re.compile(r'\[(\d+)\]')


class CitationAnalyzer:
    """Finds bracketed ordinal citations ([1], [2], ...) in section bodies"""

    def __init__(self, max_uncited_section_ratio: float = 0.3):
        self.max_uncited_section_ratio = max_uncited_section_ratio

    def extract(self, draft: Draft, revision: int = 0) -> List[Citation]:
        """Every marker in section order with its section and character offset"""
        citations = []
        for index, section in enumerate(draft.sections):
            for match in CITATION_PATTERN.finditer(section.body or ""):
                citations.append(Citation(
                    number=int(match.group(1)),
                    section_index=index,
                    section_title=section.title,
                    offset=match.start(),
                    revision=revision
                ))
        return citations

    def analyze(self, draft: Draft, source_count: int, revision: int = 0) -> Tuple[List[Citation], CitationMetrics]:
        """
        Extract markers and characterize them.
        density = markers / characters of section bodies, so for fixed text
        length it grows linearly with the number of markers.
        """
        citations = self.extract(draft, revision)
        total_characters = sum(len(section.body or "") for section in draft.sections)
        density = len(citations) / total_characters if total_characters else 0.0

        cited_sections = {c.section_index for c in citations}
        uncited = [s.title for i, s in enumerate(draft.sections) if i not in cited_sections]
        total_sections = len(draft.sections)
        well_distributed = total_sections > 0 and len(uncited) <= int(total_sections * self.max_uncited_section_ratio)

        issues = []
        dangling = sorted({c.number for c in citations if c.number < 1 or c.number > source_count})
        for number in dangling:
            sections = sorted({c.section_title for c in citations if c.number == number})
            issues.append(
                f"Dangling citation [{number}] in {', '.join(sections)}: only {source_count} source(s) available"
            )

        metrics = CitationMetrics(
            total=len(citations),
            total_characters=total_characters,
            density=density,
            sections_with_citations=len(cited_sections),
            total_sections=total_sections,
            uncited_sections=uncited,
            dangling=dangling,
            well_distributed=well_distributed,
            issues=issues
        )
        return citations, metrics
