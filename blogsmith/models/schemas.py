from datetime import datetime
from enum import Enum
from typing import List, Dict, Optional, Any, Tuple

from pydantic import BaseModel, ConfigDict, Field


class RecordStatus(str, Enum):
    DRAFTING = "drafting"
    VALIDATING = "validating"
    PASSED = "passed"
    FAILED = "failed"
    PUBLISHED = "published"
    ABORTED = "aborted"


class SourceStatus(str, Enum):
    UNCHECKED = "unchecked"
    LIVE = "live"
    DEAD = "dead"
    ERROR = "error"


class Dimension(str, Enum):
    STRUCTURE = "structure"
    READABILITY = "readability"
    COHERENCE = "coherence"
    TECHNICAL_DEPTH = "technical_depth"
    SOURCE_QUALITY = "source_quality"


# Allowed lifecycle moves; published is only reachable from passed
ALLOWED_TRANSITIONS: Dict[RecordStatus, Tuple[RecordStatus, ...]] = {
    RecordStatus.DRAFTING: (RecordStatus.DRAFTING, RecordStatus.VALIDATING, RecordStatus.FAILED, RecordStatus.ABORTED),
    RecordStatus.VALIDATING: (RecordStatus.PASSED, RecordStatus.FAILED, RecordStatus.ABORTED),
    RecordStatus.FAILED: (RecordStatus.DRAFTING, RecordStatus.ABORTED),
    RecordStatus.PASSED: (RecordStatus.PUBLISHED, RecordStatus.ABORTED),
    RecordStatus.PUBLISHED: (),
    RecordStatus.ABORTED: (),
}

TERMINAL_STATUSES = (RecordStatus.PUBLISHED, RecordStatus.ABORTED)


class CaseStudy(BaseModel):
    entity: str = Field(description="Named real-world company or project")
    source_url: Optional[str] = Field(default=None, description="Where the case is documented")
    summary: str = Field(default="", description="One paragraph summary of the case")
    scenario: str = Field(default="", description="What happened")
    lesson: str = Field(default="", description="Takeaway for readers")


class DraftSection(BaseModel):
    title: str
    body: str


class RealWorldExample(BaseModel):
    company: str = ""
    scenario: str = ""
    lesson: str = ""


class GlossaryTerm(BaseModel):
    term: str
    definition: str


class Draft(BaseModel):
    title: str = Field(default="", description="Post title")
    intro: str = Field(default="", description="Introduction block")
    sections: List[DraftSection] = Field(default_factory=list, description="Ordered body sections")
    conclusion: str = Field(default="", description="Conclusion block")
    real_world_example: Optional[RealWorldExample] = Field(default=None, description="Concrete named example")
    diagram: Optional[str] = Field(default=None, description="Mermaid source for the main diagram")
    glossary: List[GlossaryTerm] = Field(default_factory=list)
    quick_reference: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list, description="Reference URLs in citation order")
    source_titles: Dict[str, str] = Field(default_factory=dict, description="Optional title per reference URL")
    images: List[str] = Field(default_factory=list, description="Generated illustration assets")
    tags: List[str] = Field(default_factory=list)

    def full_text(self) -> str:
        """Intro, section bodies and conclusion joined in reading order"""
        parts = [self.intro] + [s.body for s in self.sections] + [self.conclusion]
        return "\n\n".join(p for p in parts if p)


class SourceReference(BaseModel):
    url: str
    title: str = ""
    status: SourceStatus = SourceStatus.UNCHECKED
    checked_at: Optional[datetime] = None
    http_status: Optional[int] = None
    error: Optional[str] = None


class Citation(BaseModel):
    number: int = Field(description="Ordinal inside the brackets, 1-based")
    section_index: int
    section_title: str
    offset: int = Field(description="Character offset of the marker inside the section body")
    revision: int = Field(default=0, description="Revision pass that produced this marker")


class CitationMetrics(BaseModel):
    total: int = 0
    total_characters: int = 0
    density: float = 0.0
    sections_with_citations: int = 0
    total_sections: int = 0
    uncited_sections: List[str] = Field(default_factory=list)
    dangling: List[int] = Field(default_factory=list, description="Marker numbers with no matching source")
    well_distributed: bool = False
    issues: List[str] = Field(default_factory=list)


class DimensionScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: Dimension
    score: float = Field(ge=0, le=100)
    floor: float
    passed: bool
    issues: Tuple[str, ...] = ()


class QualityReport(BaseModel):
    """Immutable snapshot of one scoring pass"""
    model_config = ConfigDict(frozen=True)

    structure: DimensionScore
    readability: DimensionScore
    coherence: DimensionScore
    technical_depth: DimensionScore
    source_quality: DimensionScore
    overall_score: float
    min_overall_score: float
    passed: bool
    valid_percentage: float = 0.0
    warnings: Tuple[str, ...] = ()

    @property
    def dimensions(self) -> List[DimensionScore]:
        return [self.structure, self.readability, self.coherence, self.technical_depth, self.source_quality]

    @property
    def issues(self) -> List[str]:
        return [issue for dim in self.dimensions for issue in dim.issues]

    def failed_dimensions(self) -> List[Dimension]:
        return [dim.dimension for dim in self.dimensions if not dim.passed]


class StageEvent(BaseModel):
    stage: str
    duration: float
    status: RecordStatus
    detail: Optional[str] = None


class GenerationRecord(BaseModel):
    topic: str = Field(description="Subject of the post")
    keywords: List[str] = Field(default_factory=list, description="First keyword is the primary topic term")
    case_study: Optional[CaseStudy] = None
    draft: Optional[Draft] = None
    sources: List[SourceReference] = Field(default_factory=list, description="Append-only, unique by URL")
    citations: List[Citation] = Field(default_factory=list, description="Append-only, tagged by revision")
    citation_metrics: Optional[CitationMetrics] = None
    quality_report: Optional[QualityReport] = None
    report_history: List[QualityReport] = Field(default_factory=list)
    revision_count: int = 0
    max_revisions: int = 2
    status: RecordStatus = RecordStatus.DRAFTING
    error: Optional[str] = None
    prior_issues: List[str] = Field(default_factory=list, description="Corrective guidance for the next draft")
    publish_location: Optional[str] = None
    stage_log: List[StageEvent] = Field(default_factory=list)

    @property
    def primary_term(self) -> str:
        return self.keywords[0] if self.keywords else self.topic

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def current_citations(self) -> List[Citation]:
        return [c for c in self.citations if c.revision == self.revision_count]

    def can_transition(self, new_status: RecordStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def source_urls(self) -> List[str]:
        return [s.url for s in self.sources]

    def add_sources(self, urls: List[str], titles: Optional[Dict[str, str]] = None) -> List[SourceReference]:
        """Append unseen URLs as unchecked references, returning only the new ones"""
        titles = titles or {}
        known = set(self.source_urls())
        added = []
        for url in urls:
            url = (url or "").strip()
            if not url or url in known:
                continue
            ref = SourceReference(url=url, title=titles.get(url, ""))
            self.sources.append(ref)
            added.append(ref)
            known.add(url)
        return added

    def merge_sources(self, checked: List[SourceReference], recheck: bool = False):
        """Fold validation results back in; dead stays dead unless a recheck was requested"""
        by_url = {ref.url: ref for ref in checked}
        for index, existing in enumerate(self.sources):
            update = by_url.get(existing.url)
            if update is None:
                continue
            if existing.status in (SourceStatus.DEAD, SourceStatus.ERROR) and not recheck:
                continue
            self.sources[index] = update

    def summary(self) -> Dict[str, Any]:
        report = self.quality_report
        return {
            "topic": self.topic,
            "status": self.status.value,
            "revision_count": self.revision_count,
            "overall_score": report.overall_score if report else None,
            "passed": report.passed if report else False,
            "failed_dimensions": [d.value for d in report.failed_dimensions()] if report else [],
            "error": self.error,
            "publish_location": self.publish_location,
        }


class PipelineState(BaseModel):
    """Graph state for one record; the record itself carries everything that is reported"""
    record: GenerationRecord
    case_attempts: int = 0
    excluded_entities: List[str] = Field(default_factory=list, description="Entities whose case source was not live")
    next_step: str = "continue"
