from .schemas import (
    RecordStatus,
    SourceStatus,
    Dimension,
    CaseStudy,
    DraftSection,
    RealWorldExample,
    GlossaryTerm,
    Draft,
    SourceReference,
    Citation,
    CitationMetrics,
    DimensionScore,
    QualityReport,
    StageEvent,
    GenerationRecord,
    PipelineState
)

__all__ = [
    "RecordStatus",
    "SourceStatus",
    "Dimension",
    "CaseStudy",
    "DraftSection",
    "RealWorldExample",
    "GlossaryTerm",
    "Draft",
    "SourceReference",
    "Citation",
    "CitationMetrics",
    "DimensionScore",
    "QualityReport",
    "StageEvent",
    "GenerationRecord",
    "PipelineState"
]
