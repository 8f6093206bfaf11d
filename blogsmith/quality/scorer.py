"""
Quality Scorer
Five independent dimension scores combined into one gated verdict
"""

from typing import List, Optional, Tuple

from blogsmith.models.schemas import (
    CaseStudy,
    CitationMetrics,
    Dimension,
    DimensionScore,
    Draft,
    GenerationRecord,
    QualityReport,
    SourceReference,
    SourceStatus,
)
from blogsmith.quality import text_metrics
from blogsmith.tools.citations import CitationAnalyzer
from blogsmith.tools.links import valid_percentage
from blogsmith.utils.config import ThresholdConfig


def _clamp(score: float) -> float:
    return round(max(0.0, min(100.0, score)), 2)


class QualityScorer:
    """Scores a draft against a ThresholdConfig; the same inputs always give the same report"""

    def __init__(self, thresholds: Optional[ThresholdConfig] = None):
        self.thresholds = thresholds or ThresholdConfig()

    def score_record(self, record: GenerationRecord) -> QualityReport:
        """Score the record's current draft, sources and citation metrics"""
        draft = record.draft or Draft()
        metrics = record.citation_metrics
        if metrics is None:
            _, metrics = CitationAnalyzer(self.thresholds.max_uncited_section_ratio).analyze(
                draft, len(draft.sources), record.revision_count
            )
        return self.score(draft, record.sources, metrics, record.primary_term, record.case_study)

    def score(
        self,
        draft: Draft,
        sources: List[SourceReference],
        metrics: CitationMetrics,
        primary_term: str,
        case_study: Optional[CaseStudy] = None
    ) -> QualityReport:
        t = self.thresholds
        valid_pct = valid_percentage(sources)

        dimensions = {
            Dimension.STRUCTURE: self.score_structure(draft),
            Dimension.READABILITY: self.score_readability(draft),
            Dimension.COHERENCE: self.score_coherence(draft, primary_term),
            Dimension.TECHNICAL_DEPTH: self.score_technical_depth(draft, case_study),
            Dimension.SOURCE_QUALITY: self.score_source_quality(sources, metrics, valid_pct),
        }

        scored = {}
        for dimension, (score, issues) in dimensions.items():
            floor = t.floor_for(dimension)
            scored[dimension.value] = DimensionScore(
                dimension=dimension,
                score=score,
                floor=floor,
                passed=score >= floor,
                issues=tuple(issues)
            )

        overall = self.aggregate({d: s for d, (s, _) in dimensions.items()})
        passed = overall >= t.min_overall_score and all(d.passed for d in scored.values())

        warnings = []
        if metrics.total and metrics.density < t.citation_density:
            warnings.append(f"Low citation density: {metrics.density * 1000:.2f} per 1000 chars")
        if metrics.total_sections and not metrics.well_distributed:
            warnings.append(
                f"{len(metrics.uncited_sections)} of {metrics.total_sections} sections lack citations"
            )

        return QualityReport(
            **scored,
            overall_score=overall,
            min_overall_score=t.min_overall_score,
            passed=passed,
            valid_percentage=round(valid_pct, 4),
            warnings=tuple(warnings)
        )

    def aggregate(self, scores) -> float:
        """Weighted mean of the dimension scores"""
        weights = self.thresholds.weights
        total = sum(weights.weight_for(d) * score for d, score in scores.items())
        return round(total / weights.total, 2)

    def score_structure(self, draft: Draft) -> Tuple[float, List[str]]:
        t = self.thresholds
        issues = []
        sections = draft.sections

        if len(sections) < t.min_sections:
            issues.append(f"Too few sections: {len(sections)} (minSections: {t.min_sections})")
        if len(sections) > t.max_sections:
            issues.append(f"Too many sections: {len(sections)} (maxSections: {t.max_sections})")

        for i, section in enumerate(sections, 1):
            length = len((section.body or "").strip())
            if length < t.min_section_length:
                issues.append(
                    f"Section {i} ('{section.title}') too short: {length} chars (minSectionLength: {t.min_section_length})"
                )
            elif length > t.max_section_length:
                issues.append(
                    f"Section {i} ('{section.title}') too long: {length} chars (maxSectionLength: {t.max_section_length})"
                )

        intro_length = len((draft.intro or "").strip())
        if intro_length < t.min_intro_length:
            issues.append(f"Introduction too short: {intro_length} chars (minIntroLength: {t.min_intro_length})")

        conclusion_length = len((draft.conclusion or "").strip())
        if conclusion_length < t.min_conclusion_length:
            issues.append(
                f"Conclusion too short: {conclusion_length} chars (minConclusionLength: {t.min_conclusion_length})"
            )

        return _clamp(100 - t.structure_issue_penalty * len(issues)), issues

    def score_readability(self, draft: Draft) -> Tuple[float, List[str]]:
        t = self.thresholds
        issues = []

        for i, section in enumerate(draft.sections, 1):
            if not text_metrics.split_sentences(section.body):
                continue
            avg = text_metrics.average_sentence_length(section.body)
            if avg > t.max_avg_sentence_length:
                issues.append(
                    f"Section {i} ('{section.title}') sentences too long on average: "
                    f"{avg:.1f} words (maxAvgSentenceLength: {t.max_avg_sentence_length:g})"
                )
            elif avg < t.min_avg_sentence_length:
                issues.append(
                    f"Section {i} ('{section.title}') sentences too short on average: "
                    f"{avg:.1f} words (minAvgSentenceLength: {t.min_avg_sentence_length:g})"
                )

        text = draft.full_text()
        run = text_metrics.longest_long_sentence_run(text_metrics.split_sentences(text), t.long_sentence_words)
        if run > t.max_consecutive_long_sentences:
            issues.append(
                f"Too many consecutive long sentences: {run} "
                f"(maxConsecutiveLongSentences: {t.max_consecutive_long_sentences})"
            )

        first_person = text_metrics.find_first_person(text)
        score = 100 - t.readability_issue_penalty * len(issues) - t.first_person_penalty * len(first_person)
        if first_person:
            shown = ", ".join(first_person[:3]) + ("..." if len(first_person) > 3 else "")
            issues.append(f"First-person usage detected ({len(first_person)}): {shown}")

        return _clamp(score), issues

    def score_coherence(self, draft: Draft, primary_term: str) -> Tuple[float, List[str]]:
        t = self.thresholds
        issues = []
        text = draft.full_text()

        transitions = text_metrics.count_transition_words(text)
        if transitions < t.min_transition_words:
            issues.append(f"Too few transition words: {transitions} (minTransitionWords: {t.min_transition_words})")

        density = text_metrics.keyword_density(text, primary_term)
        if density < t.min_keyword_density:
            issues.append(
                f"Topic term '{primary_term}' too sparse: {density * 100:.2f}% "
                f"(minKeywordDensity: {t.min_keyword_density * 100:g}%)"
            )
        elif density > t.max_keyword_density:
            issues.append(
                f"Topic term '{primary_term}' too dense: {density * 100:.2f}% "
                f"(maxKeywordDensity: {t.max_keyword_density * 100:g}%)"
            )

        if not text_metrics.mentions_term(draft.intro, primary_term):
            issues.append(f"Introduction does not reference the main topic '{primary_term}'")
        if not text_metrics.mentions_term(draft.conclusion, primary_term):
            issues.append(f"Conclusion does not tie back to the main topic '{primary_term}'")

        return _clamp(100 - t.coherence_issue_penalty * len(issues)), issues

    def score_technical_depth(self, draft: Draft, case_study: Optional[CaseStudy] = None) -> Tuple[float, List[str]]:
        issues = []
        text = draft.full_text()

        example = draft.real_world_example
        has_example = bool(example and example.company.strip())
        if not has_example and case_study and case_study.entity.strip():
            has_example = text_metrics.count_term(text, case_study.entity) > 0
        if not has_example:
            issues.append("Missing concrete real-world example from a named company or project")

        has_diagram = bool((draft.diagram or "").strip()) or text_metrics.has_diagram_reference(text)
        if not has_diagram:
            issues.append("Missing diagram")

        has_reference_block = bool(draft.glossary) or any(item.strip() for item in draft.quick_reference)
        if not has_reference_block:
            issues.append("No glossary or quick-reference items")

        present = sum([has_example, has_diagram, has_reference_block])
        return _clamp(100 * present / 3), issues

    def score_source_quality(
        self,
        sources: List[SourceReference],
        metrics: CitationMetrics,
        valid_pct: float
    ) -> Tuple[float, List[str]]:
        t = self.thresholds
        issues = []
        failed_checks = 0

        if len(sources) < t.min_sources:
            failed_checks += 1
            issues.append(f"Too few sources: {len(sources)} (minSources: {t.min_sources})")

        if valid_pct < t.min_valid_source_percentage:
            failed_checks += 1
            dead = [s.url for s in sources if s.status != SourceStatus.LIVE]
            issues.append(
                f"Too many invalid sources: {valid_pct * 100:.0f}% valid "
                f"(minValidSourcePercentage: {t.min_valid_source_percentage * 100:g}%)"
                + (f"; not live: {', '.join(dead[:5])}" if dead else "")
            )

        if metrics.total < t.min_inline_citations:
            failed_checks += 1
            issues.append(f"Too few inline citations: {metrics.total} (minInlineCitations: {t.min_inline_citations})")

        low = t.citation_density * (1 - t.citation_density_tolerance)
        high = t.citation_density * t.max_citation_density_multiplier
        if not low <= metrics.density <= high:
            failed_checks += 1
            issues.append(
                f"Citation density {metrics.density * 1000:.2f} per 1000 chars is outside "
                f"{low * 1000:.2f}-{high * 1000:.2f} (citationDensity: {t.citation_density * 1000:.2f})"
            )

        issues.extend(metrics.issues)

        live = sum(1 for s in sources if s.status == SourceStatus.LIVE)
        if live == 0 or metrics.total == 0:
            # Uncited or unsourced content has no source quality to speak of
            return 0.0, issues

        score = 100 - 25 * failed_checks - t.dangling_citation_penalty * len(metrics.dangling)
        return _clamp(score), issues


def score_record(record: GenerationRecord, thresholds: ThresholdConfig) -> QualityReport:
    """Convenience function: always scores against the thresholds given"""
    return QualityScorer(thresholds).score_record(record)
