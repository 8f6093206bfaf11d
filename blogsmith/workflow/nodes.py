import time
from typing import Any, Callable, Dict, List, Optional

from langchain_core.runnables import RunnableConfig

from blogsmith.agents.providers import AssetGenerator, CaseStudyFinder, DraftGenerator, PublishSink
from blogsmith.models.schemas import (
    GenerationRecord,
    PipelineState,
    RecordStatus,
    SourceReference,
    SourceStatus,
    StageEvent,
)
from blogsmith.quality import text_metrics
from blogsmith.quality.scorer import QualityScorer
from blogsmith.tools.citations import CitationAnalyzer
from blogsmith.tools.links import SourceValidator
from blogsmith.utils.cache import ContentCache
from blogsmith.utils.config import PipelineSettings, ThresholdConfig
from blogsmith.utils.error_handler import (
    ErrorSeverity,
    FatalConfigurationError,
    InvalidContentError,
    PipelineCancelled,
    PipelineError,
    PublishError,
    QualityGateFailure,
    StatusTransitionError,
    TransientProviderError,
    error_handler,
    record_error,
)
from blogsmith.utils.retry import CancellationToken, RetryController
from blogsmith.utils.revision_feedback import revision_optimizer
from blogsmith.utils.tracer import PipelineTracer, get_tracer


StageFn = Callable[[PipelineState, Dict[str, Any]], Dict[str, Any]]


class PipelineNodes:
    """LangGraph node implementations; one instance is shared by every record of a batch"""

    def __init__(
        self,
        case_study_finder: Optional[CaseStudyFinder],
        draft_generator: DraftGenerator,
        source_validator: SourceValidator,
        publish_sink: PublishSink,
        diagram_generator: Optional[AssetGenerator] = None,
        image_generator: Optional[AssetGenerator] = None,
        thresholds: Optional[ThresholdConfig] = None,
        settings: Optional[PipelineSettings] = None,
        retry_controller: Optional[RetryController] = None,
        cache: Optional[ContentCache] = None,
        tracer: Optional[PipelineTracer] = None
    ):
        self.case_study_finder = case_study_finder
        self.draft_generator = draft_generator
        self.source_validator = source_validator
        self.publish_sink = publish_sink
        self.diagram_generator = diagram_generator
        self.image_generator = image_generator
        self.thresholds = thresholds or ThresholdConfig()
        self.settings = settings or PipelineSettings()
        self.retry = retry_controller or RetryController.from_settings(self.settings)
        self.cache = cache or ContentCache.from_settings(self.settings)
        self._tracer = tracer

    @property
    def tracer(self) -> Optional[PipelineTracer]:
        return self._tracer or get_tracer()

    # ------------------------------------------------------------------
    # Stage wrapper
    # ------------------------------------------------------------------

    def stage(self, name: str, fn: StageFn):
        """Wrap a stage: cancellation check, timing, logging, tracing and abort handling"""

        def run(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
            options = (config or {}).get("configurable", {})
            token: CancellationToken = options.get("cancel_token") or CancellationToken()
            record = state.record
            started = time.monotonic()
            update: Dict[str, Any] = {}

            try:
                token.raise_if_cancelled(name)
                update = fn(state, options) or {}
            except (FatalConfigurationError, PipelineCancelled) as e:
                self._abort(record, f"{name}: {e}")
                self._log_stage(record, name, started, str(e))
                raise
            except PipelineError as e:
                record_error(e, component="workflow", operation=name, severity=ErrorSeverity.HIGH,
                             user_message=f"Stage {name} failed for '{record.topic}'")
                if self.tracer:
                    self.tracer.stage_error(record.topic, name, str(e))
                self._abort(record, f"{name}: {e}")
                update = {"detail": str(e)}

            detail = update.pop("detail", None)
            self._log_stage(record, name, started, detail)
            update.setdefault("next_step", "continue")
            update["record"] = record
            return update

        run.__name__ = name
        return run

    def _log_stage(self, record: GenerationRecord, name: str, started: float, detail: Optional[str]):
        duration = time.monotonic() - started
        record.stage_log.append(StageEvent(stage=name, duration=duration, status=record.status, detail=detail))
        error_handler.logger.info(
            f"[{record.topic}] {name} finished in {duration:.2f}s -> {record.status.value}"
            + (f" ({detail})" if detail else "")
        )
        if self.tracer:
            self.tracer.stage_complete(record.topic, name, duration, record.status.value, detail)

    def _transition(self, record: GenerationRecord, new_status: RecordStatus):
        if not record.can_transition(new_status):
            raise StatusTransitionError(f"Illegal status transition {record.status.value} -> {new_status.value}")
        record.status = new_status

    def _abort(self, record: GenerationRecord, message: str):
        if record.is_terminal:
            return
        record.status = RecordStatus.ABORTED
        record.error = record.error or message

    def _thresholds(self, options: Dict[str, Any]) -> ThresholdConfig:
        return options.get("thresholds") or self.thresholds

    def _token(self, options: Dict[str, Any]) -> CancellationToken:
        return options.get("cancel_token") or CancellationToken()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def find_case_study(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        """Look for a documented real-world case, skipping entities whose source proved dead"""
        record = state.record
        attempt = state.case_attempts + 1

        if self.case_study_finder is None:
            return {"case_attempts": self.settings.max_case_attempts, "detail": "no case study finder"}

        excluded = list(state.excluded_entities)
        key = ("case_study", record.topic.strip().lower(), tuple(sorted(e.lower() for e in excluded)))
        token = self._token(options)

        def lookup():
            return self.retry.call_with_retry(
                lambda: self.case_study_finder.find(record.topic, excluded),
                operation="find_case_study",
                cancel_token=token
            )

        try:
            case = self.cache.get_or_create(key, lookup)
        except TransientProviderError as e:
            # Degrade: write without a featured case
            error_handler.logger.warning(f"[{record.topic}] Case study lookup gave up: {e}")
            record.case_study = None
            return {"case_attempts": self.settings.max_case_attempts, "detail": "case study lookup exhausted"}

        record.case_study = case
        detail = f"attempt {attempt}: {case.entity if case else 'none found'}"
        return {"case_attempts": attempt, "detail": detail}

    def validate_sources(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        """Check the case study source; only a live one becomes part of the record"""
        record = state.record
        token = self._token(options)
        case = record.case_study

        if case is None:
            return {"detail": "no case study source"}

        if not case.source_url:
            return self._reject_case(state, case.entity, "case study has no source URL")

        candidate = SourceReference(url=case.source_url, title=f"{case.entity} case study")
        if candidate.url in record.source_urls():
            checked = [s for s in record.sources if s.url == candidate.url][0]
        else:
            checked = self.source_validator.validate([candidate], cancel_token=token)[0]

        if checked.status != SourceStatus.LIVE:
            return self._reject_case(state, case.entity, f"source {checked.status.value}: {case.source_url}")

        record.add_sources([checked.url], {checked.url: checked.title})
        record.merge_sources([checked])
        return {"detail": f"{case.entity} source live"}

    def _reject_case(self, state: PipelineState, entity: str, reason: str) -> Dict[str, Any]:
        record = state.record
        record.case_study = None
        excluded = state.excluded_entities + [entity]
        if state.case_attempts < self.settings.max_case_attempts:
            return {"excluded_entities": excluded, "next_step": "retry_case", "detail": f"{reason}; retrying"}
        return {"excluded_entities": excluded, "detail": f"{reason}; continuing without a case study"}

    def generate_draft(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        token = self._token(options)

        if record.status == RecordStatus.FAILED:
            self._transition(record, RecordStatus.DRAFTING)

        try:
            draft = self.retry.call_with_retry(
                lambda: self.draft_generator.generate(
                    record.topic,
                    record.case_study,
                    list(record.sources),
                    list(record.prior_issues),
                    keywords=list(record.keywords)
                ),
                operation="generate_draft",
                cancel_token=token
            )
        except InvalidContentError as e:
            return self._request_revision(record, [f"[CRITICAL] {e}"], str(e))
        except TransientProviderError as e:
            self._abort(record, str(e))
            return {"next_step": "abort", "detail": str(e)}

        record.draft = draft
        words = text_metrics.count_words(draft.full_text())
        return {"detail": f"revision {record.revision_count}: {len(draft.sections)} sections, {words} words"}

    def verify_draft_sources(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        """Register the draft's references and any linked URLs, then check the new ones"""
        record = state.record
        draft = record.draft
        self._transition(record, RecordStatus.VALIDATING)

        urls = list(draft.sources) + self.source_validator.extract_urls(draft.full_text())
        added = record.add_sources(urls, draft.source_titles)
        checked = self.source_validator.validate(record.sources, cancel_token=self._token(options))
        record.merge_sources(checked)

        live = sum(1 for s in record.sources if s.status == SourceStatus.LIVE)
        return {"detail": f"{len(added)} new, {live}/{len(record.sources)} live"}

    def generate_diagram(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        draft = record.draft

        if draft.diagram or text_metrics.has_diagram_reference(draft.full_text()):
            return {"detail": "diagram already present"}
        if self.diagram_generator is None:
            return {"detail": "no diagram generator"}

        diagram = self._generate_asset(self.diagram_generator, record, "generate_diagram", options)
        if diagram:
            draft.diagram = diagram
            return {"detail": "diagram added"}
        return {"detail": "continuing without diagram"}

    def analyze_citations(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        analyzer = CitationAnalyzer(self._thresholds(options).max_uncited_section_ratio)
        citations, metrics = analyzer.analyze(record.draft, len(record.draft.sources), record.revision_count)

        record.citations.extend(citations)
        record.citation_metrics = metrics
        return {"detail": f"{metrics.total} citations, density {metrics.density * 1000:.2f}/1000 chars"}

    def score_quality(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        report = QualityScorer(self._thresholds(options)).score_record(record)
        record.quality_report = report
        record.report_history.append(report)
        return {"detail": f"overall {report.overall_score:.1f}"}

    def gate(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        report = record.quality_report
        failed = [d.value for d in report.failed_dimensions()]

        if self.tracer:
            self.tracer.gate_result(record.topic, report.overall_score, report.passed, failed)

        if report.passed:
            self._transition(record, RecordStatus.PASSED)
            return {"next_step": "publish", "detail": "passed"}

        if record.revision_count < record.max_revisions:
            guidance = revision_optimizer.optimize_feedback(report, record.revision_count, record.max_revisions)["guidance"]
            return self._request_revision(record, guidance, f"failed: {', '.join(failed) or 'overall score'}")

        failure = QualityGateFailure(report, record.revision_count)
        record_error(failure, component="workflow", operation="gate", severity=ErrorSeverity.MEDIUM,
                     user_message=f"'{record.topic}' did not pass the quality gate")
        self._abort(record, str(failure))
        return {"next_step": "abort", "detail": str(failure)}

    def _request_revision(self, record: GenerationRecord, guidance: List[str], reason: str) -> Dict[str, Any]:
        """Fail this attempt and send the record back to drafting, or abort once revisions are spent"""
        if record.revision_count >= record.max_revisions:
            self._abort(record, f"Revisions exhausted: {reason}")
            return {"next_step": "abort", "detail": reason}

        self._transition(record, RecordStatus.FAILED)
        record.revision_count += 1
        record.prior_issues = guidance
        if self.tracer:
            self.tracer.revision_requested(record.topic, record.revision_count, record.max_revisions, len(guidance))
        return {"next_step": "revise", "detail": reason}

    def generate_images(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        if self.image_generator is None:
            return {"detail": "no image generator"}

        image = self._generate_asset(self.image_generator, record, "generate_images", options)
        if image:
            record.draft.images.append(image)
            return {"detail": "illustration added"}
        return {"detail": "continuing without illustration"}

    def publish(self, state: PipelineState, options: Dict[str, Any]) -> Dict[str, Any]:
        record = state.record
        if record.status != RecordStatus.PASSED:
            raise StatusTransitionError(f"Cannot publish a record in status {record.status.value}")

        try:
            location = self.publish_sink.publish(record)
        except (PublishError, OSError) as e:
            record_error(e, component="publish", operation="publish", severity=ErrorSeverity.HIGH,
                         user_message=f"Publishing '{record.topic}' failed")
            self._abort(record, f"Publish failed: {e}")
            return {"next_step": "abort", "detail": str(e)}

        record.publish_location = location
        self._transition(record, RecordStatus.PUBLISHED)
        return {"detail": location}

    def _generate_asset(self, generator: AssetGenerator, record: GenerationRecord, operation: str,
                        options: Dict[str, Any]) -> Optional[str]:
        """Assets are optional: exhausted retries degrade to no asset"""
        draft = record.draft
        context = {
            "topic": record.topic,
            "title": draft.title,
            "outline": "\n".join(f"- {s.title}" for s in draft.sections),
        }
        try:
            return self.retry.call_with_retry(
                lambda: generator.generate(context),
                operation=operation,
                cancel_token=self._token(options)
            )
        except TransientProviderError as e:
            error_handler.logger.warning(f"[{record.topic}] {operation} degraded: {e}")
            return None
