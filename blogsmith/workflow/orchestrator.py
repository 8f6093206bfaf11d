"""
Pipeline Orchestrator
Drives one GenerationRecord through the stage graph with a bounded revision loop
"""

from typing import List, Optional

from langgraph.graph import StateGraph, END

from blogsmith.models.schemas import GenerationRecord, PipelineState, RecordStatus
from blogsmith.utils.config import ThresholdConfig
from blogsmith.utils.error_handler import (
    ErrorSeverity,
    FatalConfigurationError,
    PipelineCancelled,
    error_handler,
    record_error,
)
from blogsmith.utils.retry import CancellationToken
from blogsmith.workflow.nodes import PipelineNodes


# Stages executed once per revision pass
STEPS_PER_REVISION = 7


class PipelineOrchestrator:
    """Builds the stage graph once and runs records through it"""

    def __init__(self, nodes: PipelineNodes):
        self.nodes = nodes
        self.graph = self._build_workflow_graph()

    def _build_workflow_graph(self):
        workflow = StateGraph(PipelineState)
        n = self.nodes

        stages = [
            ("find_case_study", n.find_case_study),
            ("validate_sources", n.validate_sources),
            ("generate_draft", n.generate_draft),
            ("verify_draft_sources", n.verify_draft_sources),
            ("generate_diagram", n.generate_diagram),
            ("analyze_citations", n.analyze_citations),
            ("score_quality", n.score_quality),
            ("gate", n.gate),
            ("generate_images", n.generate_images),
            ("publish", n.publish),
        ]
        for name, fn in stages:
            workflow.add_node(name, n.stage(name, fn))

        workflow.set_entry_point("find_case_study")

        def route(state: PipelineState) -> str:
            """Terminal records always leave the graph"""
            if state.record.is_terminal:
                return "abort"
            return state.next_step

        routes = {
            "find_case_study": {"continue": "validate_sources"},
            "validate_sources": {"continue": "generate_draft", "retry_case": "find_case_study"},
            "generate_draft": {"continue": "verify_draft_sources", "revise": "generate_draft"},
            "verify_draft_sources": {"continue": "generate_diagram"},
            "generate_diagram": {"continue": "analyze_citations"},
            "analyze_citations": {"continue": "score_quality"},
            "score_quality": {"continue": "gate"},
            "gate": {"publish": "generate_images", "revise": "generate_draft"},
            "generate_images": {"continue": "publish"},
            "publish": {"continue": END},
        }
        for name, mapping in routes.items():
            workflow.add_conditional_edges(name, route, {**mapping, "abort": END})

        return workflow.compile()

    def recursion_limit(self, max_revisions: int) -> int:
        """Large enough that the revision counter, not the framework, bounds the loop"""
        case_steps = 2 * self.nodes.settings.max_case_attempts
        return case_steps + (max_revisions + 1) * (STEPS_PER_REVISION + 1) + 10

    def run(
        self,
        topic: str,
        thresholds: Optional[ThresholdConfig] = None,
        keywords: Optional[List[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
        max_revisions: Optional[int] = None
    ) -> GenerationRecord:
        """
        Run one topic to a terminal status.
        Returns the record (published or aborted); FatalConfigurationError and
        PipelineCancelled are re-raised after the record is marked aborted.
        """
        thresholds = thresholds or self.nodes.thresholds
        token = cancel_token or CancellationToken()
        revisions = max_revisions if max_revisions is not None else self.nodes.settings.max_revisions

        record = GenerationRecord(topic=topic, keywords=list(keywords or []), max_revisions=revisions)
        tracer = self.nodes.tracer
        if tracer:
            tracer.record_start(topic, revisions)

        config = {
            "recursion_limit": self.recursion_limit(revisions),
            "configurable": {"thresholds": thresholds, "cancel_token": token},
        }

        try:
            final_state = self.graph.invoke(PipelineState(record=record), config=config)
            if isinstance(final_state, dict):
                record = final_state.get("record", record)
            else:
                record = final_state.record
        except (FatalConfigurationError, PipelineCancelled) as e:
            self._mark_aborted(record, str(e))
            self._finish(record)
            e.record = record
            raise
        except Exception as e:
            # Anything unclassified halts this record but not the batch
            record_error(e, component="orchestrator", operation="run", severity=ErrorSeverity.CRITICAL,
                         user_message=f"Unexpected failure while generating '{topic}'")
            self._mark_aborted(record, f"Unexpected error: {e}")

        if not record.is_terminal:
            self._mark_aborted(record, "Pipeline ended without reaching a terminal status")

        self._finish(record)
        return record

    def _mark_aborted(self, record: GenerationRecord, message: str):
        if not record.is_terminal:
            record.status = RecordStatus.ABORTED
            record.error = record.error or message

    def _finish(self, record: GenerationRecord):
        summary = record.summary()
        error_handler.logger.info(f"Record finished: {summary}")
        tracer = self.nodes.tracer
        if tracer:
            tracer.record_complete(summary)
