"""
Continuous tracing system for pipeline visibility
"""

import json
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List


STAGE_ICONS = {
    "find_case_study": "🔎",
    "validate_sources": "🔗",
    "generate_draft": "✏️ ",
    "verify_draft_sources": "🔗",
    "generate_diagram": "📊",
    "analyze_citations": "📚",
    "score_quality": "📏",
    "gate": "🚦",
    "generate_images": "🖼️ ",
    "publish": "📁",
}


class PipelineTracer:
    """Provides continuous tracing and progress reporting for pipeline runs"""

    def __init__(self, run_name: str, verbose: bool = True, log_dir: str = "run_logs"):
        self.run_name = run_name
        self.verbose = verbose
        self.start_time = time.time()
        self.stage_history: List[Dict[str, Any]] = []
        self.trace_file = Path(log_dir) / f"{run_name}_trace.jsonl"
        self._lock = threading.Lock()

        self.trace_file.parent.mkdir(parents=True, exist_ok=True)

        self._write_trace({
            "type": "run_start",
            "timestamp": datetime.now().isoformat(),
            "run_name": run_name,
            "start_time": self.start_time
        })

    def record_start(self, topic: str, max_revisions: int):
        """A record entered the pipeline"""
        self._print(f"🚀 [{topic}] Starting (max revisions: {max_revisions})")
        self._trace("record_start", {"topic": topic, "max_revisions": max_revisions})

    def stage_complete(self, topic: str, stage: str, duration: float, status: str, detail: Optional[str] = None):
        """One stage finished; status is the record status it left behind"""
        icon = STAGE_ICONS.get(stage, "•")
        suffix = f" - {detail}" if detail else ""
        self._print(f"{icon} [{topic}] {stage} ({duration:.2f}s) -> {status}{suffix}")

        event = {"topic": topic, "stage": stage, "duration": duration, "status": status, "detail": detail}
        with self._lock:
            self.stage_history.append(event)
        self._trace("stage_complete", event)

    def gate_result(self, topic: str, overall_score: float, passed: bool, failed_dimensions: List[str]):
        if passed:
            self._print(f"     ✅ [{topic}] Quality gate passed ({overall_score:.1f}/100)")
        else:
            self._print(
                f"     📋 [{topic}] Quality gate failed ({overall_score:.1f}/100): {', '.join(failed_dimensions) or 'overall'}"
            )
        self._trace("gate_result", {
            "topic": topic,
            "overall_score": overall_score,
            "passed": passed,
            "failed_dimensions": failed_dimensions
        })

    def revision_requested(self, topic: str, revision_count: int, max_revisions: int, issues_count: int):
        self._print(f"     🔁 [{topic}] Revision {revision_count}/{max_revisions} with {issues_count} issue(s) to fix")
        self._trace("revision_requested", {
            "topic": topic,
            "revision_count": revision_count,
            "max_revisions": max_revisions,
            "issues_count": issues_count
        })

    def record_complete(self, summary: Dict[str, Any]):
        """A record reached a terminal status"""
        topic = summary.get("topic")
        if summary.get("status") == "published":
            self._print(f"🎊 [{topic}] Published to {summary.get('publish_location')}")
        else:
            self._print(f"❌ [{topic}] Aborted: {summary.get('error')}")
        self._trace("record_complete", summary)

    def stage_error(self, topic: str, stage: str, error_message: str):
        self._print(f"     ⚠️  [{topic}] Error in {stage}: {error_message}")
        self._trace("stage_error", {"topic": topic, "stage": stage, "error_message": error_message})

    def run_complete(self, published: int, total: int):
        elapsed = time.time() - self.start_time
        self._print(f"🏁 Run {self.run_name} finished in {elapsed:.1f}s: {published}/{total} published")
        self._write_trace({
            "type": "run_end",
            "timestamp": datetime.now().isoformat(),
            "elapsed_time": elapsed,
            "published": published,
            "total": total
        })

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the run"""
        with self._lock:
            stages = len(self.stage_history)
        return {
            "run_name": self.run_name,
            "stages_traced": stages,
            "elapsed_time": time.time() - self.start_time,
            "trace_file": str(self.trace_file)
        }

    def _print(self, message: str):
        if self.verbose:
            print(message)

    def _trace(self, event_type: str, context: Dict[str, Any]):
        trace_data = {
            "type": event_type,
            "timestamp": datetime.now().isoformat(),
            "elapsed": time.time() - self.start_time,
            "run_name": self.run_name
        }
        trace_data.update(context)
        self._write_trace(trace_data)

    def _write_trace(self, data: Dict[str, Any]):
        """Write trace data to file"""
        try:
            with self._lock:
                with open(self.trace_file, 'a', encoding='utf-8') as f:
                    f.write(json.dumps(data, default=str) + '\n')
        except OSError as e:
            # Tracing never breaks a run
            if self.verbose:
                print(f"⚠️  Trace write error: {e}")


# Global tracer instance
_tracer: Optional[PipelineTracer] = None


def initialize_tracer(run_name: str, verbose: bool = True, log_dir: str = "run_logs") -> PipelineTracer:
    """Initialize the global tracer"""
    global _tracer
    _tracer = PipelineTracer(run_name, verbose, log_dir)
    return _tracer


def get_tracer() -> Optional[PipelineTracer]:
    """Get the current tracer instance"""
    return _tracer
