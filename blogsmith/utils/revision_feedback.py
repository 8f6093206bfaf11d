"""
Revision Feedback System
Turns a failed QualityReport into prioritized corrective guidance for the next draft
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass
from enum import Enum

from blogsmith.models.schemas import Dimension, QualityReport


class FeedbackPriority(Enum):
    CRITICAL = 1    # Dimension below its floor and weighs heavily on the gate
    HIGH = 2        # Dimension below its floor
    MEDIUM = 3      # Dimension passed but still reported issues
    LOW = 4         # Warnings only


@dataclass
class PrioritizedFeedback:
    """Structured feedback with priority and the dimension it came from"""
    issue: str
    priority: FeedbackPriority
    dimension: Optional[Dimension]
    suggested_fix: Optional[str] = None


class RevisionOptimizer:
    """Builds the guidance handed to the draft generator on a revision pass"""

    # Failing these blocks publication most often
    CRITICAL_DIMENSIONS = {Dimension.SOURCE_QUALITY, Dimension.STRUCTURE}

    FIX_SUGGESTIONS = {
        Dimension.STRUCTURE:
            "Keep the section count and each section's length within bounds; expand the introduction and conclusion.",
        Dimension.READABILITY:
            "Vary sentence length, split run-on sentences and write in third person.",
        Dimension.COHERENCE:
            "Use transition words between ideas and mention the main topic in the introduction and conclusion.",
        Dimension.TECHNICAL_DEPTH:
            "Include a named real-world example, a mermaid diagram and a glossary or quick-reference list.",
        Dimension.SOURCE_QUALITY:
            "Cite more reachable sources inline with [n] markers that match the reference list, spread across sections.",
    }

    def optimize_feedback(
        self,
        report: QualityReport,
        revision_count: int,
        max_revisions: int
    ) -> Dict[str, Any]:
        """
        Prioritize the report's issues for the coming revision.
        revision_count is the number of revisions already spent.
        """
        feedback = self._parse_and_prioritize(report)
        focus_areas = self._determine_focus_areas(feedback, revision_count, max_revisions)
        guidance = self._build_guidance(feedback, focus_areas)

        return {
            "prioritized_feedback": feedback,
            "focus_areas": focus_areas,
            "guidance": guidance,
            "feedback_summary": self._create_feedback_summary(feedback)
        }

    def _parse_and_prioritize(self, report: QualityReport) -> List[PrioritizedFeedback]:
        feedback = []

        for score in report.dimensions:
            if not score.passed:
                priority = (FeedbackPriority.CRITICAL if score.dimension in self.CRITICAL_DIMENSIONS
                            else FeedbackPriority.HIGH)
            else:
                priority = FeedbackPriority.MEDIUM

            for issue in score.issues:
                feedback.append(PrioritizedFeedback(
                    issue=issue,
                    priority=priority,
                    dimension=score.dimension,
                    suggested_fix=self.FIX_SUGGESTIONS[score.dimension]
                ))

            if not score.passed and not score.issues:
                feedback.append(PrioritizedFeedback(
                    issue=f"{score.dimension.value} scored {score.score:.0f} (floor {score.floor:.0f})",
                    priority=priority,
                    dimension=score.dimension,
                    suggested_fix=self.FIX_SUGGESTIONS[score.dimension]
                ))

        for warning in report.warnings:
            feedback.append(PrioritizedFeedback(issue=warning, priority=FeedbackPriority.LOW, dimension=None))

        # Stable sort keeps dimension order within a priority
        feedback.sort(key=lambda f: f.priority.value)
        return feedback

    def _determine_focus_areas(
        self,
        feedback: List[PrioritizedFeedback],
        revision_count: int,
        max_revisions: int
    ) -> List[str]:
        """Narrow the focus as the remaining revisions run out"""
        remaining = max_revisions - revision_count

        if remaining <= 1:
            focus_priorities = {FeedbackPriority.CRITICAL, FeedbackPriority.HIGH}
        else:
            focus_priorities = {FeedbackPriority.CRITICAL, FeedbackPriority.HIGH, FeedbackPriority.MEDIUM}

        areas = []
        for item in feedback:
            if item.priority in focus_priorities and item.dimension and item.dimension.value not in areas:
                areas.append(item.dimension.value)
        return areas

    def _build_guidance(self, feedback: List[PrioritizedFeedback], focus_areas: List[str]) -> List[str]:
        guidance = []
        fixes_given = set()

        for item in feedback:
            in_focus = item.dimension is not None and item.dimension.value in focus_areas
            if item.dimension is not None and not in_focus:
                continue
            guidance.append(f"[{item.priority.name}] {item.issue}")
            if item.suggested_fix and item.dimension not in fixes_given:
                guidance.append(f"    Fix: {item.suggested_fix}")
                fixes_given.add(item.dimension)

        return guidance

    def _create_feedback_summary(self, feedback: List[PrioritizedFeedback]) -> Dict[str, Any]:
        """Create a summary of feedback for logging and display"""
        by_priority = {}
        by_dimension = {}

        for item in feedback:
            priority = item.priority.name
            by_priority[priority] = by_priority.get(priority, 0) + 1

            dimension = item.dimension.value if item.dimension else "warning"
            by_dimension[dimension] = by_dimension.get(dimension, 0) + 1

        return {
            "total_issues": len(feedback),
            "by_priority": by_priority,
            "by_dimension": by_dimension,
            "top_issues": [f.issue for f in feedback[:3]]
        }


# Global instance
revision_optimizer = RevisionOptimizer()


def build_revision_guidance(report: QualityReport, revision_count: int, max_revisions: int) -> List[str]:
    """Convenience function returning only the guidance lines"""
    return revision_optimizer.optimize_feedback(report, revision_count, max_revisions)["guidance"]
