import json
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml

from blogsmith.models.schemas import GenerationRecord, SourceStatus
from blogsmith.utils.error_handler import PublishError, error_handler


class FilePublishSink:
    """Writes a passed record as markdown with YAML front matter plus its quality report"""

    def __init__(self, base_path: str = "blog-output", run_logs_dir: str = "run_logs"):
        self.base_path = Path(base_path)
        self.run_logs_dir = Path(run_logs_dir)

    @classmethod
    def from_settings(cls, settings) -> "FilePublishSink":
        return cls(base_path=settings.output_dir, run_logs_dir=settings.run_logs_dir)

    def publish(self, record: GenerationRecord) -> str:
        """Persist the post and return its location; raises PublishError on any write failure"""
        if record.draft is None:
            raise PublishError(f"Nothing to publish for '{record.topic}': no draft")

        slug = self._create_slug(record.draft.title or record.topic)
        post_path = self.base_path / f"{slug}.md"
        report_path = self.base_path / f"{slug}.report.json"

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            image_refs = self._write_images(record, slug)
            with open(post_path, 'w', encoding='utf-8') as f:
                f.write(self.render_markdown(record, image_refs))
            with open(report_path, 'w', encoding='utf-8') as f:
                json.dump(self._report_payload(record), f, indent=2, default=str)
        except OSError as e:
            raise PublishError(f"Could not write {post_path}: {e}") from e

        error_handler.logger.info(f"Published '{record.topic}' to {post_path}")
        return str(post_path)

    def render_markdown(self, record: GenerationRecord, image_refs: Optional[List[str]] = None) -> str:
        draft = record.draft
        report = record.quality_report

        front_matter = {
            "title": draft.title or record.topic,
            "topic": record.topic,
            "keywords": record.keywords,
            "tags": draft.tags,
            "date": datetime.now().strftime("%Y-%m-%d"),
            "revisions": record.revision_count,
            "quality_score": report.overall_score if report else None,
        }

        parts = ["---", yaml.safe_dump(front_matter, sort_keys=False).strip(), "---", ""]
        parts.extend([f"# {draft.title or record.topic}", "", draft.intro, ""])

        for section in draft.sections:
            parts.extend([f"## {section.title}", "", section.body, ""])

        example = draft.real_world_example
        if example and example.company:
            parts.extend([f"## Real-World Example: {example.company}", ""])
            if example.scenario:
                parts.extend([example.scenario, ""])
            if example.lesson:
                parts.extend([f"**Lesson:** {example.lesson}", ""])

        if draft.diagram:
            diagram = draft.diagram.strip()
            if not diagram.startswith("```"):
                diagram = f"```mermaid\n{diagram}\n```"
            parts.extend(["## Diagram", "", diagram, ""])

        for image in (image_refs if image_refs is not None else draft.images):
            parts.extend([f"![Illustration for {record.topic}]({image})", ""])

        if draft.glossary:
            parts.extend(["## Glossary", ""])
            parts.extend(f"- **{item.term}**: {item.definition}" for item in draft.glossary)
            parts.append("")

        if draft.quick_reference:
            parts.extend(["## Quick Reference", ""])
            parts.extend(f"- {item}" for item in draft.quick_reference)
            parts.append("")

        parts.extend(["## Conclusion", "", draft.conclusion, ""])

        references = self._references(record)
        if references:
            parts.extend(["## References", ""])
            parts.extend(references)
            parts.append("")

        return "\n".join(parts)

    def log_run_state(self, run_name: str, state_data: Dict[str, Any]) -> None:
        """Append a run state entry to the JSONL run log"""
        self.run_logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.run_logs_dir / f"{run_name}.jsonl"

        log_entry = {
            "timestamp": datetime.now().isoformat(),
            **state_data
        }

        with open(log_path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(log_entry, default=str) + '\n')

    def _write_images(self, record: GenerationRecord, slug: str) -> List[str]:
        """Inline SVG assets become files next to the post; paths and URLs pass through"""
        refs = []
        for index, image in enumerate(record.draft.images, 1):
            if image.lstrip().startswith("<svg"):
                image_path = self.base_path / f"{slug}-{index}.svg"
                with open(image_path, 'w', encoding='utf-8') as f:
                    f.write(image)
                refs.append(image_path.name)
            else:
                refs.append(image)
        return refs

    def _references(self, record: GenerationRecord) -> List[str]:
        """Numbered in draft.sources order, the list the [n] markers index; dead links are flagged"""
        known = {source.url: source for source in record.sources}
        lines = []
        for number, url in enumerate(record.draft.sources, 1):
            source = known.get(url)
            label = record.draft.source_titles.get(url) or (source.title if source else None) or url
            note = "" if source is None or source.status == SourceStatus.LIVE else f" ({source.status.value})"
            lines.append(f"{number}. [{label}]({url}){note}")
        return lines

    def _report_payload(self, record: GenerationRecord) -> Dict[str, Any]:
        return {
            "summary": record.summary(),
            "quality_report": record.quality_report.model_dump(mode="json") if record.quality_report else None,
            "report_history": [r.model_dump(mode="json") for r in record.report_history],
            "sources": [s.model_dump(mode="json") for s in record.sources],
            "stage_log": [e.model_dump(mode="json") for e in record.stage_log],
        }

    def _create_slug(self, title: str) -> str:
        slug = re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')
        return slug[:80] or "untitled"
