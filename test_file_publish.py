#!/usr/bin/env python3
"""
Markdown publishing tests
"""

import json

import pytest
import yaml

from blogsmith.models.schemas import GenerationRecord, SourceStatus
from blogsmith.quality.scorer import score_record
from blogsmith.utils.config import ThresholdConfig
from blogsmith.utils.error_handler import PublishError
from blogsmith.utils.file_io import FilePublishSink

from sample_posts import SOURCE_URLS, good_draft, live_sources


def passed_record():
    record = GenerationRecord(topic="Netflix microservices", keywords=["microservices"])
    record.draft = good_draft(glossary=True)
    record.sources = live_sources(9, dead=1)
    record.quality_report = score_record(record, ThresholdConfig())
    return record


def test_publish_writes_post_and_report(tmp_path):
    sink = FilePublishSink(base_path=str(tmp_path / "posts"), run_logs_dir=str(tmp_path / "logs"))
    record = passed_record()

    location = sink.publish(record)

    post = (tmp_path / "posts" / "how-netflix-scaled-microservices.md")
    assert location == str(post)
    content = post.read_text(encoding="utf-8")

    front_matter = yaml.safe_load(content.split("---")[1])
    assert front_matter["title"] == "How Netflix Scaled Microservices"
    assert front_matter["keywords"] == ["microservices"]
    assert front_matter["quality_score"] == record.quality_report.overall_score

    assert "## Why Netflix Left the Monolith" in content
    assert "```mermaid" in content
    assert "## Glossary" in content
    assert "## Real-World Example: Netflix" in content

    report = json.loads((tmp_path / "posts" / "how-netflix-scaled-microservices.report.json").read_text(encoding="utf-8"))
    assert report["summary"]["topic"] == "Netflix microservices"
    assert len(report["sources"]) == 9


def test_references_follow_draft_order_and_flag_dead_links(tmp_path):
    record = passed_record()
    markdown = FilePublishSink(base_path=str(tmp_path)).render_markdown(record)

    references = markdown.split("## References")[1].strip().splitlines()
    assert references[0] == f"1. [{record.sources[0].url}]({record.sources[0].url})"
    assert references[-1].startswith("9. ")
    assert references[-1].endswith("(dead)")
    assert record.sources[-1].status == SourceStatus.DEAD


def test_references_number_the_draft_sources_not_the_record(tmp_path):
    record = passed_record()
    record.draft.sources = [SOURCE_URLS[2], SOURCE_URLS[0]]
    record.draft.source_titles = {SOURCE_URLS[0]: "Netflix tech blog"}

    markdown = FilePublishSink(base_path=str(tmp_path)).render_markdown(record)
    references = markdown.split("## References")[1].strip().splitlines()

    assert references == [
        f"1. [{SOURCE_URLS[2]}]({SOURCE_URLS[2]})",
        f"2. [Netflix tech blog]({SOURCE_URLS[0]})",
    ]


def test_inline_svg_images_become_files(tmp_path):
    record = passed_record()
    record.draft.images = ["<svg xmlns='http://www.w3.org/2000/svg'></svg>", "https://cdn.example.com/x.png"]

    FilePublishSink(base_path=str(tmp_path)).publish(record)

    svg = tmp_path / "how-netflix-scaled-microservices-1.svg"
    assert svg.exists()
    content = (tmp_path / "how-netflix-scaled-microservices.md").read_text(encoding="utf-8")
    assert "](how-netflix-scaled-microservices-1.svg)" in content
    assert "](https://cdn.example.com/x.png)" in content


def test_publish_without_draft_fails():
    with pytest.raises(PublishError):
        FilePublishSink().publish(GenerationRecord(topic="empty"))


def test_unwritable_location_raises_publish_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(PublishError):
        FilePublishSink(base_path=str(blocker / "posts")).publish(passed_record())


def test_run_state_log_appends_jsonl(tmp_path):
    sink = FilePublishSink(run_logs_dir=str(tmp_path))
    sink.log_run_state("run_1", {"topic": "a", "status": "published"})
    sink.log_run_state("run_1", {"topic": "b", "status": "aborted"})

    lines = (tmp_path / "run_1.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["topic"] for line in lines] == ["a", "b"]
