#!/usr/bin/env python3
"""
End-to-end pipeline tests with fake providers:
1. Happy path, revision loop and the revision bound
2. Abort paths (provider exhaustion, publish failure, fatal configuration, cancellation)
3. Case study source handling and optional asset degradation
4. Concurrent batches
"""

from blogsmith.models.schemas import CaseStudy, RecordStatus, SourceStatus
from blogsmith.tools.links import SourceValidator
from blogsmith.utils.config import PipelineSettings, ThresholdConfig
from blogsmith.utils.error_handler import (
    FatalConfigurationError,
    InvalidContentError,
    PipelineCancelled,
    TransientNetworkError,
)
from blogsmith.utils.file_io import FilePublishSink
from blogsmith.utils.retry import CancellationToken, RetryController
from blogsmith.workflow.batch import BatchRunner
from blogsmith.workflow.nodes import PipelineNodes
from blogsmith.workflow.orchestrator import PipelineOrchestrator

from sample_posts import (
    NETFLIX_CASE,
    FakeAssetGenerator,
    FakeCaseStudyFinder,
    FakeDraftGenerator,
    FakePublishSink,
    FakeSession,
    SOURCE_URLS,
    good_draft,
    poor_draft,
)


SPOTIFY_CASE = CaseStudy(
    entity="Spotify",
    source_url="https://engineering.spotify.example.com/squads",
    summary="Spotify split its backend into autonomous services",
    scenario="Hundreds of squads deploying independently",
    lesson="Align service boundaries with team boundaries"
)

FULL_PASS = [
    "find_case_study",
    "validate_sources",
    "generate_draft",
    "verify_draft_sources",
    "generate_diagram",
    "analyze_citations",
    "score_quality",
    "gate",
    "generate_images",
    "publish",
]


def build_pipeline(outcomes, cases=None, session=None, sink=None, diagram=None, images=None,
                   settings=None):
    """Wire PipelineNodes with fakes; returns (orchestrator, draft generator, sink, finder)"""
    generator = FakeDraftGenerator(outcomes)
    finder = FakeCaseStudyFinder([NETFLIX_CASE] if cases is None else cases)
    sink = sink or FakePublishSink()
    settings = settings or PipelineSettings(max_revisions=2, max_case_attempts=3)
    nodes = PipelineNodes(
        case_study_finder=finder,
        draft_generator=generator,
        source_validator=SourceValidator(timeout=1, timeout_retries=0, session=session or FakeSession()),
        publish_sink=sink,
        diagram_generator=diagram,
        image_generator=images,
        thresholds=ThresholdConfig(),
        settings=settings,
        retry_controller=RetryController(max_attempts=2, per_attempt_timeout=5.0, backoff_delay=0)
    )
    return PipelineOrchestrator(nodes), generator, sink, finder


def run(orchestrator, topic="Netflix microservices", **kwargs):
    return orchestrator.run(topic, keywords=["microservices"], **kwargs)


def stages(record):
    return [event.stage for event in record.stage_log]


def test_happy_path_publishes():
    print("\n" + "="*70)
    print("HAPPY PATH")
    print("="*70)

    orchestrator, generator, sink, _ = build_pipeline([good_draft()])
    record = run(orchestrator)

    for event in record.stage_log:
        print(f"   {event.stage}: {event.status.value} {event.detail or ''}")

    assert record.status == RecordStatus.PUBLISHED
    assert record.revision_count == 0
    assert record.quality_report.passed
    assert record.publish_location == "memory://Netflix-microservices"
    assert sink.published == [record]
    assert stages(record) == FULL_PASS

    # Case study source first, then the draft references
    assert record.sources[0].url == NETFLIX_CASE.source_url
    assert len(record.sources) == 10
    assert all(s.status == SourceStatus.LIVE for s in record.sources)
    assert generator.calls[0]["case_study"] == NETFLIX_CASE
    assert generator.calls[0]["keywords"] == ["microservices"]
    assert record.error is None


def test_failed_gate_revises_with_guidance_then_passes():
    orchestrator, generator, _, _ = build_pipeline([poor_draft(), good_draft()])
    record = run(orchestrator)

    assert record.status == RecordStatus.PUBLISHED
    assert record.revision_count == 1
    assert len(generator.calls) == 2
    assert generator.calls[0]["prior_issues"] == []
    assert generator.calls[1]["prior_issues"], "second draft should receive corrective guidance"

    assert len(record.report_history) == 2
    assert not record.report_history[0].passed
    assert record.report_history[1].passed
    # Citations from each pass are kept and tagged with their revision
    assert {c.revision for c in record.citations} == {1}
    assert len(record.current_citations) == 6


def test_revision_bound_aborts_with_gate_failure():
    orchestrator, generator, sink, _ = build_pipeline([poor_draft()])
    record = run(orchestrator, max_revisions=2)

    print(f"   {record.error}")
    assert record.status == RecordStatus.ABORTED
    assert record.revision_count == 2
    assert len(generator.calls) == 3
    assert "Quality gate failed after 2 revision(s)" in record.error
    assert record.quality_report is not None and not record.quality_report.passed
    assert sink.published == []
    assert stages(record)[-1] == "gate"


def test_zero_revisions_means_one_attempt():
    orchestrator, generator, _, _ = build_pipeline([poor_draft()])
    record = run(orchestrator, max_revisions=0)

    assert record.status == RecordStatus.ABORTED
    assert len(generator.calls) == 1


def test_invalid_content_consumes_a_revision():
    orchestrator, generator, _, _ = build_pipeline([InvalidContentError("draft has no sections"), good_draft()])
    record = run(orchestrator)

    assert record.status == RecordStatus.PUBLISHED
    assert record.revision_count == 1
    assert any("draft has no sections" in issue for issue in generator.calls[1]["prior_issues"])
    assert stages(record)[:4] == ["find_case_study", "validate_sources", "generate_draft", "generate_draft"]


def test_references_match_markers_after_revision_with_dead_source(tmp_path):
    dead_url = "https://gone.example.com/postmortem"
    first = poor_draft()
    first.sources = [dead_url]
    session = FakeSession({dead_url: 404})
    orchestrator, generator, _, _ = build_pipeline([first, good_draft()], session=session)
    record = run(orchestrator)

    assert record.status == RecordStatus.PUBLISHED
    assert record.revision_count == 1
    dead = [s for s in generator.calls[1]["sources"] if s.status == SourceStatus.DEAD]
    assert [s.url for s in dead] == [dead_url]

    markdown = FilePublishSink(base_path=str(tmp_path)).render_markdown(record)
    references = markdown.split("## References")[1].strip().splitlines()

    # [2] in the text is the second entry of the draft's own list
    assert "[2]" in record.draft.full_text()
    assert references[1] == f"2. [{record.draft.sources[1]}]({record.draft.sources[1]})"
    assert len(references) == len(record.draft.sources)
    assert not any(dead_url in line for line in references)
    assert record.citation_metrics.dangling == []


def test_dangling_markers_are_judged_against_the_draft_sources():
    draft = good_draft()
    draft.sources = SOURCE_URLS[:5]
    orchestrator, _, _, _ = build_pipeline([draft])
    record = run(orchestrator, max_revisions=0)

    # Case study source makes six on the record, but the draft lists five
    assert len(record.sources) == 6
    assert record.citation_metrics.dangling == [6, 8]


def test_provider_exhaustion_aborts_record():
    orchestrator, generator, sink, _ = build_pipeline([TransientNetworkError("connection reset")])
    record = run(orchestrator)

    assert record.status == RecordStatus.ABORTED
    assert "generate_draft failed after 2 attempt(s)" in record.error
    assert len(generator.calls) == 2
    assert stages(record)[-1] == "generate_draft"
    assert sink.published == []


def test_publish_failure_aborts_record():
    orchestrator, _, _, _ = build_pipeline([good_draft()], sink=FakePublishSink(fail=True))
    record = run(orchestrator)

    assert record.status == RecordStatus.ABORTED
    assert record.publish_location is None
    assert "Publish failed: disk full" in record.error
    assert record.quality_report.passed


def test_fatal_configuration_is_reraised_with_aborted_record():
    orchestrator, generator, _, _ = build_pipeline([FatalConfigurationError("API key rejected")])

    try:
        run(orchestrator)
    except FatalConfigurationError as e:
        assert e.record.status == RecordStatus.ABORTED
        assert "API key rejected" in e.record.error
    else:
        raise AssertionError("fatal configuration errors must propagate")

    # Fatal errors are never retried
    assert len(generator.calls) == 1


def test_cancelled_run_does_no_work():
    orchestrator, generator, _, finder = build_pipeline([good_draft()])
    token = CancellationToken()
    token.cancel()

    try:
        run(orchestrator, cancel_token=token)
    except PipelineCancelled as e:
        assert e.record.status == RecordStatus.ABORTED
    else:
        raise AssertionError("expected PipelineCancelled")

    assert finder.calls == []
    assert generator.calls == []


def test_dead_case_source_is_excluded_and_lookup_retried():
    session = FakeSession({NETFLIX_CASE.source_url: 404})
    orchestrator, generator, _, finder = build_pipeline([good_draft()], cases=[NETFLIX_CASE, SPOTIFY_CASE],
                                                        session=session)
    record = run(orchestrator)

    assert finder.calls == [[], ["Netflix"]]
    assert record.case_study == SPOTIFY_CASE
    assert NETFLIX_CASE.source_url not in record.source_urls()
    assert SPOTIFY_CASE.source_url in record.source_urls()
    assert generator.calls[0]["case_study"] == SPOTIFY_CASE
    assert record.status == RecordStatus.PUBLISHED


def test_case_study_attempts_are_bounded():
    session = FakeSession({NETFLIX_CASE.source_url: 404})
    orchestrator, generator, _, finder = build_pipeline(
        [good_draft()], cases=[NETFLIX_CASE], session=session,
        settings=PipelineSettings(max_revisions=2, max_case_attempts=2)
    )
    record = run(orchestrator)

    # Netflix rejected, then nothing left to find: the draft goes ahead without a case
    assert len(finder.calls) == 2
    assert record.case_study is None
    assert generator.calls[0]["case_study"] is None
    assert record.status == RecordStatus.PUBLISHED


def test_diagram_failure_degrades():
    draft = good_draft(glossary=True)
    draft.diagram = None
    diagram = FakeAssetGenerator(error=TransientNetworkError("renderer down"))
    images = FakeAssetGenerator(result="<svg xmlns='http://www.w3.org/2000/svg'></svg>")

    orchestrator, _, _, _ = build_pipeline([draft], diagram=diagram, images=images)
    record = run(orchestrator)

    assert record.status == RecordStatus.PUBLISHED
    assert record.draft.diagram is None
    assert diagram.calls == 2
    assert record.draft.images == ["<svg xmlns='http://www.w3.org/2000/svg'></svg>"]


def test_missing_diagram_is_generated():
    draft = good_draft(glossary=True)
    draft.diagram = None
    orchestrator, _, _, _ = build_pipeline([draft], diagram=FakeAssetGenerator())
    record = run(orchestrator)

    assert record.status == RecordStatus.PUBLISHED
    assert record.draft.diagram == "graph TD\n    A --> B"


def test_batch_returns_records_in_input_order():
    orchestrator, _, sink, _ = build_pipeline([good_draft()])
    topics = ["Netflix microservices", "Service meshes", "Event sourcing", "Rate limiting"]

    records = BatchRunner(orchestrator, max_concurrent_records=3).run(
        topics, keywords={topic: ["microservices"] for topic in topics}
    )

    assert [r.topic for r in records] == topics
    assert all(r.status == RecordStatus.PUBLISHED for r in records)
    assert len(sink.published) == 4


class TopicSensitiveGenerator:
    """Fails fatally for one topic, succeeds for the rest"""

    def __init__(self, bad_topic):
        self.bad_topic = bad_topic

    def generate(self, topic, case_study, sources, prior_issues, keywords=None):
        if topic == self.bad_topic:
            raise FatalConfigurationError("model deployment not found")
        return good_draft()


def test_fatal_error_cancels_batch():
    orchestrator, _, _, _ = build_pipeline([good_draft()])
    orchestrator.nodes.draft_generator = TopicSensitiveGenerator("Broken topic")

    try:
        BatchRunner(orchestrator, max_concurrent_records=1).run(["Broken topic", "Never started"])
    except FatalConfigurationError as e:
        assert "model deployment not found" in str(e)
    else:
        raise AssertionError("batch should re-raise the fatal error")


if __name__ == "__main__":
    test_happy_path_publishes()
    test_failed_gate_revises_with_guidance_then_passes()
    test_revision_bound_aborts_with_gate_failure()
    test_provider_exhaustion_aborts_record()
    test_dead_case_source_is_excluded_and_lookup_retried()
    test_batch_returns_records_in_input_order()
    print("\n🎉 ALL PIPELINE TESTS PASSED")
