#!/usr/bin/env python3
"""
Source validation tests - all HTTP traffic goes through a fake session
"""

import requests

from blogsmith.models.schemas import GenerationRecord, SourceReference, SourceStatus
from blogsmith.tools.links import SourceValidator, valid_percentage
from blogsmith.utils.retry import CancellationToken
from blogsmith.utils.error_handler import PipelineCancelled

from sample_posts import FakeSession, TIMEOUT


def make_validator(session, retries=0):
    return SourceValidator(timeout=1, timeout_retries=retries, max_workers=4, session=session)


def test_live_and_dead_classification():
    session = FakeSession({
        "https://a.example.com/ok": 200,
        "https://a.example.com/moved": 301,
        "https://a.example.com/missing": 404,
        "https://a.example.com/broken": 500,
    })
    validator = make_validator(session)
    sources = [SourceReference(url=url) for url in session.statuses]

    checked = validator.validate(sources)
    statuses = {s.url: s.status for s in checked}

    assert statuses["https://a.example.com/ok"] == SourceStatus.LIVE
    assert statuses["https://a.example.com/moved"] == SourceStatus.LIVE
    assert statuses["https://a.example.com/missing"] == SourceStatus.DEAD
    assert statuses["https://a.example.com/broken"] == SourceStatus.DEAD
    assert all(s.checked_at is not None for s in checked)
    # Input order is preserved
    assert [s.url for s in checked] == [s.url for s in sources]


def test_malformed_url_is_dead_without_a_request():
    session = FakeSession()
    validator = make_validator(session)

    checked = validator.validate([SourceReference(url="not a url"), SourceReference(url="ftp://files.example.com")])

    assert all(s.status == SourceStatus.DEAD for s in checked)
    assert session.head_calls == []


def test_ambiguous_head_falls_back_to_ranged_get():
    url = "https://blog.example.com/post"
    session = FakeSession({url: 405}, get_statuses={url: 206})
    validator = make_validator(session)

    checked = validator.check_source(SourceReference(url=url))

    assert checked.status == SourceStatus.LIVE
    assert checked.http_status == 206
    assert session.get_calls == [url]
    assert session.get_headers[0]["Range"] == "bytes=0-0"


def test_paywalled_domain_forbidden_counts_as_live():
    validator = make_validator(FakeSession({
        "https://www.nature.com/articles/x": 403,
        "https://random.example.com/x": 403,
    }))

    paywalled = validator.check_source(SourceReference(url="https://www.nature.com/articles/x"))
    other = validator.check_source(SourceReference(url="https://random.example.com/x"))

    assert paywalled.status == SourceStatus.LIVE
    assert other.status == SourceStatus.DEAD


def test_timeout_is_error_and_connection_failure_is_dead():
    slow = "https://slow.example.com/"
    down = "https://down.example.com/"
    session = FakeSession({slow: TIMEOUT, down: requests.exceptions.ConnectionError("refused")})
    validator = make_validator(session, retries=1)

    checked = {s.url: s for s in validator.validate([SourceReference(url=slow), SourceReference(url=down)])}

    assert checked[slow].status == SourceStatus.ERROR
    assert "Timed out" in checked[slow].error
    # Timed-out checks are retried once more
    assert session.head_calls.count(slow) == 2
    assert checked[down].status == SourceStatus.DEAD


def test_already_classified_sources_are_not_checked_again():
    session = FakeSession(default=200)
    validator = make_validator(session)
    dead = SourceReference(url="https://gone.example.com/", status=SourceStatus.DEAD, http_status=404)
    fresh = SourceReference(url="https://new.example.com/")

    checked = validator.validate([dead, fresh])

    assert checked[0].status == SourceStatus.DEAD
    assert checked[1].status == SourceStatus.LIVE
    assert session.head_calls == ["https://new.example.com/"]

    rechecked = validator.validate([dead], recheck=True)
    assert rechecked[0].status == SourceStatus.LIVE


def test_record_merge_keeps_dead_sources_dead():
    record = GenerationRecord(topic="caching")
    record.add_sources(["https://a.example.com/", "https://b.example.com/"])
    record.sources[1] = record.sources[1].model_copy(update={"status": SourceStatus.DEAD})

    revived = [
        SourceReference(url="https://a.example.com/", status=SourceStatus.LIVE),
        SourceReference(url="https://b.example.com/", status=SourceStatus.LIVE),
    ]
    record.merge_sources(revived)

    assert record.sources[0].status == SourceStatus.LIVE
    assert record.sources[1].status == SourceStatus.DEAD

    # Duplicates are never appended
    added = record.add_sources(["https://a.example.com/", "https://c.example.com/"])
    assert [s.url for s in added] == ["https://c.example.com/"]
    assert len(record.sources) == 3


def test_cancelled_validation_raises():
    token = CancellationToken()
    token.cancel()
    validator = make_validator(FakeSession())

    try:
        validator.validate([SourceReference(url="https://a.example.com/")], cancel_token=token)
    except PipelineCancelled:
        pass
    else:
        raise AssertionError("validation should stop when cancelled")


def test_valid_percentage_counts_only_live():
    sources = [
        SourceReference(url="https://1.example.com/", status=SourceStatus.LIVE),
        SourceReference(url="https://2.example.com/", status=SourceStatus.ERROR),
        SourceReference(url="https://3.example.com/", status=SourceStatus.DEAD),
        SourceReference(url="https://4.example.com/", status=SourceStatus.LIVE),
    ]
    assert valid_percentage(sources) == 0.5
    assert valid_percentage([]) == 0.0


def test_extract_urls_keeps_first_appearance_order():
    validator = make_validator(FakeSession())
    markdown = (
        "See [the docs](https://docs.example.com/a) and https://blog.example.com/b. "
        "Again: https://docs.example.com/a, plus (https://c.example.com/c)."
    )

    assert validator.extract_urls(markdown) == [
        "https://docs.example.com/a",
        "https://blog.example.com/b",
        "https://c.example.com/c",
    ]
