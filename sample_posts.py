"""
Sample posts and fake collaborators shared by the test modules
"""

from typing import Dict, List, Optional

import requests

from blogsmith.models.schemas import (
    CaseStudy,
    Draft,
    DraftSection,
    GlossaryTerm,
    RealWorldExample,
    SourceReference,
    SourceStatus,
)
from blogsmith.utils.error_handler import PublishError


GOOD_INTRO = (
    "Netflix runs one of the largest microservices platforms in the world, serving streaming video "
    "to millions of members every day. This article explains how microservices changed the way its "
    "engineering teams build and operate software."
)

GOOD_SECTIONS = [
    ("Why Netflix Left the Monolith",
     "In 2008, a database corruption incident halted DVD shipments at Netflix for three days [1]. "
     "As a result, the company began moving its monolith to microservices on AWS."),
    ("Designing for Failure",
     "Microservices fail independently, so one broken dependency should not take down the whole product [2]. "
     "For example, Hystrix wraps remote calls in circuit breakers with sensible fallbacks."),
    ("Testing Resilience in Production",
     "Moreover, Chaos Monkey randomly terminates production instances to prove that services survive failure [4]. "
     "Consequently, engineers treat timeouts and retries as mandatory parts of every call path."),
    ("Shipping Changes Safely",
     "Therefore, Netflix built Spinnaker to run continuous deployments for its microservices across several "
     "cloud regions [5]. Each release moves through automated canary analysis before reaching every member [6]."),
    ("Seeing the Whole System",
     "In addition, the Atlas platform collects billions of metrics so teams can spot regressions within minutes. "
     "Eureka handles service discovery, letting microservices locate healthy peers automatically [8]."),
]

GOOD_CONCLUSION = (
    "Microservices gave Netflix the freedom to scale teams and systems independently, but only because the "
    "company invested heavily in resilience tooling. Teams adopting microservices should plan for failure, "
    "automate deployments, and measure everything from the first service onward."
)

NETFLIX_DIAGRAM = """graph TD
    Client --> Zuul[API Gateway]
    Zuul --> Eureka[Service Registry]
    Zuul --> Playback[Playback Service]
    Playback --> Hystrix[Circuit Breaker]"""

SOURCE_URLS = [f"https://docs.example.com/netflix/{i}" for i in range(1, 11)]


def good_draft(glossary: bool = False) -> Draft:
    """Five cited sections, six transition words, a named example and a diagram"""
    return Draft(
        title="How Netflix Scaled Microservices",
        intro=GOOD_INTRO,
        sections=[DraftSection(title=t, body=b) for t, b in GOOD_SECTIONS],
        conclusion=GOOD_CONCLUSION,
        real_world_example=RealWorldExample(
            company="Netflix",
            scenario="Moved from a monolith to hundreds of services on AWS",
            lesson="Invest in resilience tooling before splitting the system"
        ),
        diagram=NETFLIX_DIAGRAM,
        glossary=[GlossaryTerm(term="Circuit breaker", definition="Stops calls to a failing dependency")] if glossary else [],
        sources=SOURCE_URLS[:9],
        tags=["microservices", "architecture"]
    )


def poor_draft() -> Draft:
    """Two short sections, one source and no citations"""
    return Draft(
        title="Microservices",
        intro="I think microservices are cool.",
        sections=[
            DraftSection(title="What", body="We use microservices. They are small."),
            DraftSection(title="Why", body="Our team likes them a lot."),
        ],
        conclusion="That is all.",
        sources=SOURCE_URLS[:1]
    )


def live_sources(count: int, dead: int = 0) -> List[SourceReference]:
    """count sources, the last `dead` of which are dead"""
    sources = []
    for i, url in enumerate(SOURCE_URLS[:count]):
        status = SourceStatus.DEAD if i >= count - dead else SourceStatus.LIVE
        sources.append(SourceReference(url=url, status=status, http_status=404 if status == SourceStatus.DEAD else 200))
    return sources


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code
        self.closed = False

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for requests.Session; statuses maps URL to a code or an exception to raise"""

    def __init__(self, statuses: Optional[Dict[str, object]] = None, get_statuses: Optional[Dict[str, int]] = None,
                 default: int = 200):
        self.statuses = statuses or {}
        self.get_statuses = get_statuses or {}
        self.default = default
        self.head_calls: List[str] = []
        self.get_calls: List[str] = []
        self.get_headers: List[dict] = []

    def head(self, url, timeout=None, allow_redirects=True, headers=None):
        self.head_calls.append(url)
        outcome = self.statuses.get(url, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)

    def get(self, url, timeout=None, allow_redirects=True, stream=False, headers=None):
        self.get_calls.append(url)
        self.get_headers.append(headers or {})
        outcome = self.get_statuses.get(url, self.statuses.get(url, self.default))
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


class FakeCaseStudyFinder:
    def __init__(self, cases: Optional[List[Optional[CaseStudy]]] = None):
        self.cases = list(cases or [])
        self.calls: List[List[str]] = []

    def find(self, topic, exclude):
        self.calls.append(list(exclude))
        for case in self.cases:
            if case is not None and case.entity not in exclude:
                return case
        return None


class FakeDraftGenerator:
    """Returns the queued outcomes in order, repeating the last one; exceptions are raised"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls: List[dict] = []

    def generate(self, topic, case_study, sources, prior_issues, keywords=None):
        self.calls.append({
            "topic": topic,
            "case_study": case_study,
            "sources": list(sources),
            "prior_issues": list(prior_issues),
            "keywords": keywords
        })
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome.model_copy(deep=True)


class FakeAssetGenerator:
    def __init__(self, result: Optional[str] = "graph TD\n    A --> B", error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = 0

    def generate(self, context):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakePublishSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    def publish(self, record):
        if self.fail:
            raise PublishError("disk full")
        self.published.append(record)
        return f"memory://{record.topic.replace(' ', '-')}"


NETFLIX_CASE = CaseStudy(
    entity="Netflix",
    source_url="https://netflixtechblog.example.com/migration",
    summary="Netflix moved from a monolith to microservices on AWS",
    scenario="A 2008 database corruption stopped DVD shipments",
    lesson="Design every service for failure"
)

TIMEOUT = requests.exceptions.Timeout("timed out")
