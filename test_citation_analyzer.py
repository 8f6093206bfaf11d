#!/usr/bin/env python3
"""
Citation extraction and density tests
"""

from blogsmith.models.schemas import Draft, DraftSection
from blogsmith.tools.citations import CitationAnalyzer

from sample_posts import good_draft


def uniform_draft(markers_per_section, body_length=400):
    """Sections of identical length carrying the given number of [1] markers each"""
    sections = []
    for i, count in enumerate(markers_per_section):
        markers = " [1]" * count
        body = markers + "x" * (body_length - len(markers))
        sections.append(DraftSection(title=f"Section {i + 1}", body=body))
    return Draft(title="Uniform", sections=sections)


def test_extract_records_section_and_offset():
    draft = good_draft()
    citations = CitationAnalyzer().extract(draft, revision=2)

    assert [c.number for c in citations] == [1, 2, 4, 5, 6, 8]
    assert [c.section_index for c in citations] == [0, 1, 2, 3, 3, 4]
    assert all(c.revision == 2 for c in citations)

    first = citations[0]
    body = draft.sections[0].body
    assert body[first.offset:first.offset + 3] == "[1]"
    assert first.section_title == "Why Netflix Left the Monolith"


def test_density_grows_linearly_with_markers():
    analyzer = CitationAnalyzer()
    densities = []
    for k in range(0, 5):
        _, metrics = analyzer.analyze(uniform_draft([k] * 4), source_count=1)
        densities.append(metrics.density)
        print(f"   {k} marker(s) per section -> density {metrics.density:.4f}")

    assert densities[0] == 0.0
    step = densities[1] - densities[0]
    for k in range(1, 5):
        assert abs(densities[k] - k * step) < 1e-12


def test_density_only_counts_section_bodies():
    draft = good_draft()
    _, metrics = CitationAnalyzer().analyze(draft, source_count=9)

    characters = sum(len(s.body) for s in draft.sections)
    assert metrics.total_characters == characters
    assert metrics.density == 6 / characters

    draft.intro += " Extra introduction text with a stray marker [3]."
    _, with_intro = CitationAnalyzer().analyze(draft, source_count=9)
    assert with_intro.density == metrics.density
    assert with_intro.total == metrics.total


def test_dangling_markers_are_reported():
    draft = good_draft()
    _, metrics = CitationAnalyzer().analyze(draft, source_count=5)

    assert metrics.dangling == [6, 8]
    assert len(metrics.issues) == 2
    assert "only 5 source(s)" in metrics.issues[0]

    _, none_dangling = CitationAnalyzer().analyze(draft, source_count=9)
    assert none_dangling.dangling == []
    assert none_dangling.issues == []


def test_distribution_allows_a_share_of_uncited_sections():
    analyzer = CitationAnalyzer(max_uncited_section_ratio=0.3)

    # 10 sections: 3 uncited is allowed, 4 is not
    _, three_uncited = analyzer.analyze(uniform_draft([1] * 7 + [0] * 3), source_count=1)
    _, four_uncited = analyzer.analyze(uniform_draft([1] * 6 + [0] * 4), source_count=1)

    assert three_uncited.well_distributed
    assert not four_uncited.well_distributed
    assert four_uncited.uncited_sections == ["Section 7", "Section 8", "Section 9", "Section 10"]
    assert four_uncited.sections_with_citations == 6


def test_empty_draft_has_no_density():
    _, metrics = CitationAnalyzer().analyze(Draft(), source_count=0)

    assert metrics.total == 0
    assert metrics.density == 0.0
    assert not metrics.well_distributed


if __name__ == "__main__":
    test_extract_records_section_and_offset()
    test_density_grows_linearly_with_markers()
    test_dangling_markers_are_reported()
    test_distribution_allows_a_share_of_uncited_sections()
    print("\n🎉 ALL CITATION TESTS PASSED")
