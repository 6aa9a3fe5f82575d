from __future__ import annotations

from typing import Iterable, Mapping

from .types import Match, MatchReport, SearchResult, TextSource


def find_matches(
    text: str,
    phrase: str,
    *,
    before: int = 10,
    after: int = 10,
    source: TextSource = TextSource.BASELINE,
) -> MatchReport:
    """Literal, case-sensitive phrase search.

    Matches are non-overlapping and reported left to right. Context windows are
    clipped at the start/end of ``text``. An absent phrase gives an empty report.
    """
    if not phrase:
        raise ValueError("phrase must be non-empty")
    if before < 0 or after < 0:
        raise ValueError(f"context window must be >= 0: before={before} after={after}")

    text = text or ""
    matches: list[Match] = []
    pos = text.find(phrase)
    while pos != -1:
        end = pos + len(phrase)
        matches.append(
            Match(
                preceding_context=text[max(0, pos - before):pos],
                matched_phrase=text[pos:end],
                following_context=text[end:end + after],
                start=pos,
            )
        )
        pos = text.find(phrase, end)

    return MatchReport(source=source, phrase=phrase, matches=tuple(matches))


def compare_sources(
    texts: Mapping[TextSource, str],
    phrase: str,
    *,
    before: int = 10,
    after: int = 10,
) -> dict[TextSource, MatchReport]:
    # Enum order keeps reports stable regardless of how the mapping was built.
    return {
        src: find_matches(texts[src], phrase, before=before, after=after, source=src)
        for src in TextSource
        if src in texts
    }


def summarize(reports: Mapping[TextSource, MatchReport] | Iterable[MatchReport]) -> dict[str, int]:
    items = reports.values() if isinstance(reports, Mapping) else reports
    return {r.source.value: r.count for r in items}


def match_results(
    results: Iterable[SearchResult],
    phrase: str,
    *,
    before: int = 10,
    after: int = 0,
    source: TextSource = TextSource.SEARCH_SNIPPET,
) -> MatchReport:
    """Phrase-match every search snippet and collect the hits into one report.

    Snippets are searched in result order; ``start`` offsets are relative to
    the snippet the match came from.
    """
    matches: list[Match] = []
    for r in results:
        matches.extend(find_matches(r.context, phrase, before=before, after=after).matches)
    return MatchReport(source=source, phrase=phrase, matches=tuple(matches))


def filter_results(results: Iterable[SearchResult], phrase: str) -> list[SearchResult]:
    return [r for r in results if phrase and phrase in r.context]


def format_report(report: MatchReport) -> list[str]:
    lines = [f"source={report.source.value} phrase={report.phrase!r} count={report.count}"]
    for m in report.matches:
        lines.append(f"  @{m.start}: {m.preceding_context!r} [{m.matched_phrase}] {m.following_context!r}")
    return lines
