import asyncio

from conftest import FakeCatalog, track
from matchmonkey.matching.matcher import (
    PASS_EXACT, PASS_NORMALIZED, PASS_PARTIAL, LibraryMatcher, match_title, select_order,
)
from matchmonkey.models.records import MatchOptions


def run_match(rows, titles, max_per_title=1, options=None):
    matcher = LibraryMatcher(FakeCatalog(rows))
    result = asyncio.run(matcher.match("Oasis", titles, max_per_title, options))
    return matcher, result


def test_exact_match_ignores_case():
    matcher, result = run_match([track("1", "wonderwall", "Oasis")], ["Wonderwall"])
    assert [t.id for t in result["Wonderwall"]] == ["1"]
    assert matcher.last_passes["Wonderwall"] == PASS_EXACT


def test_remastered_suffix_matches_by_normalized_pass():
    matcher, result = run_match([track("1", "Wonderwall", "Oasis")], ["Wonderwall - Remastered 2014"])
    assert [t.id for t in result["Wonderwall - Remastered 2014"]] == ["1"]
    assert matcher.last_passes["Wonderwall - Remastered 2014"] == PASS_NORMALIZED


def test_featured_artist_and_brackets_are_ignored():
    rows = [track("1", "Song (feat. Somebody) [Live]", "Oasis")]
    assert match_title("Song", rows)[0] == PASS_NORMALIZED


def test_partial_pass_uses_token_overlap():
    rows = [track("1", "Champagne Supernova", "Oasis"), track("2", "Supersonic", "Oasis")]
    # two of four query words is below the overlap threshold
    assert match_title("Champagne Supernova Version Two", rows) == (None, [])

    pass_name, found = match_title("Champagne Supernova Demo", rows)
    assert pass_name == PASS_PARTIAL
    assert [t.id for t in found] == ["1"]


def test_unmatched_titles_are_absent():
    _, result = run_match([track("1", "Wonderwall", "Oasis")], ["Wonderwall", "Don't Look Back in Anger"])
    assert list(result) == ["Wonderwall"]


def test_other_artists_rows_are_not_considered():
    _, result = run_match([track("1", "Wonderwall", "Ryan Adams")], ["Wonderwall"])
    assert result == {}


def test_rating_filter():
    rows = [
        track("1", "Live Forever", "Oasis", rating=2),
        track("2", "Live Forever", "Oasis", rating=None),
        track("3", "Live Forever", "Oasis", rating=4),
    ]
    options = MatchOptions(min_rating=3, allow_unknown=False)
    _, result = run_match(rows, ["Live Forever"], 0, options)
    assert [t.id for t in result["Live Forever"]] == ["3"]

    _, result = run_match(rows, ["Live Forever"], 0, MatchOptions(min_rating=3, allow_unknown=True))
    assert [t.id for t in result["Live Forever"]] == ["3", "2"]


def test_highest_bitrate_copy_is_selected():
    rows = [
        track("1", "Slide Away", "Oasis", bitrate=128),
        track("2", "Slide Away", "Oasis", bitrate=320),
        track("3", "Slide Away", "Oasis", bitrate=320, rating=5),
    ]
    _, result = run_match(rows, ["Slide Away"])
    assert [t.id for t in result["Slide Away"]] == ["3"]

    _, result = run_match(rows, ["Slide Away"], 0)
    assert [t.id for t in result["Slide Away"]] == ["3", "2", "1"]


def test_best_keeps_one_per_title():
    rows = [track("1", "Slide Away", "Oasis", bitrate=128), track("2", "Slide Away", "Oasis", bitrate=256)]
    _, result = run_match(rows, ["Slide Away"], 0, MatchOptions(best=True))
    assert [t.id for t in result["Slide Away"]] == ["2"]


def test_select_order_is_stable_on_ties():
    rows = [track(str(i), "Same", "Oasis", bitrate=192) for i in range(4)]
    assert [t.id for t in select_order(rows)] == ["0", "1", "2", "3"]


def test_matching_is_deterministic():
    rows = [track("1", "Whatever", "Oasis"), track("2", "Whatever (Live)", "Oasis"), track("3", "Half the World Away", "Oasis")]
    titles = ["Whatever", "Half The World Away", "Stand By Me"]
    _, first = run_match(rows, titles, 0)
    _, second = run_match(rows, titles, 0)
    assert {k: [t.id for t in v] for k, v in first.items()} == {k: [t.id for t in v] for k, v in second.items()}


def test_empty_titles_skip_catalog():
    catalog = FakeCatalog([track("1", "Wonderwall", "Oasis")])
    result = asyncio.run(LibraryMatcher(catalog).match("Oasis", ["", "  "]))
    assert result == {}
    assert catalog.calls == []


def test_parenthetical_qualifier_in_catalog_title():
    matcher = LibraryMatcher(FakeCatalog([track("7", "Song (Remastered 2011)", "X")]))
    result = asyncio.run(matcher.match("X", ["Song"]))
    assert [t.id for t in result["Song"]] == ["7"]
    assert matcher.last_passes["Song"] == PASS_NORMALIZED
