import os

import pytest

from matchmonkey.discovery.profiles import ProfileManager, load_profiles
from matchmonkey.storage.missed import MissedResultsStore
from matchmonkey.utils.helpers import acquire_lock, release_lock
from matchmonkey.utils.text import fix_prefixes, normalize_title, split_artists, tokenize


def test_missed_results_upsert_and_order(tmp_path):
    store = MissedResultsStore(tmp_path / "missed.db")
    store.add("Artist A", "Song", popularity=40, source="seed")
    store.add("artist a", "Song (Remastered)", popularity=70, source="seed")
    store.add("Artist B", "Other", popularity=90, source="profile")

    rows = store.list()
    assert store.count() == 2
    assert (rows[0]["artist"], rows[0]["occurrences"], rows[0]["popularity"]) == ("Artist A", 2, 70)
    assert rows[1]["title"] == "Other"

    assert len(store.list(limit=1)) == 1
    store.clear()
    assert store.count() == 0


def test_missed_results_evicts_oldest(tmp_path):
    store = MissedResultsStore(tmp_path / "missed.db", max_results=2)
    for title in ("One", "Two", "Three"):
        store.add("Artist", title)
    assert sorted(r["title"] for r in store.list()) == ["Three", "Two"]


def test_default_profiles():
    profiles = ProfileManager()
    relaxed = profiles.get_profile("mood", "Relaxed")
    assert relaxed is not None and relaxed.targets["energy"] == 0.3
    assert "workout" in profiles.names("activity")
    assert profiles.get_profile("mood", "nonexistent") is None
    assert profiles.get_profile("activity", None) is None


def test_profiles_from_yaml(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "mood:\n"
        "  Stormy:\n"
        "    targets: {energy: 0.9, valence: 0.1}\n"
        "    tags: [doom, sludge]\n"
    )
    profiles = load_profiles(str(path))
    stormy = profiles.get_profile("mood", "stormy")
    assert stormy.tags == ("doom", "sludge")
    assert profiles.names("activity") == []


def test_invalid_profile_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text("- just\n- a list\n")
    profiles = ProfileManager(path)
    assert profiles.get_profile("mood", "happy") is not None


def test_text_helpers():
    assert split_artists("A; B ;;C") == ["A", "B", "C"]
    assert fix_prefixes("Beatles, The", ["The"]) == "The Beatles"
    assert normalize_title("Song (feat. X) - Remastered 2011") == "song"
    assert normalize_title("Song - Part Two") == "song part two"
    assert normalize_title("Café Del Mar") == "cafe del mar"
    assert tokenize("It's a Big World") == {"big", "world"}


def test_watch_lock_is_exclusive_and_released(tmp_path):
    lock_file = tmp_path / "data" / "watch.lock"
    handle = acquire_lock(lock_file)
    assert lock_file.read_text() == str(os.getpid())

    with pytest.raises(SystemExit):
        acquire_lock(lock_file)

    release_lock(handle)
    assert not lock_file.exists()
    release_lock(acquire_lock(lock_file))
