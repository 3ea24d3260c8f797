import asyncio

import pytest

from conftest import FakeSink, track
from matchmonkey.models.config_models import OVERWRITE_CREATE, OVERWRITE_REPLACE, OVERWRITE_SKIP
from matchmonkey.playlist.output import (
    OutputBuilder, OutputCancelled, OutputError, OutputPlan, build_playlist_name,
    normalize_overwrite, seed_label,
)


TRACKS = [track("1", "One", "A"), track("2", "Two", "B")]


def deliver(sink, plan, seeds=("Artist A",), confirm_hook=None):
    builder = OutputBuilder(sink, confirm_hook)
    return asyncio.run(builder.deliver(TRACKS, plan, list(seeds)))


def test_playlist_name_template():
    assert build_playlist_name("Artists similar to %", "Air") == "Artists similar to Air"
    assert build_playlist_name("Mix", "Air") == "Mix Air"
    assert build_playlist_name("% and % again", "Air") == "Air and % again"


def test_long_names_are_capped():
    label = seed_label(["X" * 50, "Y" * 50])
    assert label.endswith("...") and len(label) == 83
    name = build_playlist_name("Artists similar to %", label)
    assert len(name) == 100 and name.endswith("...")


def test_normalize_overwrite():
    assert normalize_overwrite(OVERWRITE_CREATE) == OVERWRITE_CREATE
    assert normalize_overwrite(OVERWRITE_REPLACE) == OVERWRITE_REPLACE
    assert normalize_overwrite(OVERWRITE_SKIP) == OVERWRITE_SKIP
    assert normalize_overwrite(None) == OVERWRITE_CREATE


def test_create_new_playlist():
    sink = FakeSink()
    result = deliver(sink, OutputPlan())
    assert result.target == "Artists similar to Artist A"
    assert result.added == 2 and not result.enqueued
    assert sink.created == [("Artists similar to Artist A", None)]
    assert sink.committed == ["Artists similar to Artist A"]


def test_create_picks_unused_name():
    sink = FakeSink(existing=["Artists similar to Artist A", "Artists similar to Artist A_2"])
    result = deliver(sink, OutputPlan())
    assert result.target == "Artists similar to Artist A_3"


def test_overwrite_clears_existing_playlist():
    sink = FakeSink(existing=["Artists similar to Artist A"])
    result = deliver(sink, OutputPlan(overwrite=OVERWRITE_REPLACE))
    assert result.target == "Artists similar to Artist A"
    assert sink.cleared == ["Artists similar to Artist A"]
    assert sink.created == []


def test_overwrite_creates_when_missing():
    sink = FakeSink()
    deliver(sink, OutputPlan(overwrite=OVERWRITE_REPLACE))
    assert sink.created == [("Artists similar to Artist A", None)]
    assert sink.cleared == []


def test_skip_mode_enqueues_instead():
    sink = FakeSink()
    result = deliver(sink, OutputPlan(overwrite=OVERWRITE_SKIP, ignore_dupes=True))
    assert result.enqueued and result.added == 2
    assert sink.enqueue_calls == [{"clear": False, "ignore_dupes": True, "count": 2}]
    assert sink.created == []


def test_parent_playlist_is_used_when_found():
    sink = FakeSink(existing=["Discovery"])
    deliver(sink, OutputPlan(parent="Discovery"))
    assert sink.created == [("Artists similar to Artist A", {"name": "Discovery"})]


def test_confirm_hook_can_rename_or_cancel():
    sink = FakeSink()

    async def rename(name, overwrite):
        return "My Mix"

    async def cancel(name, overwrite):
        return None

    result = deliver(sink, OutputPlan(confirm=True), confirm_hook=rename)
    assert result.target == "My Mix"

    with pytest.raises(OutputCancelled):
        deliver(FakeSink(), OutputPlan(confirm=True), confirm_hook=cancel)


def test_sink_failure_becomes_output_error():
    with pytest.raises(OutputError) as excinfo:
        deliver(FakeSink(fail=True), OutputPlan())
    assert "database is locked" in str(excinfo.value)

    with pytest.raises(OutputError):
        deliver(FakeSink(fail=True), OutputPlan(enqueue=True))
