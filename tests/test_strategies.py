import asyncio

from conftest import FakeNotifier, lastfm_route, make_gateway
from matchmonkey.api.lastfm import LastFMAPI
from matchmonkey.api.reccobeats import ReccoBeatsAPI
from matchmonkey.discovery.profiles import ProfileManager
from matchmonkey.discovery.strategies import (
    ArtistStrategy, DiscoveryContext, GenreStrategy, ProfileSeededStrategy, ProfileStrategy,
    TrackStrategy, aggregate_features, build_strategy,
)
from matchmonkey.models.records import DiscoveryMode, DiscoveryOptions, Seed, SeedKind
from matchmonkey.storage.cache import RunCache


RECCOBEATS = {
    "/artist/search": {"content": [{"id": "a1", "name": "Seed Artist"}]},
    "/artist/a1/track": {"content": [{"id": "t1", "trackTitle": "Seed Song"}]},
    "/track/t1/audio-features": {"energy": 0.5, "valence": 0.4},
    "/track/recommendation": {"content": [
        {"artists": [{"name": "Rec One"}], "trackTitle": "First", "popularity": 60},
        {"artists": [{"name": "Rec Two"}], "trackTitle": "Second", "popularity": 40},
        {"artists": [{"name": "Rec One"}], "trackTitle": "Third", "popularity": 30},
    ]},
}


def make_context(lastfm=None, reccobeats=None):
    lastfm_handler = lastfm or lastfm_route()
    reccobeats = reccobeats if reccobeats is not None else {}

    def route(method, url, params):
        if "reccobeats" in url:
            path = url.split("/v1", 1)[1]
            return reccobeats.get(path, {"content": []})
        return lastfm_handler(method, url, params)

    gateway, transport = make_gateway(route)
    cache = RunCache()
    context = DiscoveryContext(
        lastfm=LastFMAPI(gateway, cache, "key"),
        reccobeats=ReccoBeatsAPI(gateway, cache),
        profiles=ProfileManager(),
        notifier=FakeNotifier(),
    )
    return context, transport


def artist_seed(name):
    return Seed(kind=SeedKind.ARTIST, artist=name)


def track_seed(artist, title):
    return Seed(kind=SeedKind.TRACK, artist=artist, title=title)


def summary(candidates):
    return [(c.artist, [t.title for t in c.tracks]) for c in candidates]


def test_artist_strategy_collects_similar_artists_with_top_tracks():
    context, _ = make_context(lastfm_route(
        similar={"Artist A": ["Artist B", "Artist C"]},
        top_tracks={"Artist B": ["B1", "B2"], "Artist C": ["C1"]},
    ))

    result = asyncio.run(ArtistStrategy(context).discover([artist_seed("Artist A")], DiscoveryOptions()))

    assert summary(result) == [("Artist B", ["B1", "B2"]), ("Artist C", ["C1"])]
    assert context.notifier.progress_calls


def test_artist_strategy_respects_blacklist_and_seed_inclusion():
    context, _ = make_context(lastfm_route(
        similar={"Artist A": ["Artist B", "Artist C"]},
        top_tracks={"Artist A": ["A1"], "Artist B": ["B1"], "Artist C": ["C1"]},
    ))
    options = DiscoveryOptions(blacklist=frozenset({"ARTIST C"}), include_seed_artist=True)

    result = asyncio.run(ArtistStrategy(context).discover([artist_seed("Artist A")], options))

    assert [c.artist for c in result] == ["Artist A", "Artist B"]


def test_artist_strategy_limits_tracks_per_artist():
    context, _ = make_context(lastfm_route(
        similar={"Artist A": ["Artist B"]},
        top_tracks={"Artist B": ["B1", "B2", "B3"]},
    ))

    result = asyncio.run(ArtistStrategy(context).discover(
        [artist_seed("Artist A")], DiscoveryOptions(tracks_per_artist=2)))

    assert summary(result) == [("Artist B", ["B1", "B2"])]


def test_artist_without_top_tracks_is_dropped():
    context, _ = make_context(lastfm_route(
        similar={"Artist A": ["Artist B", "Artist C"]},
        top_tracks={"Artist B": ["B1"]},
    ))

    result = asyncio.run(ArtistStrategy(context).discover([artist_seed("Artist A")], DiscoveryOptions()))

    assert [c.artist for c in result] == ["Artist B"]


def test_track_strategy_groups_similar_tracks_by_artist():
    context, transport = make_context(lastfm_route(similar_tracks={
        "Artist A|Song": [("Artist B", "x", 0.9), ("Artist C", "y", 0.8), ("Artist B", "z", 0.7)],
    }))
    options = DiscoveryOptions(include_seed_track=True)

    result = asyncio.run(TrackStrategy(context).discover([track_seed("Artist A", "Song")], options))

    assert summary(result) == [("Artist A", ["Song"]), ("Artist B", ["x", "z"]), ("Artist C", ["y"])]
    assert result[0].tracks[0].match_score == 1.0
    assert result[1].tracks[0].match_score == 0.9
    assert not any(c["params"].get("method") == "artist.getTopTracks" for c in transport.calls)


def test_track_strategy_needs_titles():
    context, transport = make_context()
    result = asyncio.run(TrackStrategy(context).discover([artist_seed("Artist A")], DiscoveryOptions()))
    assert result == []
    assert transport.calls == []


def test_genre_tags_weight_seed_genres_above_inferred_tags():
    context, _ = make_context(lastfm_route(tags={"Artist A": ["Indie", "rock", "pop", "jazz"]}))
    seeds = [Seed(kind=SeedKind.GENRE, artist="Artist A", genre="Rock")]

    tags = asyncio.run(GenreStrategy(context).collect_tags(seeds, DiscoveryOptions(), max_tags=5))

    assert tags == ["rock", "indie", "pop"]


def test_genre_strategy_expands_top_tags():
    context, _ = make_context(lastfm_route(
        tag_artists={"rock": ["R1", "R2"], "indie": ["I1"]},
        top_tracks={"R1": ["r1"], "R2": ["r2"], "I1": ["i1"]},
    ))
    seeds = [Seed(kind=SeedKind.GENRE, artist="Artist A", genre="Rock;Indie")]

    result = asyncio.run(GenreStrategy(context).discover(seeds, DiscoveryOptions(similar_limit=10)))

    assert [c.artist for c in result] == ["R1", "R2", "I1"]


def test_aggregate_features():
    assert aggregate_features([]) == {}
    assert aggregate_features([{"energy": 0.4}]) == {"energy": 0.4}
    assert aggregate_features([{"energy": 0.25, "tempo": 100.0}, {"energy": 0.75}]) == \
        {"energy": 0.5, "tempo": 100.0}


def test_profile_seeded_uses_seed_features():
    context, transport = make_context(reccobeats=RECCOBEATS)

    result = asyncio.run(ProfileSeededStrategy(context).discover(
        [track_seed("Seed Artist", "Seed Song")], DiscoveryOptions()))

    assert summary(result) == [("Rec One", ["First", "Third"]), ("Rec Two", ["Second"])]
    recommendation = [c for c in transport.calls if c["url"].endswith("/track/recommendation")][0]
    assert recommendation["params"]["seeds"] == "t1"
    assert recommendation["params"]["energy"] == "0.5"


def test_profile_seeded_without_resolvable_seeds_is_empty():
    context, transport = make_context(reccobeats={})

    result = asyncio.run(ProfileSeededStrategy(context).discover(
        [track_seed("Unknown", "Nothing")], DiscoveryOptions()))

    assert result == []
    assert not any(c["url"].endswith("/track/recommendation") for c in transport.calls)


def test_mood_preset_steers_recommendations():
    context, transport = make_context(reccobeats=RECCOBEATS)
    options = DiscoveryOptions(mode=DiscoveryMode.MOOD, profile_name="Relaxed")

    result = asyncio.run(ProfileStrategy(context, DiscoveryMode.MOOD).discover(
        [track_seed("Seed Artist", "Seed Song")], options))

    assert [c.artist for c in result] == ["Rec One", "Rec Two"]
    assert all(c.source == "profile" for c in result)
    recommendation = [c for c in transport.calls if c["url"].endswith("/track/recommendation")][0]
    assert recommendation["params"]["energy"] == "0.3"


def test_mood_preset_falls_back_to_tags_without_seeds():
    context, _ = make_context(lastfm_route(
        tag_artists={"chillout": ["P1", "P2"], "relaxing": ["P3"], "mellow": ["P4"]},
        top_tracks={"P1": ["p1"], "P2": ["p2"], "P3": ["p3"], "P4": ["p4"]},
    ))
    options = DiscoveryOptions(mode=DiscoveryMode.MOOD, profile_name="relaxed", similar_limit=3)

    result = asyncio.run(ProfileStrategy(context, DiscoveryMode.MOOD).discover([], options))

    assert [c.artist for c in result] == ["P1", "P2", "P3"]


def test_unknown_preset_yields_nothing():
    context, transport = make_context()
    options = DiscoveryOptions(mode=DiscoveryMode.ACTIVITY, profile_name="skydiving")

    result = asyncio.run(ProfileStrategy(context, DiscoveryMode.ACTIVITY).discover([], options))

    assert result == []
    assert transport.calls == []


def test_discover_never_raises():
    context, _ = make_context()

    class Broken(ArtistStrategy):
        async def collect(self, seeds, options):
            raise RuntimeError("boom")

    assert asyncio.run(Broken(context).discover([artist_seed("A")], DiscoveryOptions())) == []


def test_build_strategy_registry():
    context, _ = make_context()
    assert isinstance(build_strategy(DiscoveryMode.ARTIST, context), ArtistStrategy)
    assert isinstance(build_strategy(DiscoveryMode.TRACK, context), TrackStrategy)
    assert isinstance(build_strategy(DiscoveryMode.GENRE, context), GenreStrategy)
    assert isinstance(build_strategy(DiscoveryMode.PROFILE, context), ProfileSeededStrategy)
    mood = build_strategy(DiscoveryMode.MOOD, context)
    assert isinstance(mood, ProfileStrategy) and mood.mode == DiscoveryMode.MOOD
