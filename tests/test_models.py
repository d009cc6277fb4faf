import pytest

from ensemble.lib.errors import ProtocolError
from ensemble.players.models import (PlaybackState, Player, RepeatMode, Track,
                                     next_repeat_mode)

from fakes import player_dict


def test_player_from_dict():
    player = Player.from_dict(player_dict("kitchen", "Kitchen Speaker", state="playing",
                                          title="Song A", active_source="kitchen_queue"))
    assert player.player_id == "kitchen"
    assert player.name == "Kitchen Speaker"
    assert player.is_playing
    assert player.queue_id == "kitchen_queue"
    assert player.volume_level == 30
    assert player.current_media.title == "Song A"
    assert player.current_media.artists == ("Artist",)


def test_player_name_falls_back():
    assert Player.from_dict({"player_id": "p1", "name": "Den"}).name == "Den"
    assert Player.from_dict({"player_id": "p1"}).name == "p1"


def test_player_defaults_are_conservative():
    player = Player.from_dict({"player_id": "p1", "volume_level": "loud", "state": "buffering"})
    assert player.available is False
    assert player.powered is False
    assert player.volume_level == 0
    assert player.state == PlaybackState.IDLE
    assert player.queue_id == "p1"
    assert player.current_media is None


@pytest.mark.parametrize("payload", [{}, {"name": "x"}, [], None])
def test_player_requires_id(payload):
    with pytest.raises(ProtocolError):
        Player.from_dict(payload)


def test_player_is_frozen():
    player = Player.from_dict({"player_id": "p1"})
    with pytest.raises(AttributeError):
        player.name = "other"


def test_track_from_dict():
    track = Track.from_dict({
        "name": "Blue in Green",
        "artists": [{"name": "Miles Davis"}, {"name": "Bill Evans"}],
        "album": {"name": "Kind of Blue"},
        "duration": "337",
        "elapsed_time": 12.5,
        "uri": "library://track/1",
    })
    assert track.title == "Blue in Green"
    assert track.artists_string == "Miles Davis, Bill Evans"
    assert track.album == "Kind of Blue"
    assert track.duration == 337.0
    assert track.position == 12.5
    assert track.uri == "library://track/1"


def test_track_without_artist():
    track = Track.from_dict({"title": "Untitled", "duration": None})
    assert track.artists_string == "Unknown Artist"
    assert track.duration is None


@pytest.mark.parametrize("current, expected", [
    (None, RepeatMode.ALL),
    (RepeatMode.OFF, RepeatMode.ALL),
    ("all", RepeatMode.ONE),
    ("ONE", RepeatMode.OFF),
    ("shuffle", RepeatMode.OFF),
])
def test_next_repeat_mode(current, expected):
    assert next_repeat_mode(current) == expected


def test_repeat_cycle_returns_to_start():
    mode = RepeatMode.OFF
    seen = []
    for _ in range(3):
        mode = next_repeat_mode(mode)
        seen.append(mode)
    assert seen == [RepeatMode.ALL, RepeatMode.ONE, RepeatMode.OFF]
