from lxplayer.core.interfaces import EngineState, Song
from lxplayer.core.now_playing import NowPlaying, format_duration, progress_bar


def test_format_duration():
    assert format_duration(0) == "00:00"
    assert format_duration(65) == "01:05"
    assert format_duration(3725) == "01:02:05"
    assert format_duration(None) == "LIVE"


def test_progress_bar():
    assert progress_bar(0, 100, 10) == "▱" * 10
    assert progress_bar(50, 100, 10) == "▰" * 5 + "▱" * 5
    assert progress_bar(500, 100, 10) == "▰" * 10
    assert progress_bar(10, None, 4).endswith("LIVE")


def test_from_state_without_song():
    assert NowPlaying.from_state(EngineState()) is None


def test_from_state_and_render():
    song = Song(id='1', name='Title', artist='Artist', album='Album')
    state = EngineState(current=song, progress=30.0, total=120.0, is_playing=True)

    summary = NowPlaying.from_state(state)
    assert summary.info() == {'title': 'Title', 'artist': 'Artist'}

    rendered = summary.render()
    assert rendered.startswith("Title - Artist\n00:30 / 02:00 ")


def test_untitled_song_uses_placeholder():
    summary = NowPlaying.from_state(EngineState(current=Song(id='x')))

    assert summary.title == "Unknown"
    assert summary.info()['artist'] == ""
    assert "LIVE" in summary.render()
