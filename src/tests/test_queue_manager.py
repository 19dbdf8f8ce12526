import random

from lxplayer.core.interfaces import PlayMode, Song
from lxplayer.core.queue_manager import PlayQueue


def make_songs(count):
    return [Song(id=str(i), name=f"Song {i}") for i in range(count)]


def test_set_list_sets_cursor_and_clears_pending():
    queue = PlayQueue()
    queue.enqueue_next(Song(id='x'))
    queue.set_list(make_songs(3), 1)

    assert queue.index == 1
    assert queue.current.id == '1'
    assert len(queue.pending) == 0


def test_set_list_clamps_start_index():
    queue = PlayQueue()

    queue.set_list(make_songs(3), 10)
    assert queue.index == 3
    assert queue.current is None
    assert queue.is_past_end

    queue.set_list(make_songs(3), -4)
    assert queue.index == 0


def test_sequence_stops_one_past_end():
    queue = PlayQueue()
    queue.set_list(make_songs(2), 0)

    assert queue.advance(PlayMode.SEQUENCE) == 1
    assert queue.advance(PlayMode.SEQUENCE) == 2
    assert queue.advance(PlayMode.SEQUENCE) == 2
    assert queue.is_past_end


def test_loop_wraps_around():
    queue = PlayQueue()
    queue.set_list(make_songs(3), 2)

    assert queue.advance(PlayMode.LOOP) == 0


def test_loop_and_random_on_empty_list():
    queue = PlayQueue()
    queue.set_list([], 0)

    assert queue.advance(PlayMode.LOOP) == 0
    assert queue.advance(PlayMode.RANDOM) == 0


def test_single_keeps_index():
    queue = PlayQueue()
    queue.set_list(make_songs(3), 1)

    assert queue.advance(PlayMode.SINGLE) == 1


def test_random_is_deterministic_with_seeded_rng():
    expected_rng = random.Random(7)
    queue = PlayQueue(random.Random(7))
    queue.set_list(make_songs(5), 0)

    for _ in range(10):
        assert queue.advance(PlayMode.RANDOM) == expected_rng.randrange(5)


def test_pending_songs_play_in_fifo_order():
    queue = PlayQueue()
    queue.set_list(make_songs(3), 0)
    queue.enqueue_next(Song(id='a'))
    queue.enqueue_next(Song(id='b'))

    queue.advance(PlayMode.SEQUENCE)
    assert queue.current.id == 'a'

    queue.advance(PlayMode.SEQUENCE)
    assert queue.current.id == 'b'

    queue.advance(PlayMode.SEQUENCE)
    assert queue.current.id == '1'
    assert [s.id for s in queue.songs] == ['0', 'a', 'b', '1', '2']


def test_retreat_floors_at_zero():
    queue = PlayQueue()
    queue.set_list(make_songs(3), 1)

    assert queue.retreat() == 0
    assert queue.retreat() == 0


def test_snapshot():
    queue = PlayQueue()
    queue.set_list(make_songs(2), 1)
    queue.enqueue_next(Song(id='p', name='Pending'))

    snap = queue.snapshot()
    assert snap['index'] == 1
    assert [s['id'] for s in snap['songs']] == ['0', '1']
    assert snap['pending'][0]['name'] == 'Pending'
    assert len(queue) == 2
