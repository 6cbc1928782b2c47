import random
import threading

import pytest

from carguessr.errors import InvalidInput, SessionClosed, SessionNotFound, StaleGuess
from carguessr.services.game.engine import GameEngine
from carguessr.services.game.settings import GameSettings
from factories import make_provider, session_id


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def game():
    return GameEngine(make_provider(), GameSettings(), rng=random.Random(5))


def _price(game, listing_id):
    return game.provider.get(listing_id).price


def test_listing_hides_price_until_guess(game):
    listing = game.get_next_listing(session_id(1), difficulty='easy')
    assert 'price' not in listing
    assert 'originalUrl' not in listing
    assert listing['sessionId'] == session_id(1)
    assert listing['mileage'] > 0

    outcome = game.submit_guess(session_id(1), listing['id'], 1000).to_dict()
    assert outcome['actualPrice'] == _price(game, listing['id'])
    assert outcome['originalUrl'].startswith('https://example.com/easy/')


def test_current_listing_is_stable_until_guessed(game):
    first = game.get_next_listing(session_id(1), difficulty='easy')
    again = game.get_next_listing(session_id(1), difficulty='easy')
    assert first['id'] == again['id']


def test_zero_mode_sums_differences(game):
    sid = session_id(2)
    total = 0
    for offset in (500, 1500, 250):
        listing = game.get_next_listing(sid, difficulty='easy', mode='zero')
        outcome = game.submit_guess(sid, listing['id'], _price(game, listing['id']) - offset)
        total += offset
        assert outcome.continues
        assert outcome.total_score == total
    assert game.get_session(sid)['ordinal'] == 3


def test_guess_on_old_listing_is_stale(game):
    sid = session_id(3)
    first = game.get_next_listing(sid, difficulty='easy', mode='zero')
    game.submit_guess(sid, first['id'], 1000)
    with pytest.raises(StaleGuess):
        game.submit_guess(sid, first['id'], 1000)
    assert game.get_session(sid)['ordinal'] == 1


def test_guess_without_session_is_not_found(game):
    with pytest.raises(SessionNotFound):
        game.submit_guess(session_id(99), 'easy-01', 1000)


def test_bad_ids_are_rejected(game):
    with pytest.raises(InvalidInput):
        game.get_next_listing('short')
    with pytest.raises(InvalidInput):
        game.submit_guess(session_id(1), '../etc/passwd', 1000)


def test_invalid_guess_leaves_session_untouched(game):
    sid = session_id(4)
    listing = game.get_next_listing(sid, difficulty='easy')
    with pytest.raises(InvalidInput):
        game.submit_guess(sid, listing['id'], -5)
    assert game.get_session(sid)['ordinal'] == 0
    assert game.get_next_listing(sid)['id'] == listing['id']


def test_streak_ends_on_first_miss(game):
    sid = session_id(5)
    game.start_session('streak', 'hard', session_id=sid)
    listing = game.get_next_listing(sid)
    hit = game.submit_guess(sid, listing['id'], _price(game, listing['id']))
    assert hit.correct and hit.continues
    listing = hit.next_listing
    miss = game.submit_guess(sid, listing['id'], 1)
    assert miss.is_complete
    assert miss.total_score == 1
    with pytest.raises(SessionClosed):
        game.get_next_listing(sid)
    with pytest.raises(SessionClosed):
        game.submit_guess(sid, listing['id'], 1)


def test_challenge_completes_after_ten_listings(game):
    sid = session_id(6)
    game.start_session('challenge', 'easy', session_id=sid)
    seen = []
    outcome = None
    for n in range(1, 11):
        listing = game.get_next_listing(sid)
        assert listing['carNumber'] == n
        assert listing['totalCars'] == 10
        seen.append(listing['id'])
        outcome = game.submit_guess(sid, listing['id'], _price(game, listing['id']))
        assert outcome.is_complete == (n == 10)
    assert outcome.total_score == 50000
    assert outcome.next_listing is None
    assert len(set(seen)) == 10
    with pytest.raises(SessionClosed):
        game.get_next_listing(sid)


def test_start_session_rejects_bad_mode_and_duplicates(game):
    with pytest.raises(InvalidInput):
        game.start_session('hardcore', 'easy')
    with pytest.raises(InvalidInput):
        game.start_session('zero', 'medium')
    game.start_session('zero', 'easy', session_id=session_id(7))
    with pytest.raises(InvalidInput):
        game.start_session('zero', 'easy', session_id=session_id(7))


def test_finish_zero_session(game):
    sid = session_id(8)
    game.start_session('zero', 'easy', session_id=sid)
    with pytest.raises(InvalidInput):
        game.finish_session(sid)
    listing = game.get_next_listing(sid)
    game.submit_guess(sid, listing['id'], _price(game, listing['id']) + 300)
    finished = game.finish_session(sid)
    assert finished['isComplete']
    assert finished['totalScore'] == 300
    with pytest.raises(SessionClosed):
        game.finish_session(sid)


def test_finish_only_applies_to_zero_mode(game):
    sid = session_id(9)
    game.start_session('streak', 'easy', session_id=sid)
    with pytest.raises(InvalidInput):
        game.finish_session(sid)


def test_concurrent_guesses_on_one_listing_score_once(game):
    sid = session_id(10)
    listing = game.get_next_listing(sid, difficulty='hard', mode='zero')
    barrier = threading.Barrier(8)
    results = []

    def guess():
        barrier.wait()
        try:
            game.submit_guess(sid, listing['id'], 1000)
            results.append('ok')
        except StaleGuess:
            results.append('stale')

    threads = [threading.Thread(target=guess) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count('ok') == 1
    assert results.count('stale') == 7
    assert game.get_session(sid)['ordinal'] == 1


def test_sessions_do_not_block_each_other(game):
    sids = [session_id(20 + n) for n in range(6)]

    def play(sid):
        for _ in range(5):
            listing = game.get_next_listing(sid, difficulty='easy', mode='zero')
            game.submit_guess(sid, listing['id'], 1000)

    threads = [threading.Thread(target=play, args=(sid,)) for sid in sids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert all(game.get_session(sid)['ordinal'] == 5 for sid in sids)


def test_idle_sessions_are_purged():
    clock = FakeClock()
    game = GameEngine(make_provider(), GameSettings(SESSION_TTL_SEC=60), clock=clock)
    game.start_session('zero', 'easy', session_id=session_id(30))
    clock.now += 61
    game.start_session('zero', 'easy', session_id=session_id(31))
    assert session_id(30) not in game.sessions
    with pytest.raises(SessionNotFound):
        game.get_session(session_id(30))
    assert len(game.sessions) == 1


class GatedLock:
    """Lock whose blocking acquire waits for ``gate``, to hold a request mid-lookup."""

    def __init__(self):
        self._lock = threading.Lock()
        self.waiting = threading.Event()
        self.gate = threading.Event()

    def acquire(self, blocking=True):
        if blocking:
            self.waiting.set()
            self.gate.wait(5)
        return self._lock.acquire(blocking)

    def release(self):
        self._lock.release()


def test_purge_during_lookup_does_not_orphan_a_guess():
    clock = FakeClock()
    game = GameEngine(make_provider(), GameSettings(SESSION_TTL_SEC=60), clock=clock)
    sid = session_id(40)
    listing = game.get_next_listing(sid, difficulty='easy')
    gated = GatedLock()
    game.sessions._slots[sid].lock = gated
    clock.now += 61
    results = []

    def guess():
        try:
            game.submit_guess(sid, listing['id'], 1000)
            results.append('accepted')
        except SessionNotFound:
            results.append('not_found')

    worker = threading.Thread(target=guess)
    worker.start()
    assert gated.waiting.wait(5)
    # Purges the idle session while the guess sits between registry and slot lock
    game.start_session('zero', 'easy', session_id=session_id(41))
    gated.gate.set()
    worker.join(5)

    assert results == ['not_found']
    assert sid not in game.sessions


def test_listing_requests_purge_idle_sessions():
    clock = FakeClock()
    game = GameEngine(make_provider(), GameSettings(SESSION_TTL_SEC=60), clock=clock)
    for n in range(20):
        game.get_next_listing(session_id(50 + n), difficulty='easy')
    clock.now += 10_000
    for n in range(20):
        game.get_next_listing(session_id(100 + n), difficulty='easy')
    assert len(game.sessions) == 20
    assert session_id(50) not in game.sessions


def test_clock_at_zero_is_kept():
    clock = FakeClock(now=0.0)
    game = GameEngine(make_provider(), GameSettings(), clock=clock)
    sid = session_id(60)
    listing = game.get_next_listing(sid, difficulty='easy')
    game.submit_guess(sid, listing['id'], 1000)
    with game.sessions.locked(sid) as session:
        assert session.updated_at == 0.0
        assert session.created_at == 0.0
