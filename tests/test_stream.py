"""Tests for the live feed loop in stream.py"""

import random
import threading

import pytest

from lso_debrief.domain import Outcome, Phase
from lso_debrief.engine import Engine
from lso_debrief.stream import BackoffPolicy, LsoComment, UnitGone, dispatch, run_forever

from conftest import fast_backoff


class TestBackoffPolicy:
    """Tests for BackoffPolicy."""

    def test_grows_and_caps(self):
        b = BackoffPolicy(jitter=False)
        delays = list(b.delays(12))
        assert delays[:4] == pytest.approx([0.5, 0.75, 1.125, 1.6875])
        assert max(delays) == 30.0
        assert delays[-1] == 30.0

    def test_reset(self):
        b = BackoffPolicy(jitter=False)
        list(b.delays(5))
        b.reset()
        assert b.next_delay() == 0.5

    def test_jitter_within_ceiling(self):
        b = BackoffPolicy(rng=random.Random(1))
        ceilings = list(BackoffPolicy(jitter=False).delays(20))
        for ceiling, delay in zip(ceilings, b.delays(20)):
            assert 0.0 <= delay <= ceiling

    def test_jitter_is_seedable(self):
        a = list(BackoffPolicy(rng=random.Random(7)).delays(5))
        b = list(BackoffPolicy(rng=random.Random(7)).delays(5))
        assert a == b

    @pytest.mark.parametrize(
        "kwargs",
        [{"initial_s": 0.0}, {"multiplier": 0.5}, {"initial_s": 5.0, "max_s": 1.0}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            BackoffPolicy(**kwargs)


class TestDispatch:
    """Tests for dispatch."""

    def test_comment_then_gone(self, sample_at):
        engine = Engine()
        assert dispatch(engine, sample_at(1000.0)) == []
        assert dispatch(engine, LsoComment("Hornet 1-1", "(OK) 3-wire")) == []
        gone = dispatch(engine, UnitGone("Hornet 1-1"))
        (snap,) = engine.collect()
        assert gone == [snap]
        assert snap.outcome == Outcome(Phase.INCOMPLETE)
        assert snap.lso_comment == "(OK) 3-wire"

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            dispatch(Engine(), "not an event")


class TestRunForever:
    """Reconnect loop."""

    def test_reconnects_after_failure(self, approach, caplog):
        engine = Engine()
        stop = threading.Event()
        calls = []

        def connect():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("refused")
            if len(calls) == 2:
                return iter(approach())
            stop.set()
            return iter([])

        with caplog.at_level("WARNING", logger="lso_debrief.stream"):
            n = run_forever(connect, engine, stop, backoff=fast_backoff())

        assert n == 3
        assert "ConnectionError: refused" in caplog.text
        assert "stream ended after 7 event(s)" in caplog.text
        assert [a.outcome for a in engine.collect()] == [Outcome.cable(3)]

    def test_stop_mid_stream(self, approach):
        engine = Engine()
        stop = threading.Event()
        samples = approach()

        def connect():
            yield samples[0]
            stop.set()
            yield samples[1]

        assert run_forever(connect, engine, stop, backoff=fast_backoff()) == 1
        assert engine.active_count == 1
        assert engine.close()[0].end_time == samples[0].time

    def test_already_stopped(self):
        stop = threading.Event()
        stop.set()
        assert run_forever(lambda: iter([]), Engine(), stop) == 0

    def test_runs_on_a_thread(self, approach):
        engine = Engine()
        stop = threading.Event()
        feed = iter([approach()])

        def connect():
            batch = next(feed, None)
            if batch is None:
                raise ConnectionError("server gone")
            return iter(batch)

        worker = threading.Thread(target=run_forever, args=(connect, engine, stop, fast_backoff()), daemon=True)
        worker.start()
        first = engine.handoff.get(timeout=2.0)
        stop.set()
        worker.join(timeout=2.0)
        assert not worker.is_alive()
        assert first.outcome == Outcome.cable(3)
