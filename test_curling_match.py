"""
Turn/match controller: throw validation, turn flips, end scoring and the
deferred opponent, end-transition and sweep timers.
"""

import math

import numpy as np
import pytest

from curlingsim import Owner
from curling_match import (
    EndFinished, EndStarted, MatchConfig, MatchController, Phase, Scheduler, Timer, drag_to_velocity,
)

DT = 1.0 / 60
DRAW = (0.0, -3.5)   # settles around y=269 on a 600x800 sheet, inside the house

P, O = Owner.PLAYER, Owner.OPPONENT


@pytest.fixture
def match():
    return MatchController(600, 800, rng=np.random.default_rng(0))


def run_until(match, predicate, limit=100000):
    for _ in range(limit):
        if predicate(match):
            return True
        match.tick(DT)
    return predicate(match)


def settle(match):
    assert run_until(match, lambda m: m.phase is not Phase.MOVING)


class TestScheduler:
    def test_fires_once_when_due(self):
        calls = []
        timers = Scheduler()
        timers.schedule(Timer.OPPONENT_THROW, 1.0, lambda: calls.append("x"))
        assert timers.run_due(0.5) == 0
        assert timers.run_due(1.0) == 1
        assert timers.run_due(5.0) == 0
        assert calls == ["x"]

    def test_rescheduling_replaces_the_pending_callback(self):
        calls = []
        timers = Scheduler()
        timers.schedule(Timer.SWEEP_CLEAR, 0.1, lambda: calls.append("first"))
        timers.schedule(Timer.SWEEP_CLEAR, 0.3, lambda: calls.append("second"))
        timers.run_due(0.2)
        assert calls == []
        timers.run_due(0.3)
        assert calls == ["second"]

    def test_cancel(self):
        calls = []
        timers = Scheduler()
        timers.schedule(Timer.END_TRANSITION, 0.1, lambda: calls.append("x"))
        assert timers.cancel(Timer.END_TRANSITION)
        assert not timers.cancel(Timer.END_TRANSITION)
        timers.run_due(1.0)
        assert calls == []

    def test_due_callbacks_run_earliest_first(self):
        calls = []
        timers = Scheduler()
        timers.schedule(Timer.END_TRANSITION, 0.5, lambda: calls.append("end"))
        timers.schedule(Timer.SWEEP_CLEAR, 0.1, lambda: calls.append("sweep"))
        timers.run_due(1.0)
        assert calls == ["sweep", "end"]

    def test_callback_may_cancel_a_later_one(self):
        calls = []
        timers = Scheduler()

        def first():
            calls.append("first")
            timers.cancel(Timer.OPPONENT_THROW)

        timers.schedule(Timer.SWEEP_CLEAR, 0.1, first)
        timers.schedule(Timer.OPPONENT_THROW, 0.2, lambda: calls.append("second"))
        timers.run_due(1.0)
        assert calls == ["first"]


class TestDragToThrow:
    def test_pull_back_gives_opposite_velocity(self):
        assert drag_to_velocity((100, 100), (100, 150)) == pytest.approx((0.0, -7.5))

    def test_short_drag_is_an_aborted_throw(self):
        assert drag_to_velocity((100, 100), (103, 104)) is None
        assert drag_to_velocity((100, 100), (110, 100)) is None

    def test_custom_multiplier(self):
        cfg = MatchConfig(force_multiplier=0.1)
        assert drag_to_velocity((0, 0), (-20, 0), cfg) == pytest.approx((2.0, 0.0))


class TestNewEnd:
    def test_initial_state(self, match):
        snap = match.snapshot()
        assert snap.phase is Phase.IDLE
        assert snap.turn_owner is P
        assert snap.remaining == {P: 4, O: 4}
        assert snap.stones == ()
        assert snap.end_number == 1
        assert snap.scores == {P: 0, O: 0}
        assert (snap.in_flight.x, snap.in_flight.y) == (300.0, 700.0)
        assert snap.in_flight.radius == pytest.approx(24.0)
        assert snap.in_flight.owner is P

    def test_rink_geometry(self, match):
        assert match.rink.button == (300.0, 200.0)
        assert match.rink.house_radius == pytest.approx(240.0)

    def test_snapshot_is_detached(self, match):
        snap = match.snapshot()
        snap.remaining[P] = 0
        assert match.remaining[P] == 4

    def test_resize_moves_the_hack(self, match):
        match.resize(1000, 900)
        assert match.rink.hack == (500.0, 800.0)
        assert (match.in_flight.x, match.in_flight.y) == (500.0, 800.0)
        assert match.in_flight.radius == pytest.approx(40.0)


class TestThrowValidation:
    def test_accepted_throw_launches_the_stone(self, match):
        assert match.request_throw(P, DRAW)
        assert match.phase is Phase.MOVING
        assert match.remaining == {P: 3, O: 4}
        assert len(match.stones) == 1
        assert match.stones[0].moving
        assert match.in_flight is None

    def test_wrong_side_is_ignored(self, match):
        before = match.snapshot()
        assert not match.request_throw(O, DRAW)
        assert match.snapshot() == before

    def test_throw_while_moving_is_ignored(self, match):
        match.request_throw(P, DRAW)
        assert not match.request_throw(P, DRAW)
        assert match.remaining[P] == 3
        assert len(match.stones) == 1

    def test_non_finite_velocity_is_ignored(self, match):
        assert not match.request_throw(P, (math.nan, -3.0))
        assert not match.request_throw(P, (0.0, math.inf))
        assert match.phase is Phase.IDLE
        assert match.remaining[P] == 4

    def test_throw_after_end_is_ignored(self, match):
        match.remaining = {P: 1, O: 0}
        match.request_throw(P, DRAW)
        settle(match)
        assert match.phase is Phase.END_FINISHED
        assert not match.request_throw(P, DRAW)
        assert not match.request_throw(O, DRAW)


class TestTurns:
    def test_turn_flips_to_opponent_when_stones_stop(self, match):
        match.request_throw(P, DRAW)
        settle(match)
        assert match.phase is Phase.IDLE
        assert match.turn_owner is O
        assert match.in_flight.owner is O
        assert match.timers.is_pending(Timer.OPPONENT_THROW)

    def test_opponent_throws_after_the_delay(self, match):
        match.request_throw(P, DRAW)
        settle(match)
        assert match.turn_owner is O

        for _ in range(30):
            match.tick(DT)
        assert match.phase is Phase.IDLE

        assert run_until(match, lambda m: m.phase is Phase.MOVING, limit=60)
        assert match.remaining == {P: 3, O: 3}
        assert match.stones[-1].owner is O

    def test_one_stone_each_left_passes_to_opponent(self, match):
        match.remaining = {P: 1, O: 1}
        match.request_throw(P, DRAW)
        settle(match)
        assert match.phase is Phase.IDLE
        assert match.turn_owner is O

    def test_last_stone_finishes_the_end(self, match):
        match.remaining = {P: 1, O: 0}
        match.request_throw(P, DRAW)
        settle(match)
        assert match.phase is Phase.END_FINISHED
        assert match.in_flight is None

    def test_side_out_of_stones_hands_the_turn_back(self, match):
        match.remaining = {P: 2, O: 0}
        match.request_throw(P, DRAW)
        settle(match)
        assert match.phase is Phase.IDLE
        assert match.turn_owner is P
        assert not match.timers.is_pending(Timer.OPPONENT_THROW)

    def test_settle_timeout_forces_the_turn_over(self, caplog):
        m = MatchController(600, 800, cfg=MatchConfig(max_frames_per_throw=5), rng=np.random.default_rng(0))
        m.request_throw(P, DRAW)
        for _ in range(5):
            m.tick(DT)
        assert m.phase is Phase.IDLE
        assert m.turn_owner is O
        assert all(not s.moving and s.vx == 0.0 and s.vy == 0.0 for s in m.stones)
        assert "settle_timeout" in caplog.text


class TestEndScoring:
    def test_end_is_scored_and_a_new_end_follows(self, match):
        events = []
        match.add_listener(events.append)
        match.remaining = {P: 1, O: 0}
        match.request_throw(P, DRAW)
        settle(match)

        assert events == [EndFinished(winner=P, points=1, scores={P: 1, O: 0}, end_number=1)]
        assert match.scores == {P: 1, O: 0}
        assert match.timers.is_pending(Timer.END_TRANSITION)

        assert run_until(match, lambda m: m.phase is Phase.IDLE, limit=70)
        assert events[-1] == EndStarted(end_number=2)
        assert match.remaining == {P: 4, O: 4}
        assert match.stones == []
        assert match.turn_owner is P
        # cumulative score survives the new end
        assert match.scores == {P: 1, O: 0}

    def test_blank_end_awards_nothing(self, match):
        events = []
        match.add_listener(events.append)
        match.remaining = {P: 1, O: 0}
        # a feather-weight throw that stops well short of the house
        match.request_throw(P, (0.0, -0.5))
        settle(match)
        assert events[0].winner is None
        assert events[0].points == 0
        assert match.scores == {P: 0, O: 0}

    def test_reset_match_clears_scores(self, match):
        match.remaining = {P: 1, O: 0}
        match.request_throw(P, DRAW)
        settle(match)
        match.reset_match()
        assert match.scores == {P: 0, O: 0}
        assert match.end_number == 1
        assert match.phase is Phase.IDLE
        assert not match.timers.is_pending(Timer.END_TRANSITION)

    def test_full_end_reaches_end_finished_exactly_once(self, match):
        log = []
        match.add_listener(lambda e: log.append((e, len(match.stones), dict(match.remaining))))

        player_throws = 0
        for _ in range(200000):
            if log and isinstance(log[-1][0], EndStarted):
                break
            if match.phase is Phase.IDLE and match.turn_owner is P and match.end_number == 1:
                if match.request_throw(P, DRAW):
                    player_throws += 1
            match.tick(DT)

        finished = [entry for entry in log if isinstance(entry[0], EndFinished)]
        assert len(finished) == 1
        assert isinstance(log[0][0], EndFinished)
        assert finished[0][1] == 8
        assert finished[0][2] == {P: 0, O: 0}
        assert player_throws == 4

        assert log[-1][0] == EndStarted(end_number=2)
        assert match.remaining == {P: 4, O: 4}
        assert match.phase is Phase.IDLE


class TestSweeping:
    def test_ignored_when_nothing_moves(self, match):
        assert not match.set_sweep_active(True)
        assert not match.sweeping

    def test_auto_clears_after_a_short_pause(self, match):
        match.request_throw(P, DRAW)
        assert match.set_sweep_active(True)
        assert match.sweeping
        for _ in range(3):
            match.tick(DT)
        assert match.sweeping
        for _ in range(5):
            match.tick(DT)
        assert not match.sweeping

    def test_repeated_sweeps_keep_one_timer(self, match):
        match.request_throw(P, DRAW)
        match.set_sweep_active(True)
        match.tick(DT)
        match.set_sweep_active(True)
        assert match.timers.is_pending(Timer.SWEEP_CLEAR)
        match.set_sweep_active(False)
        assert not match.sweeping
        assert not match.timers.is_pending(Timer.SWEEP_CLEAR)

    def test_sweeping_carries_the_stone_farther(self):
        def final_y(sweep):
            m = MatchController(600, 800, rng=np.random.default_rng(0))
            m.request_throw(P, (0.0, -1.0))
            stone = m.stones[0]
            while m.phase is Phase.MOVING:
                if sweep:
                    m.set_sweep_active(True)
                m.tick(DT)
            return stone.y

        assert final_y(sweep=True) < final_y(sweep=False) - 100.0


class TestGrab:
    def test_grab_near_the_stone_on_players_turn(self, match):
        assert match.can_grab((310.0, 690.0))
        assert not match.can_grab((300.0, 600.0))

    def test_no_grab_on_opponents_turn(self, match):
        match.request_throw(P, DRAW)
        assert not match.can_grab((300.0, 700.0))
        settle(match)
        assert not match.can_grab((300.0, 700.0))
