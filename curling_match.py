import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import structlog

from curlingsim import Owner, Stone, step_frame, stone_radius_for
from curling_opponent import decide_throw
from curling_scoring import EndResult, house_score

logger = structlog.get_logger(__name__)


class Phase(Enum):
    IDLE = "idle"
    MOVING = "moving"
    END_FINISHED = "end_finished"


class Timer(Enum):
    OPPONENT_THROW = "opponent_throw"
    END_TRANSITION = "end_transition"
    SWEEP_CLEAR = "sweep_clear"


# ---------------- Configuration ----------------
@dataclass
class MatchConfig:
    stones_per_side: int = 4

    # deferred actions (seconds)
    opponent_delay: float = 1.0
    end_transition_delay: float = 1.0
    sweep_clear_delay: float = 0.1

    # rink layout, relative to the surface
    hack_offset: float = 100.0     # px above the bottom edge
    button_ratio: float = 0.25     # button y as a fraction of the height
    house_ratio: float = 0.4       # house radius as a fraction of the width

    # input
    force_multiplier: float = 0.15
    min_drag: float = 10.0         # px; shorter drags abort the throw
    grab_radius_factor: float = 2.0

    # give up on a throw that never settles
    max_frames_per_throw: int = 20000


@dataclass(frozen=True)
class Rink:
    width: float
    height: float
    hack: Tuple[float, float]
    button: Tuple[float, float]
    house_radius: float
    stone_radius: float

    @classmethod
    def from_surface(cls, width: float, height: float, cfg: MatchConfig) -> "Rink":
        return cls(
            width=float(width),
            height=float(height),
            hack=(width / 2.0, height - cfg.hack_offset),
            button=(width / 2.0, height * cfg.button_ratio),
            house_radius=width * cfg.house_ratio,
            stone_radius=stone_radius_for(width),
        )


# ---------------- Events / snapshot ----------------
@dataclass(frozen=True)
class EndFinished:
    winner: Optional[Owner]
    points: int
    scores: Dict[Owner, int]
    end_number: int


@dataclass(frozen=True)
class EndStarted:
    end_number: int


MatchEvent = Union[EndFinished, EndStarted]


@dataclass(frozen=True)
class StoneView:
    x: float
    y: float
    radius: float
    owner: Owner
    moving: bool

    @classmethod
    def of(cls, s: Stone) -> "StoneView":
        return cls(s.x, s.y, s.radius, s.owner, s.moving)


@dataclass(frozen=True)
class MatchSnapshot:
    turn_owner: Owner
    remaining: Dict[Owner, int]
    phase: Phase
    stones: Tuple[StoneView, ...]
    in_flight: Optional[StoneView]
    scores: Dict[Owner, int]
    sweeping: bool
    end_number: int
    last_result: Optional[EndResult] = None


# ---------------- Deferred callbacks ----------------
class Scheduler:
    """
    One-shot callbacks keyed by purpose. Scheduling a purpose that is already
    pending replaces it, so a purpose can never fire twice.
    """

    def __init__(self):
        self._pending: Dict[Timer, Tuple[float, Callable[[], None]]] = {}
        self.now = 0.0

    def schedule(self, purpose: Timer, delay: float, callback: Callable[[], None]):
        self._pending[purpose] = (self.now + delay, callback)

    def cancel(self, purpose: Timer) -> bool:
        return self._pending.pop(purpose, None) is not None

    def clear(self):
        self._pending.clear()

    def is_pending(self, purpose: Timer) -> bool:
        return purpose in self._pending

    def run_due(self, now: float) -> int:
        """Advance the clock to `now` and fire what has come due, earliest first."""
        self.now = now
        due = sorted(((t, p) for p, (t, _) in self._pending.items() if t <= now), key=lambda item: item[0])
        fired = 0
        for _, purpose in due:
            # an earlier callback may have cancelled or rescheduled this one
            entry = self._pending.get(purpose)
            if entry is None or entry[0] > now:
                continue
            del self._pending[purpose]
            entry[1]()
            fired += 1
        return fired


# ---------------- Input helpers ----------------
def drag_to_velocity(start: Tuple[float, float], end: Tuple[float, float],
                     cfg: Optional[MatchConfig] = None) -> Optional[Tuple[float, float]]:
    """Pull-back drag -> launch velocity, or None when the drag is too short to count."""
    cfg = cfg or MatchConfig()
    throw_x = start[0] - end[0]
    throw_y = start[1] - end[1]
    if math.hypot(throw_x, throw_y) <= cfg.min_drag:
        return None
    return throw_x * cfg.force_multiplier, throw_y * cfg.force_multiplier


# ---------------- Controller ----------------
Listener = Callable[[MatchEvent], None]


class MatchController:
    """
    Turn and scoring state machine for a player against the computer.

    IDLE -> (throw) -> MOVING -> (all stopped) -> IDLE with the turn flipped,
    until both sides are out of stones: END_FINISHED -> (delay) -> new end.
    """

    def __init__(self, width: float, height: float,
                 cfg: Optional[MatchConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.cfg = cfg or MatchConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.rink = Rink.from_surface(width, height, self.cfg)
        self.timers = Scheduler()

        self.stones: List[Stone] = []
        self.in_flight: Optional[Stone] = None
        self.turn_owner = Owner.PLAYER
        self.phase = Phase.IDLE
        self.remaining: Dict[Owner, int] = {o: 0 for o in Owner}
        self.scores: Dict[Owner, int] = {o: 0 for o in Owner}
        self.sweeping = False
        self.end_number = 0
        self.last_result: Optional[EndResult] = None

        self._clock = 0.0
        self._frames_this_throw = 0
        self._listeners: List[Listener] = []

        self.start_new_end()

    # ---------------- Listeners ----------------
    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def _emit(self, event: MatchEvent):
        for listener in list(self._listeners):
            listener(event)

    # ---------------- Layout ----------------
    def resize(self, width: float, height: float):
        self.rink = Rink.from_surface(width, height, self.cfg)
        if self.in_flight is not None:
            self.in_flight.radius = self.rink.stone_radius
            self._pin_to_hack()

    def _pin_to_hack(self):
        self.in_flight.x, self.in_flight.y = self.rink.hack

    # ---------------- End / turn lifecycle ----------------
    def reset_match(self):
        self.scores = {o: 0 for o in Owner}
        self.end_number = 0
        self.last_result = None
        self.start_new_end()

    def start_new_end(self):
        self.timers.clear()
        self.stones = []
        self.remaining = {o: self.cfg.stones_per_side for o in Owner}
        self.turn_owner = Owner.PLAYER
        self.phase = Phase.IDLE
        self.sweeping = False
        self.end_number += 1
        logger.info("end_started", end_number=self.end_number)
        self._emit(EndStarted(end_number=self.end_number))
        self._prepare_turn()

    def _prepare_turn(self):
        if all(n == 0 for n in self.remaining.values()):
            self._finish_end()
            return

        # a side that is out of stones passes the turn back
        if self.remaining[self.turn_owner] == 0:
            self.turn_owner = self.turn_owner.other

        self.phase = Phase.IDLE
        self.in_flight = Stone(*self.rink.hack, radius=self.rink.stone_radius, owner=self.turn_owner)
        logger.debug("turn_prepared", turn_owner=self.turn_owner.value,
                     remaining={o.value: n for o, n in self.remaining.items()})

        if self.turn_owner is Owner.OPPONENT:
            self.timers.schedule(Timer.OPPONENT_THROW, self.cfg.opponent_delay, self._opponent_throw)

    def _finish_turn(self):
        self.sweeping = False
        self.timers.cancel(Timer.SWEEP_CLEAR)
        self.turn_owner = self.turn_owner.other
        self._prepare_turn()

    def _finish_end(self):
        self.phase = Phase.END_FINISHED
        self.in_flight = None
        result = house_score(self.stones, self.rink.button, self.rink.house_radius)
        if result.scored:
            self.scores[result.winner] += result.points
        self.last_result = result

        winner = result.winner.value if result.winner else None
        logger.info("end_finished", end_number=self.end_number, winner=winner, points=result.points,
                    scores={o.value: n for o, n in self.scores.items()})
        self._emit(EndFinished(winner=result.winner, points=result.points,
                               scores=dict(self.scores), end_number=self.end_number))
        self.timers.schedule(Timer.END_TRANSITION, self.cfg.end_transition_delay, self.start_new_end)

    def _opponent_throw(self):
        if self.turn_owner is not Owner.OPPONENT or self.phase is not Phase.IDLE:
            return
        velocity = decide_throw(self.rink.hack, self.rink.button, self.rink.width, self.rng)
        self.request_throw(Owner.OPPONENT, velocity)

    # ---------------- Commands ----------------
    def request_throw(self, side: Owner, velocity: Tuple[float, float]) -> bool:
        """Launch the in-flight stone. Returns False (and changes nothing) if the throw is not allowed."""
        if self.phase is not Phase.IDLE or side is not self.turn_owner:
            logger.debug("throw_rejected", side=side.value, phase=self.phase.value,
                         turn_owner=self.turn_owner.value)
            return False
        if self.in_flight is None or self.remaining[side] <= 0:
            logger.debug("throw_rejected", side=side.value, reason="no_stone")
            return False
        vx, vy = float(velocity[0]), float(velocity[1])
        if not (math.isfinite(vx) and math.isfinite(vy)):
            logger.debug("throw_rejected", side=side.value, reason="non_finite_velocity")
            return False

        stone = self.in_flight
        self._pin_to_hack()
        stone.vx, stone.vy = vx, vy
        stone.moving = True

        self.stones.append(stone)
        self.in_flight = None
        self.remaining[side] -= 1
        self.phase = Phase.MOVING
        self._frames_this_throw = 0
        self.timers.cancel(Timer.OPPONENT_THROW)
        logger.debug("throw_accepted", side=side.value, vx=round(vx, 3), vy=round(vy, 3),
                     remaining=self.remaining[side])
        return True

    def set_sweep_active(self, active: bool) -> bool:
        if not active:
            self.sweeping = False
            self.timers.cancel(Timer.SWEEP_CLEAR)
            return False
        if self.phase is not Phase.MOVING or not any(s.moving for s in self.stones):
            return False
        self.sweeping = True
        self.timers.schedule(Timer.SWEEP_CLEAR, self.cfg.sweep_clear_delay, self._clear_sweep)
        return True

    def _clear_sweep(self):
        self.sweeping = False

    def can_grab(self, point: Tuple[float, float]) -> bool:
        if self.turn_owner is not Owner.PLAYER or self.phase is not Phase.IDLE or self.in_flight is None:
            return False
        d = math.hypot(point[0] - self.in_flight.x, point[1] - self.in_flight.y)
        return d < self.in_flight.radius * self.cfg.grab_radius_factor

    # ---------------- Per-frame update ----------------
    def tick(self, dt: float):
        """Advance the clock by dt seconds, fire due timers, then run one frame."""
        self._clock += dt
        self.timers.run_due(self._clock)
        self.update()

    def update(self):
        if self.phase is Phase.MOVING:
            any_moving = step_frame(self.stones, self.sweeping, self.rink.width, self.rink.height)
            self._frames_this_throw += 1

            if any_moving and self._frames_this_throw >= self.cfg.max_frames_per_throw:
                logger.warning("settle_timeout", frames=self._frames_this_throw, stones=len(self.stones))
                for s in self.stones:
                    s.vx = s.vy = 0.0
                    s.moving = False
                any_moving = False

            if not any_moving:
                self._finish_turn()

        elif self.phase is Phase.IDLE and self.in_flight is not None:
            self._pin_to_hack()

    # ---------------- Read-only view ----------------
    def snapshot(self) -> MatchSnapshot:
        return MatchSnapshot(
            turn_owner=self.turn_owner,
            remaining=dict(self.remaining),
            phase=self.phase,
            stones=tuple(StoneView.of(s) for s in self.stones),
            in_flight=StoneView.of(self.in_flight) if self.in_flight is not None else None,
            scores=dict(self.scores),
            sweeping=self.sweeping,
            end_number=self.end_number,
            last_result=self.last_result,
        )
