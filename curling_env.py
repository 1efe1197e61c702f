import math
import numpy as np
import gymnasium as gym
from gymnasium import spaces
from typing import Tuple, Dict, List, Optional

import structlog

from curlingsim import Owner
from curling_match import MatchConfig, MatchController, EndFinished, Phase

logger = structlog.get_logger(__name__)


class CurlingEnv(gym.Env):
    """
    Gymnasium environment for one end of curling against the computer opponent.

    Each step is one player throw. The environment then runs the simulation
    (including the opponent's reply) until it is the player's turn again or
    the end is over.
    """

    metadata = {'render_modes': ['human'], 'render_fps': 60}

    def __init__(
        self,
        stones_per_side: int = 4,
        width: float = 600.0,     # pixels
        height: float = 800.0,    # pixels
        max_ticks_per_step: int = 60000,
        render_mode: Optional[str] = None
    ):
        super().__init__()

        self.stones_per_side = stones_per_side
        self.total_stones = stones_per_side * 2
        self.width = width
        self.height = height
        self.max_ticks_per_step = max_ticks_per_step
        self.render_mode = render_mode
        self.cfg = MatchConfig(stones_per_side=stones_per_side)
        self.dt = 1.0 / self.metadata['render_fps']

        self.match: Optional[MatchController] = None
        self.done = False
        self.throws = 0
        self._end_event: Optional[EndFinished] = None

        # Action space: launch velocity [vx, vy] in px/frame (negative vy is up-ice)
        self.action_space = spaces.Box(
            low=np.array([-10.0, -15.0]),
            high=np.array([10.0, -1.0]),
            dtype=np.float32
        )

        # Observation space: for each stone [x, y, owner_id], then
        # [player remaining, opponent remaining, turn owner]
        obs_dim = self.total_stones * 3 + 3
        self.observation_space = spaces.Box(
            low=-np.inf,
            high=np.inf,
            shape=(obs_dim,),
            dtype=np.float32
        )

    def reset(self, seed: Optional[int] = None, options: Optional[dict] = None) -> Tuple[np.ndarray, Dict]:
        """Reset the environment to the start of a fresh end."""
        super().reset(seed=seed)

        self.match = MatchController(self.width, self.height, cfg=self.cfg, rng=self.np_random)
        self.match.add_listener(self._on_event)
        self.done = False
        self.throws = 0
        self._end_event = None

        return self._get_observation(), self._get_info()

    def _on_event(self, event):
        if isinstance(event, EndFinished):
            self._end_event = event

    def step(self, action: np.ndarray) -> Tuple[np.ndarray, float, bool, bool, Dict]:
        """
        Execute one player throw.

        Args:
            action: [vx, vy] launch velocity for the player's stone

        Returns:
            observation, reward, terminated, truncated, info
        """
        if self.done:
            raise RuntimeError("Episode is done. Call reset() before step().")

        velocity = (float(action[0]), float(action[1]))
        if self.match.request_throw(Owner.PLAYER, velocity):
            self.throws += 1

        truncated = not self._run_until_player_turn()
        terminated = self._end_event is not None
        self.done = terminated or truncated

        reward = 0.0
        if terminated:
            reward = self._end_reward(self._end_event)

        return self._get_observation(), reward, terminated, truncated, self._get_info()

    def _run_until_player_turn(self) -> bool:
        """Tick until the player may throw again or the end is scored. False if the tick budget ran out."""
        for _ in range(self.max_ticks_per_step):
            if self._end_event is not None:
                return True
            m = self.match
            if m.phase is Phase.IDLE and m.turn_owner is Owner.PLAYER and m.in_flight is not None:
                return True
            m.tick(self.dt)
        logger.warning("env_step_tick_budget_exhausted", ticks=self.max_ticks_per_step)
        return False

    @staticmethod
    def _end_reward(event: EndFinished) -> float:
        if event.winner is Owner.PLAYER:
            return float(event.points)
        if event.winner is Owner.OPPONENT:
            return -float(event.points)
        return 0.0

    def _get_observation(self) -> np.ndarray:
        """
        Create observation vector containing all stone states.
        """
        obs = []
        for owner, owner_id in ((Owner.PLAYER, 0.0), (Owner.OPPONENT, 1.0)):
            mine = [s for s in self.match.stones if s.owner is owner]
            for i in range(self.stones_per_side):
                if i < len(mine):
                    obs.extend([mine[i].x, mine[i].y, owner_id])
                else:
                    # Placeholder for stones not yet thrown
                    obs.extend([0.0, 0.0, owner_id])

        obs.append(float(self.match.remaining[Owner.PLAYER]))
        obs.append(float(self.match.remaining[Owner.OPPONENT]))
        obs.append(0.0 if self.match.turn_owner is Owner.PLAYER else 1.0)

        return np.array(obs, dtype=np.float32)

    def _get_info(self) -> Dict:
        """Return auxiliary information about the environment state."""
        snap = self.match.snapshot()
        info = {
            'turn_owner': snap.turn_owner.value,
            'phase': snap.phase.value,
            'throws': self.throws,
            'remaining_player': snap.remaining[Owner.PLAYER],
            'remaining_opponent': snap.remaining[Owner.OPPONENT],
        }
        if self._end_event is not None:
            info['winner'] = self._end_event.winner.value if self._end_event.winner else None
            info['points'] = self._end_event.points
        return info

    def get_stone_positions(self) -> Tuple[List[Tuple[float, float]], List[Tuple[float, float]]]:
        """
        Get current positions of all stones for both sides.

        Returns:
            (player_positions, opponent_positions) as lists of (x, y) tuples
        """
        player_pos = [(s.x, s.y) for s in self.match.stones if s.owner is Owner.PLAYER]
        opponent_pos = [(s.x, s.y) for s in self.match.stones if s.owner is Owner.OPPONENT]
        return player_pos, opponent_pos

    def render(self):
        """Render the current state of the rink as text."""
        if self.render_mode is None:
            return

        if self.render_mode == "human":
            bx, by = self.match.rink.button
            print(f"\n{'='*50}")
            print(f"Curling End {self.match.end_number} - Phase: {self.match.phase.value}")
            print(f"Turn: {self.match.turn_owner.value} | "
                  f"Stones left: {self.match.remaining[Owner.PLAYER]} - {self.match.remaining[Owner.OPPONENT]}")
            print(f"{'='*50}")

            for owner in Owner:
                mine = [s for s in self.match.stones if s.owner is owner]
                print(f"\n{owner.value.title()} stones ({len(mine)}):")
                for i, stone in enumerate(mine):
                    dist = math.hypot(stone.x - bx, stone.y - by)
                    print(f"  {i+1}. Position: ({stone.x:.1f}, {stone.y:.1f}), "
                          f"Distance to button: {dist:.1f}px")
            print(f"{'='*50}\n")


# Example usage and testing
if __name__ == "__main__":
    env = CurlingEnv(render_mode="human")
    obs, info = env.reset(seed=0)
    print(f"Observation shape: {obs.shape}")
    print(f"Action space: {env.action_space}")

    actions = [(0.0, -3.5), (0.5, -3.6), (-0.5, -3.4), (0.0, -8.0)]
    for i, action in enumerate(actions):
        print(f"\nThrow {i+1}: vx={action[0]:.2f}, vy={action[1]:.2f}")
        obs, reward, terminated, truncated, info = env.step(action)
        env.render()
        print(f"Reward: {reward}")
        if terminated or truncated:
            print("\nEnd over!", info)
            break
