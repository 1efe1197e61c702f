import numpy as np

import curlingsim
from curling_env import CurlingEnv
from curling_logging import configure_logging


def draw_weight(distance: float) -> float:
    """Launch speed that lets a stone glide `distance` pixels on plain ice before stopping."""
    return distance * (1.0 - curlingsim.FRICTION_NORMAL) + curlingsim.STOP_SPEED


def draw_policy(env: CurlingEnv, rng: np.random.Generator, spread: float = 0.3):
    """Scripted player: draw to the button with a little lateral wobble."""
    _, hy = env.match.rink.hack
    _, by = env.match.rink.button
    vx = rng.uniform(-spread, spread)
    vy = -draw_weight(hy - by)
    return np.array([vx, vy], dtype=np.float32)


def play_curling(env: CurlingEnv, ends: int, seed: int = 0):
    rng = np.random.default_rng(seed)
    totals = {'player': 0, 'opponent': 0}
    blanks = 0
    for end in range(ends):
        env.reset(seed=seed + end)
        done = False
        info = {}
        while not done:
            action = draw_policy(env, rng)
            _, _, terminated, truncated, info = env.step(action)
            done = terminated or truncated

        env.render()
        winner = info.get('winner')
        if winner is None:
            blanks += 1
        else:
            totals[winner] += info['points']

    print("Match over")
    game_info = {
        'ends': ends,
        'player_points': totals['player'],
        'opponent_points': totals['opponent'],
        'blank_ends': blanks,
    }
    return game_info


# ============================================================================
if __name__ == "__main__":
    configure_logging()
    env = CurlingEnv(stones_per_side=4, render_mode='human')
    game_info = play_curling(env, ends=8, seed=7)
    print(game_info)
