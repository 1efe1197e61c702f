from typing import Optional, Tuple

import numpy as np

# Aim model for the computer opponent
AIM_ERROR_FRAC = 0.1    # lateral error spans this fraction of the surface width
LATERAL_GAIN   = 0.05   # x force per pixel of lateral offset
FORCE_GAIN     = 0.155  # y force per pixel of hack-to-target distance


def decide_throw(launch: Tuple[float, float],
                 target: Tuple[float, float],
                 surface_width: float,
                 rng: Optional[np.random.Generator] = None) -> Tuple[float, float]:
    """Aim at the target with a random lateral error. No look at the board, no search."""
    if rng is None:
        rng = np.random.default_rng()
    error_x = (rng.random() - 0.5) * (surface_width * AIM_ERROR_FRAC)
    vx = (target[0] + error_x - launch[0]) * LATERAL_GAIN
    vy = -(launch[1] - target[1]) * FORCE_GAIN
    return float(vx), float(vy)
