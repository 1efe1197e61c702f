import math
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)

# Tunable physical constants (pixels, one step per frame)
FRICTION_NORMAL    = 0.992  # velocity retained per frame on plain ice
FRICTION_SWEEPING  = 0.998  # velocity retained per frame while sweeping. Higher -> farther glide.
STOP_SPEED         = 0.05   # per-axis absorption threshold (px/frame)
RESTITUTION        = 0.8    # stone-on-stone normal restitution
WALL_BOUNCE        = -0.5   # perpendicular velocity factor on a rink edge
STONE_MASS         = 20.0   # uniform; the collision exchange assumes equal mass
STONE_RADIUS_RATIO = 0.04   # stone radius as a fraction of the surface width


# ---- Small helpers for calibration / live tuning ----
def set_tuning(normal=None, sweeping=None, stop=None, e=None, wall=None):
    """Change model parameters at runtime."""
    global FRICTION_NORMAL, FRICTION_SWEEPING, STOP_SPEED, RESTITUTION, WALL_BOUNCE
    if normal   is not None: FRICTION_NORMAL = float(normal)
    if sweeping is not None: FRICTION_SWEEPING = float(sweeping)
    if stop     is not None: STOP_SPEED = float(stop)
    if e        is not None: RESTITUTION = float(e)
    if wall     is not None: WALL_BOUNCE = float(wall)


def stone_radius_for(surface_width: float) -> float:
    return surface_width * STONE_RADIUS_RATIO


class Owner(Enum):
    PLAYER = "player"
    OPPONENT = "opponent"

    @property
    def other(self) -> "Owner":
        return Owner.OPPONENT if self is Owner.PLAYER else Owner.PLAYER


class Stone:
    """A curling stone on the 2D surface with position, velocity and owner."""
    def __init__(self, x, y, radius, owner: Owner, vx=0.0, vy=0.0, moving=False):
        self.x = float(x)
        self.y = float(y)
        self.vx = float(vx)
        self.vy = float(vy)
        self.radius = float(radius)
        self.owner = owner
        self.moving = moving
        self.mass = STONE_MASS

    def speed(self) -> float:
        return math.hypot(self.vx, self.vy)

    def __repr__(self):
        return (f"Stone({self.owner.value}, x={self.x:.2f}, y={self.y:.2f}, "
                f"vx={self.vx:.3f}, vy={self.vy:.3f}, moving={self.moving})")


def advance_stone(stone: Stone, sweep_active: bool):
    """Advance a stone by one frame: translate, apply ice friction, absorb if slow."""
    if not stone.moving:
        return

    stone.x += stone.vx
    stone.y += stone.vy

    # sweeping keeps more of the velocity
    friction = FRICTION_SWEEPING if sweep_active else FRICTION_NORMAL
    stone.vx *= friction
    stone.vy *= friction

    # stop if very slow (each axis on its own, not the combined speed)
    if abs(stone.vx) < STOP_SPEED and abs(stone.vy) < STOP_SPEED:
        stone.vx = 0.0
        stone.vy = 0.0
        stone.moving = False


def detect_collision(a: Stone, b: Stone) -> bool:
    """Return True if stones are overlapping."""
    dx, dy = b.x - a.x, b.y - a.y
    return math.hypot(dx, dy) < a.radius + b.radius


def resolve_collision(a: Stone, b: Stone) -> bool:
    """
    Equal-mass collision: swap the normal velocity components in the contact
    frame, damp them by RESTITUTION, keep the tangential components, then
    separate the stones so they just touch.

    Returns True if the stones were in contact.
    """
    dx, dy = b.x - a.x, b.y - a.y
    dist = math.hypot(dx, dy)
    if dist >= a.radius + b.radius:
        return False

    # coincident centres: atan2 has no meaningful answer, push apart along +x
    angle = math.atan2(dy, dx) if dist > 0.0 else 0.0
    cos, sin = math.cos(angle), math.sin(angle)

    # rotate into the contact frame (n along the line of centres, t across it)
    a_n = a.vx * cos + a.vy * sin
    a_t = a.vy * cos - a.vx * sin
    b_n = b.vx * cos + b.vy * sin
    b_t = b.vy * cos - b.vx * sin

    # exchange normal components
    a_n, b_n = b_n * RESTITUTION, a_n * RESTITUTION

    # back to world frame
    a.vx = a_n * cos - a_t * sin
    a.vy = a_t * cos + a_n * sin
    b.vx = b_n * cos - b_t * sin
    b.vy = b_t * cos + b_n * sin

    # a struck stone resumes motion
    a.moving = True
    b.moving = True

    overlap = (a.radius + b.radius - dist) / 2.0
    a.x -= overlap * cos
    a.y -= overlap * sin
    b.x += overlap * cos
    b.y += overlap * sin
    return True


def clamp_to_surface(stone: Stone, width: float, height: float) -> bool:
    """Keep the stone on the surface; damp and reflect velocity on contact. True on contact."""
    hit = False
    r = stone.radius
    if stone.x < r:
        stone.x = r
        stone.vx *= WALL_BOUNCE
        hit = True
    elif stone.x > width - r:
        stone.x = width - r
        stone.vx *= WALL_BOUNCE
        hit = True

    if stone.y < r:
        stone.y = r
        stone.vy *= WALL_BOUNCE
        hit = True
    elif stone.y > height - r:
        stone.y = height - r
        stone.vy *= WALL_BOUNCE
        hit = True
    return hit


def step_frame(stones, sweep_active: bool, width: float, height: float) -> bool:
    """One frame: kinematics -> pairwise collisions -> boundaries. Returns True if any stone still moves."""
    for s in stones:
        advance_stone(s, sweep_active)

    # collisions
    n = len(stones)
    for i in range(n):
        for j in range(i + 1, n):
            resolve_collision(stones[i], stones[j])

    for s in stones:
        clamp_to_surface(s, width, height)

    return any(s.moving for s in stones)


def simulate(stones, width, height, sweep_active=False, max_frames=20000):
    """Run frames until every stone is at rest or max_frames is reached. Returns the frame count."""
    frames = 0
    while frames < max_frames and any(s.moving for s in stones):
        step_frame(stones, sweep_active, width, height)
        frames += 1

    if frames >= max_frames:
        logger.warning("simulate_frame_limit", frames=frames, stones=len(stones))
    return frames


if __name__ == "__main__":
    # quick two-stone sanity on a 600x800 surface
    w, h = 600.0, 800.0
    r = stone_radius_for(w)
    target = Stone(x=w / 2, y=200.0, radius=r, owner=Owner.OPPONENT)
    shooter = Stone(x=w / 2 + 5.0, y=700.0, radius=r, owner=Owner.PLAYER, vy=-5.0, moving=True)
    frames = simulate([shooter, target], w, h)
    print("frames:", frames)
    print(shooter)
    print(target)
