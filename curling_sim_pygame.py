# curling_sim_pygame.py
# Interactive curling end: drag back from the stone to throw, wiggle the mouse to sweep.
# Uses the turn/match controller from curling_match.py.

import pygame

from curlingsim import Owner
from curling_match import EndFinished, EndStarted, MatchController, Phase, drag_to_velocity
from curling_logging import configure_logging

# Colors
ICE          = (224, 247, 250)
HOUSE_RED    = (211, 47, 47)
HOUSE_WHITE  = (255, 255, 255)
HOUSE_BLUE   = (25, 118, 210)
STONE_EDGE   = (51, 51, 51)
STONE_SHINE  = (255, 255, 255, 77)
AIM_CLR      = (255, 0, 0, 128)
SWEEP_CLR    = (255, 165, 0)
HUD_TXT      = (51, 51, 51)
BANNER_BG    = (20, 30, 45)
BANNER_TXT   = (255, 255, 255)

# Display colour is derived from the owner at draw time
OWNER_COLORS = {
    Owner.PLAYER: (211, 47, 47),
    Owner.OPPONENT: (253, 216, 53),
}
OWNER_LABELS = {
    Owner.PLAYER: "YOU (Red)",
    Owner.OPPONENT: "AI (Yellow)",
}

# House rings, outer -> inner, as fractions of the house radius
HOUSE_RINGS = [(1.0, HOUSE_RED), (0.66, HOUSE_WHITE), (0.33, HOUSE_BLUE), (0.1, HOUSE_WHITE)]

BANNER_SECONDS = 2.5


# ---------- drawing ----------
def draw_house(screen, center, house_radius):
    cx, cy = int(center[0]), int(center[1])
    for frac, col in HOUSE_RINGS:
        pygame.draw.circle(screen, col, (cx, cy), max(1, int(round(frac * house_radius))))


def draw_stone(screen, s):
    px, py = int(s.x), int(s.y)
    rr = max(1, int(round(s.radius)))
    pygame.draw.circle(screen, OWNER_COLORS[s.owner], (px, py), rr)
    pygame.draw.circle(screen, STONE_EDGE, (px, py), rr, 2)

    shine = pygame.Surface((rr * 2, rr * 2), pygame.SRCALPHA)
    pygame.draw.circle(shine, STONE_SHINE, (rr, rr), max(1, int(rr * 0.4)))
    screen.blit(shine, (px - rr, py - rr))


def draw_aim_line(screen, stone, drag_start):
    # mirror the pull-back through the stone to show where it will go
    sx, sy = stone.x, stone.y
    tip = (sx + (sx - drag_start[0]), sy + (sy - drag_start[1]))
    w, h = screen.get_size()
    overlay = pygame.Surface((w, h), pygame.SRCALPHA)
    pygame.draw.line(overlay, AIM_CLR, (int(sx), int(sy)), (int(tip[0]), int(tip[1])), 4)
    screen.blit(overlay, (0, 0))


def draw_hud(screen, font, snap):
    lines = [
        f"Turn: {OWNER_LABELS[snap.turn_owner]}",
        f"Stones: {snap.remaining[Owner.PLAYER]} - {snap.remaining[Owner.OPPONENT]}",
        f"Score: {snap.scores[Owner.PLAYER]} - {snap.scores[Owner.OPPONENT]}  (end {snap.end_number})",
    ]
    yy = 20
    for line in lines:
        screen.blit(font.render(line, True, HUD_TXT), (20, yy))
        yy += 30


def draw_banner(screen, font, text):
    w, h = screen.get_size()
    img = font.render(text, True, BANNER_TXT)
    rect = img.get_rect(center=(w // 2, h // 2))
    pygame.draw.rect(screen, BANNER_BG, rect.inflate(40, 24), border_radius=12)
    screen.blit(img, rect)


def end_banner_text(event: EndFinished) -> str:
    if event.winner is None:
        return f"End {event.end_number} finished: no score"
    who = "You score" if event.winner is Owner.PLAYER else "AI scores"
    return f"End {event.end_number} finished: {who} {event.points}"


# ---------- main loop ----------
def run_pygame_rink(title="Curling", width=600, height=800, fps=60):
    pygame.init()
    screen = pygame.display.set_mode((width, height), pygame.RESIZABLE)
    pygame.display.set_caption(title)
    clock = pygame.time.Clock()
    font = pygame.font.SysFont("Arial", 20)
    font_big = pygame.font.SysFont("Arial", 30, bold=True)

    match = MatchController(width, height)

    banner = {"text": "", "ttl": 0.0}

    def on_event(evt):
        if isinstance(evt, EndFinished):
            banner["text"] = end_banner_text(evt)
            banner["ttl"] = BANNER_SECONDS
        elif isinstance(evt, EndStarted) and evt.end_number > 1:
            banner["text"] = f"End {evt.end_number}"
            banner["ttl"] = 1.0

    match.add_listener(on_event)

    dragging = False
    drag_start = (0, 0)
    running = True

    while running:
        dt = clock.tick(fps) / 1000.0

        # ---------- events ----------
        for evt in pygame.event.get():
            if evt.type == pygame.QUIT:
                running = False
            elif evt.type == pygame.VIDEORESIZE:
                width, height = evt.w, evt.h
                screen = pygame.display.set_mode((width, height), pygame.RESIZABLE)
                match.resize(width, height)
            elif evt.type == pygame.KEYDOWN:
                if evt.key == pygame.K_ESCAPE:
                    running = False
                elif evt.key == pygame.K_r:
                    dragging = False
                    match.reset_match()
            elif evt.type == pygame.MOUSEBUTTONDOWN and evt.button == 1:
                if match.can_grab(evt.pos):
                    dragging = True
                    drag_start = evt.pos
            elif evt.type == pygame.MOUSEMOTION:
                if match.phase is Phase.MOVING:
                    match.set_sweep_active(True)
            elif evt.type == pygame.MOUSEBUTTONUP and evt.button == 1:
                if dragging:
                    velocity = drag_to_velocity(drag_start, evt.pos, match.cfg)
                    if velocity is not None:
                        match.request_throw(Owner.PLAYER, velocity)
                dragging = False

        # ---------- simulation ----------
        match.tick(dt)
        if match.phase is not Phase.IDLE:
            dragging = False
        banner["ttl"] = max(0.0, banner["ttl"] - dt)

        # ---------- draw ----------
        snap = match.snapshot()
        screen.fill(ICE)
        draw_house(screen, match.rink.button, match.rink.house_radius)

        for s in snap.stones:
            draw_stone(screen, s)
        if snap.phase is Phase.IDLE and snap.in_flight is not None:
            draw_stone(screen, snap.in_flight)
            if dragging:
                draw_aim_line(screen, snap.in_flight, drag_start)

        if snap.sweeping:
            img = font_big.render("SWEEPING!", True, SWEEP_CLR)
            screen.blit(img, img.get_rect(center=(width // 2, int(height * 0.3))))

        draw_hud(screen, font, snap)
        if banner["ttl"] > 0.0:
            draw_banner(screen, font_big, banner["text"])

        pygame.display.flip()

    pygame.quit()


if __name__ == "__main__":
    configure_logging()
    run_pygame_rink()
