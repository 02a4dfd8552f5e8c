"""Pygame UI shell for the Dual N-Back trainer.

One screen: a 3x3 grid that lights a cell per trial while a tone plays,
two feedback bulbs (also clickable as match buttons), the current level
and warning count, and a single Space control that starts a session or
quits the running one.

Deterministic timing/scoring/RNG/state lives in dual_nback/* (core modules).
"""

from __future__ import annotations

import math
import os
import random
import sys
from array import array
from collections.abc import Callable
from typing import Protocol

import pygame
from loguru import logger

from .clock import Clock, RealClock
from .cognitive_core import MODALITIES, STIMULUS_COUNT, Modality, Phase, is_stimulus_id
from .difficulty import PlayerSkillState
from .results import SessionResult, session_result
from .session import AssertListener, DualNBackConfig, DualNBackSession, build_dual_nback_session

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

START_N_ENV = "DUAL_NBACK_START_N"
LOG_LEVEL_ENV = "DUAL_NBACK_LOG_LEVEL"
DEFAULT_START_N = 2
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"

# Indicator light appearances: (fill, stroke).
_LIGHTS: dict[str, tuple[tuple[int, int, int], tuple[int, int, int]]] = {
    "active": ((0, 0, 255), (0, 0, 170)),
    "inactive": ((255, 255, 255), (204, 204, 204)),
    "correct": ((0, 255, 0), (0, 170, 0)),
    "incorrect": ((255, 0, 0), (170, 0, 0)),
}

_KEY_BINDINGS: dict[int, Modality] = {
    pygame.K_a: Modality.POSITION,
    pygame.K_l: Modality.SOUND,
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class _ToneBank:
    """One synthesized tone per sound id.

    Stays outside deterministic core logic. PCM is rendered at whatever rate
    and channel count the mixer actually opened with, so pitch and length
    hold even when pygame.init() already started it in stereo. If the mixer
    cannot start the bank is silent and play() does nothing.
    """

    _sample_rate = 22050
    _amp = 32767
    _frequencies_hz: tuple[float, ...] = (
        261.63,
        293.66,
        329.63,
        349.23,
        392.00,
        440.00,
        493.88,
        523.25,
        587.33,
    )

    def __init__(self, *, duration_s: float = 0.45, gain: float = 0.35) -> None:
        self._sounds: list[pygame.mixer.Sound] = []
        self._available = False
        try:
            mixer_format = pygame.mixer.get_init()
            if mixer_format is None or mixer_format[1] != -16:
                # Tones are rendered as signed 16-bit samples.
                if mixer_format is not None:
                    pygame.mixer.quit()
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
                mixer_format = pygame.mixer.get_init()
            if mixer_format is None:
                raise pygame.error("mixer did not initialise")
            sample_rate, _, channels = mixer_format
            self._sounds = [
                pygame.mixer.Sound(
                    buffer=self._render_tone_pcm(
                        hz,
                        duration_s,
                        gain=gain,
                        sample_rate=sample_rate,
                        channels=channels,
                    ).tobytes()
                )
                for hz in self._frequencies_hz[:STIMULUS_COUNT]
            ]
            self._available = True
        except pygame.error as exc:
            logger.warning("Audio unavailable, sounds disabled: {}", exc)

    @property
    def available(self) -> bool:
        return self._available

    def play(self, sound_id: int) -> None:
        if not self._available:
            return
        self._sounds[sound_id].play()

    def stop(self) -> None:
        if not self._available:
            return
        for sound in self._sounds:
            sound.stop()

    def _render_tone_pcm(
        self,
        frequency_hz: float,
        duration_s: float,
        *,
        gain: float,
        sample_rate: int,
        channels: int,
    ) -> array[int]:
        sample_count = max(1, int(sample_rate * duration_s))
        fade_n = max(1, int(sample_rate * 0.008))
        frame_width = max(1, int(channels))
        out = array("h")
        for idx in range(sample_count):
            envelope = 1.0
            if idx < fade_n:
                envelope = idx / float(fade_n)
            tail = sample_count - idx - 1
            if tail < fade_n:
                envelope = min(envelope, tail / float(fade_n))
            phase = (2.0 * math.pi * float(frequency_hz) * idx) / float(sample_rate)
            sample = math.sin(phase) * gain * max(0.0, envelope)
            value = int(max(-1.0, min(1.0, sample)) * self._amp)
            # Interleaved frames: the same sample on every channel.
            out.extend([value] * frame_width)
        return out


class GameBoard:
    """Pygame presentation surface for a dual n-back session."""

    def __init__(self, *, clock: Clock, display_duration_s: float, tones: _ToneBank | None = None) -> None:
        self._clock = clock
        self._display_duration_s = float(display_duration_s)
        self._tones = tones

        self._lit_cell: int | None = None
        self._lit_until_s = 0.0
        self._last_sound: int | None = None
        self._feedback: dict[Modality, str] = {m: "inactive" for m in MODALITIES}
        self._click_matchers: dict[Modality, Callable[[], None]] = {}
        self._skill: tuple[int, int] = (DEFAULT_START_N, 0)

        # Refreshed during draw().
        self._indicator_hitboxes: dict[Modality, pygame.Rect] = {}

    @property
    def lit_cell(self) -> int | None:
        if self._lit_cell is None or self._clock.now() >= self._lit_until_s:
            return None
        return self._lit_cell

    @property
    def last_sound(self) -> int | None:
        return self._last_sound

    @property
    def skill(self) -> tuple[int, int]:
        return self._skill

    def feedback(self, modality: Modality) -> str:
        return self._feedback[modality]

    def has_click_matchers(self) -> bool:
        return bool(self._click_matchers)

    def render(self, position_id: int, sound_id: int, *, at_s: float | None = None) -> None:
        if not is_stimulus_id(position_id) or not is_stimulus_id(sound_id):
            logger.warning("Stimulus ids must be 0-{}. Ignoring: {!r}, {!r}", STIMULUS_COUNT - 1, position_id, sound_id)
            return
        self._lit_cell = position_id
        # The lit window runs from the presentation time, which trails now() after a catch-up.
        shown_at_s = self._clock.now() if at_s is None else float(at_s)
        self._lit_until_s = shown_at_s + self._display_duration_s
        self._last_sound = sound_id
        if self._tones is not None:
            self._tones.play(sound_id)

    def show_feedback(self, modality: Modality | str, correct: bool) -> None:
        try:
            key = Modality(modality)
        except ValueError:
            logger.warning("Board can show feedback for sound or position. Ignoring: {!r}", modality)
            return
        self._feedback[key] = "correct" if correct else "incorrect"

    def reset(self) -> None:
        self._lit_cell = None
        self._lit_until_s = 0.0
        for modality in MODALITIES:
            self._feedback[modality] = "inactive"

    def register_click_matchers(
        self,
        on_position: Callable[[], None],
        on_sound: Callable[[], None],
    ) -> None:
        self._click_matchers = {Modality.POSITION: on_position, Modality.SOUND: on_sound}

    def clear_click_matchers(self) -> None:
        self._click_matchers = {}
        if self._tones is not None:
            self._tones.stop()

    def show_skill_state(self, n: int, warns: int) -> None:
        self._skill = (int(n), int(warns))

    def handle_click(self, pos: tuple[int, int]) -> bool:
        for modality, rect in self._indicator_hitboxes.items():
            if rect.collidepoint(pos):
                handler = self._click_matchers.get(modality)
                if handler is None:
                    return False
                handler()
                return True
        return False

    def draw(self, surface: pygame.Surface, area: pygame.Rect, font: pygame.font.Font) -> None:
        hud_h = max(60, area.h // 5)
        side = max(90, min(area.w, area.h - hud_h))
        block = side // 3
        space = max(1, round(side * 0.01))
        origin_x = area.x + (area.w - block * 3) // 2
        origin_y = area.y

        lit = self.lit_cell
        for i in range(STIMULUS_COUNT):
            bx = origin_x + (i % 3) * block + space
            by = origin_y + (i // 3) * block + space
            cell = pygame.Rect(bx, by, block - space, block - space)
            fill, stroke = _LIGHTS["active" if i == lit else "inactive"]
            pygame.draw.rect(surface, fill, cell, border_radius=space)
            pygame.draw.rect(surface, stroke, cell, 2, border_radius=space)

        # Small centre target to focus the eyes on.
        centre = (origin_x + block * 3 // 2, origin_y + block * 3 // 2)
        pygame.draw.circle(surface, _LIGHTS["inactive"][1], centre, max(2, space * 2))

        radius = max(8, min(block // 4, hud_h // 3))
        bulb_y = origin_y + block * 3 + hud_h // 2
        labels = {Modality.POSITION: "Position Match (A)", Modality.SOUND: "Sound Match (L)"}
        bulb_x = {
            Modality.POSITION: origin_x + block // 2,
            Modality.SOUND: origin_x + block * 5 // 2,
        }
        self._indicator_hitboxes = {}
        for modality in MODALITIES:
            cx = bulb_x[modality]
            fill, stroke = _LIGHTS[self._feedback[modality]]
            pygame.draw.circle(surface, fill, (cx, bulb_y), radius)
            pygame.draw.circle(surface, stroke, (cx, bulb_y), radius, 2)
            self._indicator_hitboxes[modality] = pygame.Rect(cx - radius, bulb_y - radius, radius * 2, radius * 2)
            text = font.render(labels[modality], True, (220, 220, 230))
            surface.blit(text, text.get_rect(midtop=(cx, bulb_y + radius + 4)))


class KeyboardInput:
    """Keyboard input surface: A asserts a position match, L a sound match."""

    def __init__(self, bindings: dict[int, Modality] | None = None) -> None:
        self._bindings = dict(_KEY_BINDINGS if bindings is None else bindings)
        self._listener: AssertListener | None = None

    @property
    def attached(self) -> bool:
        return self._listener is not None

    def attach(self, listener: AssertListener) -> None:
        self._listener = listener

    def detach(self) -> None:
        self._listener = None

    def handle_key(self, key: int) -> bool:
        modality = self._bindings.get(key)
        if modality is None or self._listener is None:
            return False
        self._listener(modality)
        return True


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screen: Screen | None = None
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def show(self, screen: Screen) -> None:
        self._screen = screen

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if self._screen is None:
            return
        self._screen.handle_event(event)

    def render(self) -> None:
        if self._screen is None:
            return
        self._screen.render(self._surface)


class DualNBackScreen:
    def __init__(
        self,
        app: App,
        *,
        skill: PlayerSkillState,
        clock: Clock,
        config: DualNBackConfig | None = None,
        seed_factory: Callable[[], int] | None = None,
        tones: _ToneBank | None = None,
    ) -> None:
        self._app = app
        self._skill = skill
        self._clock = clock
        self._cfg = config or DualNBackConfig()
        self._seed_factory = seed_factory or _new_seed

        self._board = GameBoard(clock=clock, display_duration_s=self._cfg.display_duration_s, tones=tones)
        self._keys = KeyboardInput()
        self._session: DualNBackSession | None = None
        self._last_result: SessionResult | None = None
        self._result_taken = False

        self._small_font = pygame.font.Font(None, 24)

        self._board.show_skill_state(skill.n, skill.warns)

    @property
    def board(self) -> GameBoard:
        return self._board

    @property
    def session(self) -> DualNBackSession | None:
        return self._session

    @property
    def last_result(self) -> SessionResult | None:
        return self._last_result

    def session_active(self) -> bool:
        return self._session is not None and self._session.phase is not Phase.ENDED

    def toggle_session(self) -> None:
        """Single control: start a new session, or quit the running one."""
        if self._session is not None and self.session_active():
            self._session.end(True)
            return

        self._session = build_dual_nback_session(
            clock=self._clock,
            seed=self._seed_factory(),
            skill=self._skill,
            surface=self._board,
            input_surface=self._keys,
            config=self._cfg,
        )
        self._result_taken = False
        self._session.start()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            if event.key in (pygame.K_SPACE, pygame.K_RETURN, pygame.K_KP_ENTER):
                self.toggle_session()
            elif event.key == pygame.K_ESCAPE:
                if self._session is not None and self.session_active():
                    self._session.end(True)
                else:
                    self._app.quit()
            else:
                self._keys.handle_key(event.key)
            return

        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            self._board.handle_click(event.pos)

    def update(self) -> None:
        if self._session is None:
            return
        self._session.update()
        if self._session.phase is Phase.ENDED and not self._result_taken:
            self._result_taken = True
            result = session_result(self._session)
            if result is not None:
                self._last_result = result

    def render(self, surface: pygame.Surface) -> None:
        self.update()

        w, h = surface.get_size()
        surface.fill((10, 10, 14))
        margin = max(10, min(26, w // 34))

        board_area = pygame.Rect(margin, margin, max(120, w // 2 - margin), h - margin * 2)
        self._board.draw(surface, board_area, self._small_font)

        panel_x = board_area.right + margin * 2
        y = margin
        n, warns = self._board.skill
        for text, font, color in (
            (f"Dual {n}-Back", self._app.font, (235, 235, 245)),
            (f"Warnings: {warns}", self._small_font, (200, 200, 210)),
        ):
            img = font.render(text, True, color)
            surface.blit(img, (panel_x, y))
            y += img.get_height() + 8

        y += 12
        control = "Quit Session (Space)" if self.session_active() else "Start Session (Space)"
        img = self._small_font.render(control, True, (180, 200, 255))
        surface.blit(img, (panel_x, y))
        y += img.get_height() + 16

        if self._session is not None:
            snap = self._session.snapshot()
            for line in (snap.prompt, snap.input_hint):
                img = self._small_font.render(line, True, (180, 180, 190))
                surface.blit(img, (panel_x, y))
                y += img.get_height() + 6

        if self._last_result is not None:
            y += 16
            r = self._last_result
            mean_rt = "n/a" if r.mean_rt_ms is None else f"{r.mean_rt_ms:.0f} ms"
            for line in (
                f"Last session: {r.score}%",
                f"Position: {r.stats.position.correct}/{r.stats.position.matches} matches,"
                f" {r.stats.position.incorrect} wrong",
                f"Sound: {r.stats.sound.correct}/{r.stats.sound.matches} matches,"
                f" {r.stats.sound.incorrect} wrong",
                f"Mean RT: {mean_rt}",
            ):
                img = self._small_font.render(line, True, (200, 200, 210))
                surface.blit(img, (panel_x, y))
                y += img.get_height() + 6


def configure_logging() -> None:
    level = os.environ.get(LOG_LEVEL_ENV, "").strip().upper() or DEFAULT_LOG_LEVEL
    logger.remove()
    try:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    except ValueError:
        logger.add(sys.stderr, level=DEFAULT_LOG_LEVEL, format=LOG_FORMAT)
        logger.warning("Unknown log level {!r} in {}; using {}", level, LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)


def start_n_from_env() -> int:
    raw = os.environ.get(START_N_ENV, "").strip()
    if raw == "":
        return DEFAULT_START_N
    try:
        n = int(raw)
    except ValueError:
        logger.warning("{}={!r} is not an integer; using {}", START_N_ENV, raw, DEFAULT_START_N)
        return DEFAULT_START_N
    if n < 1:
        logger.warning("{}={} must be >= 1; using {}", START_N_ENV, n, DEFAULT_START_N)
        return DEFAULT_START_N
    return n


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    configure_logging()
    # Tone PCM is 16-bit mono; ask for that format before pygame.init() opens the mixer.
    pygame.mixer.pre_init(frequency=22050, size=-16, channels=1, buffer=512)
    pygame.init()

    pygame.display.set_caption("Dual N-Back")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    skill = PlayerSkillState(n=start_n_from_env())
    app.show(DualNBackScreen(app, skill=skill, clock=RealClock(), tones=_ToneBank()))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
