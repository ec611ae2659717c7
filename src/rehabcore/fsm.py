"""
Repetition counting state machines.

A ``RepFSM`` is a two-state (LOW/HIGH) cycle detector driven by one
scalar signal per frame. What the signal is, and when it counts as
"high" or "low", is described by a ``RepSignal`` record; every supported
exercise is one (or two, for per-arm curls) such record. The engine:

    1. skips the frame if the relevant joints are not visible enough,
    2. EMA-smooths the metric and tracks its per-frame velocity,
    3. drops back to LOW if the metric has not moved for ``idle_ms``,
    4. LOW -> HIGH when ``is_high`` and ``extra_valid`` both hold,
    5. HIGH -> LOW when ``is_low`` holds after ``high_hold_ms``; the cycle
       counts only if its duration and range of motion pass the gates.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Literal, Optional

from .features import PoseFeatures
from .geometry import ema

logger = logging.getLogger(__name__)

Side = Literal["left", "right"]


@dataclass(frozen=True)
class FSMParams:
    min_vis: float = 0.6
    ema_alpha: float = 0.25
    idle_vel_th: float = 0.8
    idle_ms: float = 900.0
    high_hold_ms: float = 120.0
    min_rep_ms: float = 500.0
    max_rep_ms: float = 12000.0
    min_rom: float = 60.0


def _always(_f: PoseFeatures) -> bool:
    return True


@dataclass(frozen=True)
class RepSignal:
    """Exercise-specific capabilities plugged into ``RepFSM``."""

    name: str
    metric: Callable[[PoseFeatures], float]
    is_high: Callable[[float, PoseFeatures], bool]
    is_low: Callable[[float, PoseFeatures], bool]
    visibility_ok: Callable[[PoseFeatures, float], bool]
    extra_valid: Callable[[PoseFeatures], bool] = _always
    params: FSMParams = field(default_factory=FSMParams)
    side: Optional[Side] = None


@dataclass(frozen=True)
class FSMUpdate:
    """Outcome of one ``RepFSM.update`` call."""

    name: str
    state: str
    delta: int = 0
    metric: Optional[float] = None
    note: Optional[str] = None
    duration_ms: Optional[float] = None
    rom: Optional[float] = None
    ok_duration: Optional[bool] = None
    ok_rom: Optional[bool] = None

    @property
    def cycle_ended(self) -> bool:
        return self.note in ("counted", "rejected", "idle")


class RepFSM:
    """LOW/HIGH repetition counter for one tracked signal."""

    def __init__(self, signal: RepSignal):
        self.signal = signal
        self.params = signal.params
        self.state = "LOW"
        self.reps = 0
        self._reset_signal()
        self._reset_cycle()

    @property
    def name(self) -> str:
        return self.signal.name

    @property
    def side(self) -> Optional[Side]:
        return self.signal.side

    @property
    def in_cycle(self) -> bool:
        """True between entering HIGH and the cycle being counted or dropped."""
        return self._cycle_start_t is not None

    def _reset_signal(self) -> None:
        self._metric_s: Optional[float] = None
        self._metric_prev: Optional[float] = None
        self._last_motion_t: Optional[float] = None

    def _reset_cycle(self) -> None:
        self.state = "LOW"
        self._entered_high_t: Optional[float] = None
        self._cycle_start_t: Optional[float] = None
        self._cycle_min: Optional[float] = None
        self._cycle_max: Optional[float] = None

    def reset(self) -> None:
        """Forget all signal history, the in-progress cycle and the count."""
        self.reps = 0
        self._reset_signal()
        self._reset_cycle()

    def _update_rom(self, m: float) -> None:
        self._cycle_min = m if self._cycle_min is None else min(self._cycle_min, m)
        self._cycle_max = m if self._cycle_max is None else max(self._cycle_max, m)

    def update(self, f: PoseFeatures) -> FSMUpdate:
        p = self.params
        sig = self.signal
        t = f.t_ms

        if not sig.visibility_ok(f, p.min_vis):
            return FSMUpdate(self.name, self.state, note="visibility_fail")

        self._metric_s = ema(self._metric_s, sig.metric(f), p.ema_alpha)
        m = self._metric_s

        if self._metric_prev is None:
            self._metric_prev = m
            self._last_motion_t = t
            return FSMUpdate(self.name, self.state, metric=m)

        velocity = abs(m - self._metric_prev)
        self._metric_prev = m
        if velocity >= p.idle_vel_th:
            self._last_motion_t = t

        if self._last_motion_t is not None and (t - self._last_motion_t) > p.idle_ms:
            if self._cycle_start_t is not None:
                logger.debug("%s: idle for %.0f ms, abandoning cycle", self.name, t - self._last_motion_t)
            self._reset_cycle()
            return FSMUpdate(self.name, self.state, metric=m, note="idle")

        self._update_rom(m)

        if self.state == "LOW":
            if sig.is_high(m, f) and sig.extra_valid(f):
                self.state = "HIGH"
                self._entered_high_t = t
                if self._cycle_start_t is None:
                    self._cycle_start_t = t
            return FSMUpdate(self.name, self.state, metric=m)

        if self._entered_high_t is not None and (t - self._entered_high_t) < p.high_hold_ms:
            return FSMUpdate(self.name, self.state, metric=m, note="hold_high")

        if not sig.is_low(m, f):
            return FSMUpdate(self.name, self.state, metric=m)

        duration = t - self._cycle_start_t if self._cycle_start_t is not None else 0.0
        rom = (
            self._cycle_max - self._cycle_min
            if self._cycle_max is not None and self._cycle_min is not None
            else 0.0
        )
        ok_duration = p.min_rep_ms <= duration <= p.max_rep_ms
        ok_rom = rom >= p.min_rom

        delta = 0
        if ok_duration and ok_rom:
            self.reps += 1
            delta = 1
            logger.info("%s%s: rep %d (%.0f ms, ROM %.1f)",
                        self.name, f"[{self.side}]" if self.side else "", self.reps, duration, rom)
        else:
            logger.debug("%s: cycle rejected (duration=%.0f ms ok=%s, rom=%.1f ok=%s)",
                         self.name, duration, ok_duration, rom, ok_rom)

        self._reset_cycle()
        return FSMUpdate(
            self.name,
            self.state,
            delta=delta,
            metric=m,
            note="counted" if delta else "rejected",
            duration_ms=duration,
            rom=rom,
            ok_duration=ok_duration,
            ok_rom=ok_rom,
        )


# ============================================================================
# Visibility gates
# ============================================================================

def _arms_visible(f: PoseFeatures, min_vis: float) -> bool:
    return f.vis_arms >= min_vis


def _legs_visible(f: PoseFeatures, min_vis: float) -> bool:
    return f.vis_legs >= min_vis


def _legs_and_arms_visible(f: PoseFeatures, min_vis: float) -> bool:
    return f.vis_legs >= min_vis and f.vis_arms >= 0.4


# ============================================================================
# Exercise signals
# ============================================================================

CURL_PARAMS = FSMParams(min_rom=70.0)
CURL_HIGH_TH = 85.0     # elbow angle at the top of the curl
CURL_LOW_TH = 140.0     # elbow angle back at the bottom


def _elbow(side: Side) -> Callable[[PoseFeatures], float]:
    if side == "right":
        return lambda f: f.right_elbow
    return lambda f: f.left_elbow


def _other_elbow(side: Side) -> Callable[[PoseFeatures], float]:
    return _elbow("left" if side == "right" else "right")


def bicep_curl_signal(side: Side) -> RepSignal:
    """Simultaneous curl: a side only rises if the other arm is bent too."""
    other = _other_elbow(side)
    return RepSignal(
        name="bicep_curl",
        side=side,
        metric=_elbow(side),
        is_high=lambda m, f: m <= CURL_HIGH_TH,
        is_low=lambda m, f: m >= CURL_LOW_TH,
        visibility_ok=_arms_visible,
        extra_valid=lambda f: other(f) <= 120.0,
        params=CURL_PARAMS,
    )


def hammer_curl_signal(side: Side) -> RepSignal:
    """Alternating curl: a side only rises while the other arm hangs straight."""
    other = _other_elbow(side)
    return RepSignal(
        name="hammer_curl",
        side=side,
        metric=_elbow(side),
        is_high=lambda m, f: m <= CURL_HIGH_TH,
        is_low=lambda m, f: m >= CURL_LOW_TH,
        visibility_ok=_arms_visible,
        extra_valid=lambda f: other(f) >= 130.0,
        params=CURL_PARAMS,
    )


def shoulder_press_signal() -> RepSignal:
    # min elbow: both arms have to lock out before the top counts
    return RepSignal(
        name="shoulder_press",
        metric=lambda f: min(f.left_elbow, f.right_elbow),
        is_high=lambda m, f: m > 140.0,
        is_low=lambda m, f: m < 110.0,
        visibility_ok=_arms_visible,
        extra_valid=lambda f: f.left_wrist_y < f.left_shoulder_y and f.right_wrist_y < f.right_shoulder_y,
        params=FSMParams(min_rom=30.0),
    )


def lateral_raise_signal() -> RepSignal:
    # metric: mean vertical wrist-to-shoulder gap, normalized image units
    return RepSignal(
        name="lateral_raises",
        metric=lambda f: 0.5 * (abs(f.left_wrist_y - f.left_shoulder_y) + abs(f.right_wrist_y - f.right_shoulder_y)),
        is_high=lambda m, f: m < 0.05,
        is_low=lambda m, f: m > 0.12,
        visibility_ok=_arms_visible,
        extra_valid=lambda f: f.left_elbow > 120.0 and f.right_elbow > 120.0,
        params=FSMParams(idle_vel_th=0.003, min_rom=0.0),
    )


def squat_signal() -> RepSignal:
    return RepSignal(
        name="squat",
        metric=lambda f: min(f.left_knee, f.right_knee),
        is_high=lambda m, f: m <= 100.0,
        is_low=lambda m, f: m >= 165.0,
        visibility_ok=_legs_visible,
        extra_valid=lambda f: min(f.left_hip, f.right_hip) < 140.0,
        params=FSMParams(min_rep_ms=600.0, min_rom=40.0),
    )


def deadlift_signal() -> RepSignal:
    return RepSignal(
        name="deadlift",
        metric=lambda f: min(f.left_hip, f.right_hip),
        is_high=lambda m, f: m <= 120.0 and min(f.left_knee, f.right_knee) > 110.0,
        is_low=lambda m, f: m >= 165.0,
        visibility_ok=_legs_and_arms_visible,
        params=FSMParams(min_rep_ms=600.0, min_rom=35.0),
    )


def lunge_signal() -> RepSignal:
    def is_high(_m: float, f: PoseFeatures) -> bool:
        front = min(f.left_knee, f.right_knee)
        back = max(f.left_knee, f.right_knee)
        return front < 105.0 and back < 130.0

    return RepSignal(
        name="lunges",
        metric=lambda f: min(f.left_knee, f.right_knee),
        is_high=is_high,
        is_low=lambda _m, f: f.left_knee > 165.0 and f.right_knee > 165.0,
        visibility_ok=_legs_visible,
        params=FSMParams(min_rep_ms=600.0, min_rom=25.0),
    )


# Bilateral curls get one counter per arm; everything else is one
# counter over a combined metric.
SIGNAL_FACTORIES: dict[str, Callable[[], list[RepSignal]]] = {
    "bicep_curl": lambda: [bicep_curl_signal("left"), bicep_curl_signal("right")],
    "hammer_curl": lambda: [hammer_curl_signal("left"), hammer_curl_signal("right")],
    "shoulder_press": lambda: [shoulder_press_signal()],
    "lateral_raises": lambda: [lateral_raise_signal()],
    "squat": lambda: [squat_signal()],
    "deadlift": lambda: [deadlift_signal()],
    "lunges": lambda: [lunge_signal()],
}


def with_params(signal: RepSignal, **overrides) -> RepSignal:
    """Copy of ``signal`` with some ``FSMParams`` fields replaced."""
    return replace(signal, params=replace(signal.params, **overrides))


def build_counters(key: str, param_overrides: Optional[dict] = None) -> Optional[list[RepFSM]]:
    """Fresh counter set for a canonical exercise key.

    Args:
        key: Canonical exercise key.
        param_overrides: Optional ``FSMParams`` field overrides, e.g. the
            ``fsm.<key>`` block of ``config/rehab.yaml``.

    Returns:
        List of counters, or ``None`` if the exercise has no counter.
    """
    factory = SIGNAL_FACTORIES.get(key)
    if factory is None:
        return None
    signals = factory()
    if param_overrides:
        signals = [with_params(s, **param_overrides) for s in signals]
    return [RepFSM(s) for s in signals]


def aggregate_reps(counters: list[RepFSM]) -> int:
    """MAX across sides: synchronized sides never double-count a rep."""
    if not counters:
        return 0
    return max(c.reps for c in counters)
