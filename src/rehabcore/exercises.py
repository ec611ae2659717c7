"""
Exercise configuration registry.

One entry per supported exercise, keyed by canonical identifier. Each
entry declares:

- ``phase_type``: ``start_down`` when the rest position is the "down"
  extreme (curls, presses, raises), ``start_up`` when it is the "up"
  extreme (squats, deadlifts, lunges).
- ``dynamic_angles``: ``<joint>_<up|down>`` -> ``[min, max]`` degrees.
- ``static_angles``: ``<joint>_<l|r>`` -> ideal angle; tolerance applied by
  the rep scorer.
- optional ``wrist_distance`` and ``convex_hull`` envelopes in normalized
  image units.

Free-form UI names ("Bicep Curls", "OVERHEAD PRESS", "squats") are
mapped onto the canonical keys by ``normalize_exercise_name``.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Literal, Mapping, Optional

from .config import get_rehab_config

logger = logging.getLogger(__name__)

PhaseType = Literal["start_down", "start_up"]
Range = tuple[float, float]


@dataclass(frozen=True)
class ExerciseConfig:
    key: str
    name: str
    phase_type: PhaseType
    dynamic_angles: Mapping[str, Range]
    static_angles: Mapping[str, float] = field(default_factory=dict)
    wrist_distance: Optional[Range] = None
    convex_hull: Mapping[str, Range] = field(default_factory=dict)

    def target_suffix(self, fsm_state: str) -> str:
        """Return ``_up`` or ``_down``: the envelope that applies in ``fsm_state``.

        ``LOW`` is always the rest state, so it maps to ``_down`` for
        ``start_down`` exercises and to ``_up`` for ``start_up`` ones.
        """
        high = fsm_state == "HIGH"
        if self.phase_type == "start_down":
            return "_up" if high else "_down"
        return "_down" if high else "_up"

    def joints_for_phase(self, suffix: str) -> dict[str, Range]:
        """``{joint: range}`` for every dynamic envelope ending in ``suffix``."""
        return {
            k[: -len(suffix)]: rng
            for k, rng in self.dynamic_angles.items()
            if k.endswith(suffix)
        }


EXERCISE_CONFIGS: dict[str, dict] = {
    "bicep_curl": {
        "name": "Bicep Curl",
        "phase_type": "start_down",
        "dynamic_angles": {
            "elbow_down": (120, 180),
            "elbow_up": (0, 70),
            "shoulder_down": (0, 30),
            "shoulder_up": (0, 60),
        },
        "static_angles": {"shoulder_r": 15, "shoulder_l": 15},
        "wrist_distance": (0, 0.3),
        "convex_hull": {"down": (0, 0.05), "up": (0.05, 0.2)},
    },
    "hammer_curl": {
        "name": "Hammer Curl",
        "phase_type": "start_down",
        "dynamic_angles": {
            "elbow_down": (120, 180),
            "elbow_up": (0, 70),
            "shoulder_down": (0, 30),
            "shoulder_up": (0, 60),
        },
        "static_angles": {"shoulder_r": 15, "shoulder_l": 15},
        "wrist_distance": (0, 0.2),
        "convex_hull": {"down": (0, 0.05), "up": (0.05, 0.2)},
    },
    "shoulder_press": {
        "name": "Overhead Press",
        "phase_type": "start_down",
        "dynamic_angles": {
            "elbow_down": (50, 100),
            "elbow_up": (150, 180),
            "shoulder_down": (60, 100),
            "shoulder_up": (140, 180),
        },
        "static_angles": {"hip_r": 170, "hip_l": 170},
        "convex_hull": {"down": (0.05, 0.15), "up": (0.15, 0.3)},
    },
    "lateral_raises": {
        "name": "Lateral Raises",
        "phase_type": "start_down",
        "dynamic_angles": {
            "shoulder_down": (0, 30),
            "shoulder_up": (80, 110),
            "elbow_down": (140, 180),
            "elbow_up": (140, 180),
        },
        "static_angles": {"elbow_r": 160, "elbow_l": 160},
        "convex_hull": {"down": (0, 0.1), "up": (0.2, 0.4)},
    },
    "squat": {
        "name": "Squat",
        "phase_type": "start_up",
        "dynamic_angles": {
            "hip_up": (160, 180),
            "hip_down": (50, 100),
            "knee_up": (160, 180),
            "knee_down": (50, 100),
        },
        "static_angles": {"shoulder_r": 20, "shoulder_l": 20},
        "convex_hull": {"up": (0.1, 0.2), "down": (0.05, 0.15)},
    },
    "deadlift": {
        "name": "Deadlift",
        # The counter rests at lockout (LOW = hips extended), so the
        # standing envelope is the "up" one.
        "phase_type": "start_up",
        "dynamic_angles": {
            "hip_down": (45, 100),
            "hip_up": (160, 180),
            "knee_down": (60, 120),
            "knee_up": (160, 180),
        },
        "static_angles": {"elbow_r": 170, "elbow_l": 170},
        "convex_hull": {"down": (0.1, 0.2), "up": (0.1, 0.2)},
    },
    "lunges": {
        "name": "Lunges",
        "phase_type": "start_up",
        "dynamic_angles": {
            "knee_up": (160, 180),
            "knee_down": (70, 110),
            "hip_up": (160, 180),
            "hip_down": (70, 110),
        },
        "static_angles": {},
        "convex_hull": {},
    },
}

# Ordered: more specific aliases first ("hammer" before generic "curl").
NAME_ALIASES: list[tuple[str, str]] = [
    ("hammer", "hammer_curl"),
    ("bicep", "bicep_curl"),
    ("curl", "bicep_curl"),
    ("overhead", "shoulder_press"),
    ("shoulder press", "shoulder_press"),
    ("military press", "shoulder_press"),
    ("lateral", "lateral_raises"),
    ("side raise", "lateral_raises"),
    ("deadlift", "deadlift"),
    ("dead lift", "deadlift"),
    ("squat", "squat"),
    ("jongkok", "squat"),
    ("lunge", "lunges"),
]


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(name).lower()).strip("_")


def normalize_exercise_name(name: Optional[str]) -> str:
    """Map a free-form exercise name to a canonical registry key.

    Matching is case-insensitive substring matching on a space-separated
    form of the name. Unmatched names fall through to their slug, which
    the counter factory will then treat as an unknown (no-op) exercise.
    Never raises.
    """
    if not name:
        return ""
    slug = slugify(name)
    if slug in EXERCISE_CONFIGS:
        return slug
    spaced = slug.replace("_", " ")
    for alias, key in NAME_ALIASES:
        if alias in spaced:
            return key
    return slug


def _to_config(key: str, raw: Mapping) -> ExerciseConfig:
    return ExerciseConfig(
        key=key,
        name=raw.get("name", key.replace("_", " ").title()),
        phase_type=raw.get("phase_type", "start_down"),
        dynamic_angles={k: (float(v[0]), float(v[1])) for k, v in raw.get("dynamic_angles", {}).items()},
        static_angles={k: float(v) for k, v in (raw.get("static_angles") or {}).items()},
        wrist_distance=tuple(raw["wrist_distance"]) if raw.get("wrist_distance") else None,
        convex_hull={k: (float(v[0]), float(v[1])) for k, v in (raw.get("convex_hull") or {}).items()},
    )


class ExerciseRegistry:
    """Immutable lookup of ``ExerciseConfig`` by canonical key.

    Args:
        configs: ``{key: raw_entry}`` table. Defaults to the built-in table.
        overrides: Partial per-key entries merged over ``configs``
            (usually the ``exercises:`` block of ``config/rehab.yaml``).
    """

    def __init__(
        self,
        configs: Optional[Mapping[str, Mapping]] = None,
        overrides: Optional[Mapping[str, Mapping]] = None,
    ):
        table = copy.deepcopy(dict(configs if configs is not None else EXERCISE_CONFIGS))
        for key, patch in (overrides or {}).items():
            merged = dict(table.get(key, {}))
            for field_name, value in patch.items():
                if isinstance(value, Mapping) and isinstance(merged.get(field_name), Mapping):
                    merged[field_name] = {**merged[field_name], **value}
                else:
                    merged[field_name] = value
            table[key] = merged

        self._configs = {key: _to_config(key, raw) for key, raw in table.items()}
        logger.info("Exercise registry loaded: %s", sorted(self._configs))

    @classmethod
    def from_settings(cls) -> "ExerciseRegistry":
        """Built-in table with ``exercises:`` overrides from the YAML config."""
        return cls(overrides=get_rehab_config().get("exercises") or {})

    def get(self, key: str) -> Optional[ExerciseConfig]:
        return self._configs.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._configs

    def keys(self) -> list[str]:
        return list(self._configs)

    def display_name(self, key: str) -> str:
        config = self._configs.get(key)
        return config.name if config else key.replace("_", " ")
