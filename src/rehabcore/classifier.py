"""
Activity classification (Standing / Sitting / Fall Detected).

Evaluates a gradient-boosted multi-class tree ensemble dumped to JSON by
XGBoost (``booster.save_model("*.json")``) directly in numpy, so no
XGBoost runtime is needed at inference time. Trees are interleaved by
class: tree ``i`` adds its leaf weight to class ``i % num_class``.
The per-class margins go through a max-shifted softmax.
"""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .config import ACTIVITY_LABELS, ACTIVITY_MODEL_PATH

logger = logging.getLogger(__name__)

_TREE_ARRAYS = (
    "left_children",
    "right_children",
    "split_indices",
    "split_conditions",
    "default_left",
    "base_weights",
)


class ModelLoadError(ValueError):
    """Raised when a tree-ensemble dump cannot be turned into a predictor."""


@dataclass(frozen=True)
class _Tree:
    left: np.ndarray
    right: np.ndarray
    feature: np.ndarray
    threshold: np.ndarray
    default_left: np.ndarray
    weight: np.ndarray

    def leaf_value(self, features: np.ndarray) -> float:
        node = 0
        n_features = features.shape[0]
        while True:
            left = self.left[node]
            if left == -1:
                return float(self.weight[node])
            idx = self.feature[node]
            value = features[idx] if idx < n_features else math.nan
            if math.isnan(value):
                node = left if self.default_left[node] else self.right[node]
            elif value < self.threshold[node]:
                node = left
            else:
                node = self.right[node]


@dataclass(frozen=True)
class ActivityPrediction:
    label: str
    confidence: float
    probabilities: tuple[float, ...]


def _parse_tree(raw: dict, tree_idx: int) -> _Tree:
    missing = [k for k in _TREE_ARRAYS if k not in raw]
    if missing:
        raise ModelLoadError(f"Tree {tree_idx} is missing arrays: {missing}")

    lengths = {k: len(raw[k]) for k in _TREE_ARRAYS}
    n_nodes = lengths["left_children"]
    if n_nodes == 0 or any(v != n_nodes for v in lengths.values()):
        raise ModelLoadError(f"Tree {tree_idx} has inconsistent array lengths: {lengths}")

    left = np.asarray(raw["left_children"], dtype=np.int64)
    right = np.asarray(raw["right_children"], dtype=np.int64)
    for children in (left, right):
        if np.any(children >= n_nodes) or np.any(children < -1):
            raise ModelLoadError(f"Tree {tree_idx} references a child outside [0, {n_nodes})")
    # internal nodes need both children
    if np.any((left == -1) != (right == -1)):
        raise ModelLoadError(f"Tree {tree_idx} has a node with a single child")
    # children are always numbered after their parent, so a walk from the root terminates
    internal = left != -1
    node_ids = np.arange(n_nodes)
    if np.any(internal & ((left <= node_ids) | (right <= node_ids))):
        raise ModelLoadError(f"Tree {tree_idx} has a child numbered before its parent")

    feature = np.asarray(raw["split_indices"], dtype=np.int64)
    if np.any(internal & (feature < 0)):
        raise ModelLoadError(f"Tree {tree_idx} has a negative split index")

    return _Tree(
        left=left,
        right=right,
        feature=feature,
        threshold=np.asarray(raw["split_conditions"], dtype=np.float64),
        default_left=np.asarray(raw["default_left"], dtype=bool),
        weight=np.asarray(raw["base_weights"], dtype=np.float64),
    )


def softmax(logits: Sequence[float]) -> np.ndarray:
    z = np.asarray(logits, dtype=np.float64)
    e = np.exp(z - np.max(z))
    return e / e.sum()


class ActivityClassifier:
    """Stateless per-frame activity classifier over a static tree ensemble.

    Args:
        model: Parsed XGBoost JSON dump (``{"learner": {...}}``).
        labels: Class names in label-encoder order.

    Raises:
        ModelLoadError: If the dump is malformed.
    """

    def __init__(self, model: dict, labels: Sequence[str] = ACTIVITY_LABELS):
        try:
            learner = model["learner"]
            gbtree = learner["gradient_booster"]["model"]
            raw_trees = gbtree["trees"]
            num_trees = int(gbtree["gbtree_model_param"]["num_trees"])
            num_class = int(learner["learner_model_param"]["num_class"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ModelLoadError(f"Malformed tree-ensemble dump: {exc!r}") from exc

        if num_class != len(labels):
            raise ModelLoadError(
                f"Model has {num_class} classes, expected {len(labels)} ({list(labels)})."
            )
        if num_trees <= 0 or num_trees > len(raw_trees):
            raise ModelLoadError(
                f"num_trees={num_trees} but dump contains {len(raw_trees)} trees."
            )
        if num_trees % num_class != 0:
            raise ModelLoadError(
                f"num_trees={num_trees} is not a multiple of num_class={num_class}."
            )

        self.labels = tuple(labels)
        self.num_class = num_class
        self._trees = [_parse_tree(raw_trees[i], i) for i in range(num_trees)]
        logger.info(
            "Activity classifier ready: %d trees, %d classes %s",
            num_trees, num_class, list(self.labels),
        )

    @classmethod
    def from_json(cls, path: Optional[Union[str, Path]] = None) -> "ActivityClassifier":
        """Load the ensemble from a JSON dump on disk.

        Raises:
            FileNotFoundError: If the file does not exist.
            ModelLoadError: If the JSON is not a valid ensemble dump.
        """
        path = Path(path) if path is not None else ACTIVITY_MODEL_PATH
        if not path.exists():
            raise FileNotFoundError(f"Activity model not found at {path}.")

        logger.info("Loading activity model: %s", path)
        try:
            with open(path, "r") as f:
                model = json.load(f)
        except json.JSONDecodeError as exc:
            raise ModelLoadError(f"Activity model at {path} is not valid JSON: {exc}") from exc
        return cls(model)

    def margins(self, features: Sequence[float]) -> np.ndarray:
        """Summed leaf weights per class (pre-softmax)."""
        x = np.asarray(features, dtype=np.float64)
        scores = np.zeros(self.num_class, dtype=np.float64)
        for i, tree in enumerate(self._trees):
            scores[i % self.num_class] += tree.leaf_value(x)
        return scores

    def predict_proba(self, features: Sequence[float]) -> np.ndarray:
        return softmax(self.margins(features))

    def predict(self, features: Sequence[float]) -> ActivityPrediction:
        probs = self.predict_proba(features)
        idx = int(np.argmax(probs))
        return ActivityPrediction(
            label=self.labels[idx],
            confidence=float(probs[idx]),
            probabilities=tuple(float(p) for p in probs),
        )
