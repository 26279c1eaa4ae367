"""
Host-side post-processing of pipeline output.

Converts raw Q8.8 class scores to probabilities and picks the top-K
classes, as a host driver does after reading the result buffer.
"""

from dataclasses import dataclass

import numpy as np

from .fixedpoint import q88

CIFAR10_LABELS = (
    "airplane",
    "automobile",
    "bird",
    "cat",
    "deer",
    "dog",
    "frog",
    "horse",
    "ship",
    "truck",
)

DEFAULT_TOP_K = 5


@dataclass(frozen=True)
class ClassificationResult:
    """One ranked prediction."""

    class_id: int
    confidence: float
    label: str | None = None


def softmax(raw: np.ndarray) -> np.ndarray:
    """Softmax over Q8.8 scores, computed in float after subtracting the max."""
    values = q88.to_float_array(np.asarray(raw).reshape(-1))
    if values.size == 0:
        return values
    exp = np.exp(values - values.max())
    return exp / exp.sum()


def top_k(probs: np.ndarray, k: int = DEFAULT_TOP_K, labels=None) -> list[ClassificationResult]:
    """
    The k most probable classes, best first.

    Ties go to the lower class index.
    """
    probs = np.asarray(probs, dtype=np.float64).reshape(-1)
    k = min(k, probs.size)
    order = np.argsort(-probs, kind="stable")[:k]
    return [
        ClassificationResult(
            class_id=int(i),
            confidence=float(probs[i]),
            label=labels[i] if labels is not None and i < len(labels) else None,
        )
        for i in order
    ]


def classify(raw: np.ndarray, k: int = DEFAULT_TOP_K, labels=None) -> list[ClassificationResult]:
    """Softmax then top-k over raw Q8.8 class scores."""
    return top_k(softmax(raw), k, labels)
