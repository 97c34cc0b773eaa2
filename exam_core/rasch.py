"""Rasch 1PL helpers and the Elo-style calibration step.

Both the candidate and the items live on the same latent theta scale.  A
response moves each side by ``k * (outcome - p)`` where ``p`` is the model
probability of a correct answer and ``k`` shrinks as evidence accumulates.
"""
from __future__ import annotations

import math

from .config import (
    INITIAL_THETA,
    LABEL_THETA_CUT,
    LEARNING_RATE_FLOOR,
    LEARNING_RATE_STEPS,
)

__all__ = [
    "sigma",
    "rasch_p",
    "initial_theta",
    "learning_rate",
    "elo_step",
    "update_user_theta",
    "difficulty_label",
]


def sigma(x: float) -> float:
    """Return the logistic function ``σ(x) = 1 / (1 + e^{−x})``.

    The implementation guards against overflow for large negative inputs by
    handling the positive and negative halves of the real line separately.
    """

    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def rasch_p(user_theta: float, item_theta: float) -> float:
    """Probability that a candidate at ``user_theta`` answers an item at
    ``item_theta`` correctly: ``σ(user_theta − item_theta)``."""

    return sigma(user_theta - item_theta)


def initial_theta(difficulty_tag: str) -> float:
    return float(INITIAL_THETA.get(str(difficulty_tag).upper(), 0.0))


def learning_rate(attempts: int) -> float:
    """Step size for the next update given the attempts seen so far."""

    for below, rate in LEARNING_RATE_STEPS:
        if attempts < below:
            return rate
    return LEARNING_RATE_FLOOR


def elo_step(theta: float, p: float, correct: bool, k: float) -> float:
    outcome = 1.0 if correct else 0.0
    return float(theta + k * (outcome - p))


def update_user_theta(
    user_theta: float,
    item_theta: float,
    correct: bool,
    attempts_so_far: int,
) -> float:
    """Move the candidate's ability toward the observed outcome.

    No clamp is applied; repeated extreme outcomes can drift without bound.
    """

    p = rasch_p(user_theta, item_theta)
    return elo_step(user_theta, p, correct, learning_rate(attempts_so_far))


def difficulty_label(theta: float) -> str:
    if theta <= -LABEL_THETA_CUT:
        return "E"
    if theta >= LABEL_THETA_CUT:
        return "H"
    return "M"
