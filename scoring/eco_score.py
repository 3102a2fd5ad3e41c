"""
Eco-efficiency scoring for completed trips.

Five sub-scores are computed independently and combined as a weighted sum:
mode 30%, efficiency 30%, behavior 20%, weather 10%, verification 10%.
Every input is optional; each sub-score falls back to a neutral value, so
scoring never raises for partial input.
"""

from __future__ import annotations

import math

from .models import (
    EcoScoreComponents,
    EcoScoreInput,
    EcoScoreResult,
    Verification,
    Weather,
)

ACTIVE_MODES = frozenset({"WALK", "CYCLE"})
LOW_IMPACT_MODES = frozenset({"PUBLIC", "WALK", "CYCLE"})
MOTOR_MODES = frozenset({"CAR", "BIKE"})

DEFAULT_TEMP_C = 25.0
MAX_CYCLING_SPEED_KMH = 27.0
MAX_WALKING_SPEED_KMH = 8.0

WEATHER_BONUSES = (
    ("rain", 5),
    ("fog", 7),
    ("snow", 8),
    ("storm", 5),
)


def _normalize_mode(mode: str | None) -> str:
    return (mode or "").upper()


def mode_component(mode: str | None) -> int:
    m = _normalize_mode(mode)
    if m == "PUBLIC":
        return 100
    if m in ACTIVE_MODES:
        return 95
    if m in MOTOR_MODES:
        return 60
    return 50


def efficiency_component(
    distance_km: float | None,
    eta_minutes: float | None,
    actual_minutes: float | None,
) -> int:
    """Score how close the actual duration came to the planned one."""
    if not eta_minutes or not actual_minutes:
        return 60

    ratio = actual_minutes / eta_minutes
    if 0.9 <= ratio <= 1.2:
        score = 90
    elif 1.2 < ratio <= 1.6:
        score = 70
    elif ratio > 1.6:
        score = 50
    elif 0.7 <= ratio < 0.9:
        score = 75
    else:
        score = 40

    if distance_km is not None and distance_km < 2:
        score = min(100, score + 5)
    return score


def behavior_component(
    mode: str | None,
    distance_km: float | None,
    actual_minutes: float | None,
) -> int:
    """Score driving behavior from the trip's average speed."""
    if _normalize_mode(mode) in LOW_IMPACT_MODES:
        return 90
    if not distance_km or not actual_minutes:
        return 70

    avg_speed = distance_km / (actual_minutes / 60 or 1)
    if 30 <= avg_speed <= 60:
        score = 90
    elif 20 <= avg_speed < 30 or 60 < avg_speed <= 75:
        score = 75
    elif 10 <= avg_speed < 20 or 75 < avg_speed <= 90:
        score = 60
    else:
        score = 40

    if distance_km < 3:
        score = min(100, score + 5)
    return score


def weather_component(weather: Weather | None, mode: str | None) -> int:
    """Reward trips made in harsh conditions."""
    weather = weather or Weather()
    condition = (weather.condition or "").lower()
    temp = weather.temp if weather.temp is not None else DEFAULT_TEMP_C

    score = 70
    for keyword, bonus in WEATHER_BONUSES:
        if keyword in condition:
            score += bonus

    if _normalize_mode(mode) in ACTIVE_MODES and (temp > 32 or temp < 10):
        score += 5

    return max(40, min(100, score))


def verification_component(
    mode: str | None,
    verification: Verification | None = None,
) -> int:
    """
    Score how well the trip is backed by evidence.

    Only cycling and walking trips get a speed plausibility check; motorized
    modes carry no speed-based fraud penalty.
    """
    verification = verification or Verification()
    m = _normalize_mode(mode)
    avg_speed = verification.avg_speed

    score = 80
    if m == "PUBLIC":
        score = 95 if verification.ticket_verified else 70
    if m in ACTIVE_MODES:
        score = 95 if verification.steps_match else 75
    if m == "CYCLE" and avg_speed and avg_speed > MAX_CYCLING_SPEED_KMH:
        score = 40
    if m == "WALK" and avg_speed and avg_speed > MAX_WALKING_SPEED_KMH:
        score = 40

    if verification.fraud_strikes == 1:
        score -= 10
    elif verification.fraud_strikes >= 2:
        score -= 20

    return max(20, min(100, score))


def calculate_eco_score(data: EcoScoreInput | dict) -> EcoScoreResult:
    """Compute the weighted eco score for a trip."""
    if not isinstance(data, EcoScoreInput):
        data = EcoScoreInput.model_validate(data)

    mode = mode_component(data.mode)
    efficiency = efficiency_component(
        data.distance_km,
        data.eta_minutes,
        data.actual_minutes,
    )
    behavior = behavior_component(data.mode, data.distance_km, data.actual_minutes)
    weather = weather_component(data.weather, data.mode)
    verification = verification_component(data.mode, data.verification)

    weighted = (
        0.30 * mode
        + 0.30 * efficiency
        + 0.20 * behavior
        + 0.10 * weather
        + 0.10 * verification
    )
    # Half-up, not Python's banker's rounding: 90.5 scores 91.
    eco_score = math.floor(weighted + 0.5)

    return EcoScoreResult(
        eco_score=max(0, min(100, eco_score)),
        components=EcoScoreComponents(
            mode=mode,
            efficiency=efficiency,
            behavior=behavior,
            weather=weather,
            verification=verification,
        ),
    )


__all__ = [
    "behavior_component",
    "calculate_eco_score",
    "efficiency_component",
    "mode_component",
    "verification_component",
    "weather_component",
]
