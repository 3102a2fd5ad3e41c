"""Eco-efficiency scoring."""

from scoring.eco_score import (
    behavior_component,
    calculate_eco_score,
    efficiency_component,
    mode_component,
    verification_component,
    weather_component,
)
from scoring.models import (
    EcoScoreComponents,
    EcoScoreInput,
    EcoScoreResult,
    Verification,
    Weather,
)

__all__ = [
    "EcoScoreComponents",
    "EcoScoreInput",
    "EcoScoreResult",
    "Verification",
    "Weather",
    "behavior_component",
    "calculate_eco_score",
    "efficiency_component",
    "mode_component",
    "verification_component",
    "weather_component",
]
