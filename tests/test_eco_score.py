from __future__ import annotations

import pytest

from scoring import (
    EcoScoreInput,
    Verification,
    Weather,
    behavior_component,
    calculate_eco_score,
    efficiency_component,
    mode_component,
    verification_component,
    weather_component,
)


@pytest.mark.parametrize(
    ("payload", "expected_score", "expected_components"),
    [
        (
            {
                "mode": "PUBLIC",
                "distanceKm": 12,
                "etaMinutes": 30,
                "actualMinutes": 32,
                "weather": {"condition": "clear", "temp": 25},
                "verification": {"ticketVerified": True},
            },
            92,
            {"mode": 100, "efficiency": 90, "behavior": 90, "weather": 70, "verification": 95},
        ),
        (
            {
                "mode": "CYCLE",
                "distanceKm": 5,
                "etaMinutes": 25,
                "actualMinutes": 27,
                "weather": {"condition": "hot", "temp": 34},
                "verification": {"stepsMatch": True, "avgSpeed": 11},
            },
            91,
            {"mode": 95, "efficiency": 90, "behavior": 90, "weather": 75, "verification": 95},
        ),
        (
            {
                "mode": "CAR",
                "distanceKm": 40,
                "etaMinutes": 50,
                "actualMinutes": 40,
                "weather": {"condition": "rain", "temp": 18},
                "verification": {"avgSpeed": 60},
            },
            74,
            {"mode": 60, "efficiency": 75, "behavior": 90, "weather": 75, "verification": 80},
        ),
    ],
)
def test_reference_trips(
    payload: dict,
    expected_score: int,
    expected_components: dict,
) -> None:
    result = calculate_eco_score(payload)

    assert result.eco_score == expected_score
    assert result.components.model_dump() == expected_components


def test_camel_case_dump() -> None:
    result = calculate_eco_score(EcoScoreInput(mode="PUBLIC"))
    dumped = result.model_dump(by_alias=True)
    assert "ecoScore" in dumped
    assert set(dumped["components"]) == {
        "mode",
        "efficiency",
        "behavior",
        "weather",
        "verification",
    }


def test_empty_input_scores_neutral() -> None:
    result = calculate_eco_score({})
    assert result.components.model_dump() == {
        "mode": 50,
        "efficiency": 60,
        "behavior": 70,
        "weather": 70,
        "verification": 80,
    }
    # 15 + 18 + 14 + 7 + 8
    assert result.eco_score == 62


def test_mode_is_case_insensitive() -> None:
    assert mode_component("cycle") == 95
    assert mode_component("Public") == 100
    assert mode_component("bike") == 60
    assert mode_component("scooter") == 50
    assert mode_component(None) == 50


@pytest.mark.parametrize(
    ("actual", "expected"),
    [
        (27, 90),  # 0.9
        (36, 90),  # 1.2
        (40, 70),
        (48, 70),  # 1.6
        (49, 50),
        (21, 75),  # 0.7
        (20, 40),
    ],
)
def test_efficiency_ratio_bands(actual: float, expected: int) -> None:
    assert efficiency_component(10, 30, actual) == expected


def test_efficiency_short_trip_bonus_and_missing_data() -> None:
    assert efficiency_component(1.5, 30, 30) == 95
    assert efficiency_component(10, None, 30) == 60
    assert efficiency_component(10, 30, 0) == 60


@pytest.mark.parametrize(
    ("distance", "minutes", "expected"),
    [
        (45, 60, 90),
        (25, 60, 75),
        (70, 60, 75),
        (15, 60, 60),
        (80, 60, 60),
        (100, 60, 40),
        (5, 60, 40),
        (2, 60, 45),  # short trip bonus
    ],
)
def test_behavior_speed_bands(distance: float, minutes: float, expected: int) -> None:
    assert behavior_component("CAR", distance, minutes) == expected


def test_behavior_low_impact_and_missing() -> None:
    assert behavior_component("walk", 1, 1) == 90
    assert behavior_component("CAR", None, 30) == 70


def test_weather_bonuses_stack_and_clamp() -> None:
    assert weather_component(Weather(condition="Thunderstorm rain"), "CAR") == 80
    assert weather_component(Weather(condition="snow fog"), "CAR") == 85
    assert weather_component(Weather(condition="clear", temp=5), "WALK") == 75
    assert weather_component(Weather(condition="clear", temp=5), "CAR") == 70
    assert weather_component(None, "CAR") == 70
    everything = Weather(condition="rain fog snow storm", temp=40)
    assert weather_component(everything, "cycle") == 100


def test_verification_rules() -> None:
    assert verification_component("PUBLIC", Verification(ticket_verified=True)) == 95
    assert verification_component("PUBLIC") == 70
    assert verification_component("WALK", Verification(steps_match=True)) == 95
    assert verification_component("WALK") == 75
    assert verification_component("CYCLE", Verification(avg_speed=30)) == 40
    assert verification_component("WALK", Verification(avg_speed=9)) == 40
    assert verification_component("CAR", Verification(avg_speed=200)) == 80


def test_verification_fraud_strikes_and_floor() -> None:
    assert verification_component("CAR", Verification(fraud_strikes=1)) == 70
    assert verification_component("CAR", Verification(fraud_strikes=3)) == 60
    assert verification_component("CYCLE", Verification(avg_speed=40, fraud_strikes=2)) == 20


def test_rounds_half_up() -> None:
    # 28.5 + 27 + 18 + 7.5 + 9.5 = 90.5
    result = calculate_eco_score(
        {
            "mode": "CYCLE",
            "distanceKm": 5,
            "etaMinutes": 25,
            "actualMinutes": 27,
            "weather": {"condition": "clear", "temp": 34},
            "verification": {"stepsMatch": True},
        },
    )
    assert result.eco_score == 91
