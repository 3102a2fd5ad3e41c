ROUTE_SOURCE_OSRM = "OSRM"
ROUTE_SOURCE_FALLBACK = "FALLBACK"
ROUTE_SOURCE_RECORDED = "RECORDED"

PROFILE_WALKING = "walking"
PROFILE_BIKING = "biking"
PROFILE_DRIVING = "driving"

# Travel mode -> routing profile
MODE_PROFILES = {
    "WALK": PROFILE_WALKING,
    "CYCLE": PROFILE_BIKING,
}

# Average speed (km/h) used when no provider duration is available
SPEED_PROFILES_KMH = {
    PROFILE_WALKING: 5.0,
    PROFILE_BIKING: 15.0,
    PROFILE_DRIVING: 50.0,
}

# Straight-line distance multipliers: roads are not straight lines
ROUTE_FACTORS = {
    PROFILE_WALKING: 1.2,
    PROFILE_BIKING: 1.3,
    PROFILE_DRIVING: 1.4,
}

# Eco-driving speed suggestion tuning (km/h)
ECO_SPEED_MIN_FLOOR = 30.0
ECO_SPEED_MAX_CEILING = 80.0
ECO_SPEED_BAND = 15.0
WEATHER_SPEED_ADJUSTMENTS = {
    "rain": -10,
    "snow": -15,
    "fog": -10,
    "storm": -20,
    "clear": 0,
    "cloudy": -5,
}
