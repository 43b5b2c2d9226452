"""Shared application constants.

Centralizes the numbers the tracking engine depends on so they are
documented and adjusted in one place.
"""

# Mean Earth radius in meters used by the haversine formula
EARTH_RADIUS_M = 6371000.0

# Distance of one kilometer in meters
KM_M = 1000.0

# Seconds added to a session per clock tick
TICK_SECONDS = 1

# Valid coordinate ranges, degrees
LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)

# Name of the shared collection mirrored by the change feed
ACTIVE_SESSIONS_COLLECTION = "active_sessions"

# FIT files store positions as 32-bit semicircles
DEGREES_PER_SEMICIRCLE = 180 / 2**31
