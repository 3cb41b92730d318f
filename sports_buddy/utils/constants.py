"""
Constants shared across the matchmaking API.
"""

# Match defaults
DEFAULT_MATCH_DURATION = 60  # minutes
DEFAULT_MAX_PARTICIPANTS = 2
DEFAULT_SKILL_LEVEL_REQUIRED = "any"

# Proximity search
DEFAULT_SEARCH_RADIUS = 10000  # meters
POPULAR_AREAS_RADIUS = 50000  # meters
NEARBY_CANDIDATE_LIMIT = 100  # rows fetched before distance filtering
EARTH_RADIUS_METERS = 6371000

# Result caps
MAX_SEARCH_RESULTS = 50
MAX_USER_SEARCH_RESULTS = 20
MAX_FRIEND_SUGGESTIONS = 20
MAX_POPULAR_AREAS = 20

# Friend suggestion scoring
SUGGESTION_DISTANCE_MAX_POINTS = 50.0
SUGGESTION_DISTANCE_METERS_PER_POINT = 200.0
SUGGESTION_MUTUAL_SPORT_POINTS = 30
SUGGESTION_MUTUAL_FRIEND_POINTS = 20
SUGGESTION_SKILL_MATCH_POINTS = 10
SUGGESTION_MIN_SCORE = 10
DEFAULT_SUGGESTION_RADIUS_KM = 10

# Profile validation
MIN_PASSWORD_LENGTH = 6
MIN_AGE = 13
MAX_AGE = 120
MAX_BIO_LENGTH = 500
MIN_SEARCH_QUERY_LENGTH = 2

# Match validation
MIN_MATCH_DURATION = 15
MAX_MATCH_DURATION = 480
MIN_PARTICIPANTS = 1
MAX_PARTICIPANTS = 50
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000

# Brute-force protection on sign-in
SIGNIN_MAX_FAILED_ATTEMPTS = 5
SIGNIN_LOCKOUT_WINDOW_SECONDS = 15 * 60

# Default sports catalog (name, min_players, max_players)
DEFAULT_SPORTS = [
    ("Tennis", 2, 4),
    ("Basketball", 2, 10),
    ("Football/Soccer", 2, 22),
    ("Volleyball", 2, 12),
    ("Badminton", 2, 4),
    ("Table Tennis", 2, 4),
    ("Running", 1, None),
    ("Cycling", 1, None),
    ("Swimming", 1, None),
    ("Golf", 1, 4),
]
