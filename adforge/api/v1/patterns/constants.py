"""Constants for learned pattern routes."""

DEFAULT_RELEVANT_LIMIT = 5
MAX_RELEVANT_LIMIT = 20

PATTERN_APPLICATION_NOT_FOUND_DETAIL = "No application of this pattern found for user"
PATTERN_ALREADY_RATED_DETAIL = "Latest application of this pattern is already rated"
