"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

ALLOWED_EXPIRATION_MINUTES = (15, 20, 40)
DEFAULT_CREATE_EXPIRATION_MINUTES = 20
DEFAULT_REOPEN_EXPIRATION_MINUTES = 15

LATE_BLOCK_MINUTES = 15
MAX_LATE_MINUTES = 240
DEFAULT_LATE_GRACE_MINUTES = 15

TOKEN_BYTES = 32
TOKEN_LENGTH = 43
TOKEN_MAX_ATTEMPTS = 5

EMAIL_SUBJECT_PREFIX = "[CFA]"

# Unjustified absence hours from which a learner is flagged in the report.
DEFAULT_ABSENCE_ALERT_HOURS = 20
