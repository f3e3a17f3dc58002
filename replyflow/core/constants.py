"""Application constants."""

# Dedup
FALLBACK_DEDUP_WINDOW_SECONDS = 5

# Task due offsets
REPLY_TASK_DUE_MINUTES = 10
QUALIFY_TASK_DUE_HOURS = 2
CONFIRM_EXPIRY_TASK_DUE_DAYS = 1
CONSULTATION_TASK_DUE_HOURS = 24

# Field extraction
EXPIRY_MAX_YEARS_AHEAD = 20
EXPIRY_PAST_TOLERANCE_DAYS = 365
EXPIRY_CONTEXT_BEFORE = 50
EXPIRY_CONTEXT_AFTER = 100
EXPIRY_HINT_MAX_LENGTH = 200
DEFAULT_REMINDER_SCHEDULE_DAYS = [90, 60, 30, 7, 3, 1]

# Outbound job errors
JOB_ERROR_MAX_LENGTH = 500
JOB_STACK_MAX_LENGTH = 1000
