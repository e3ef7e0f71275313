"""Shared skip-reason and write-outcome constants for scan import handling."""

SKIP_MISSING_IDENTIFIER = "missing_identifier"
SKIP_MISSING_GUILD_IDENTIFIER = "missing_guild_identifier"
SKIP_MISSING_SERVER = "missing_server"
SKIP_BAD_TIMESTAMP = "bad_timestamp"

SKIP_REASONS = [
    SKIP_MISSING_IDENTIFIER,
    SKIP_MISSING_GUILD_IDENTIFIER,
    SKIP_MISSING_SERVER,
    SKIP_BAD_TIMESTAMP,
]

OUTCOME_CREATED = "created"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_ERROR = "error"

# Duplicates are a successful outcome: the same export may be retried.
SUCCESS_OUTCOMES = [
    OUTCOME_CREATED,
    OUTCOME_DUPLICATE,
]
