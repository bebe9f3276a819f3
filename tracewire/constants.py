"""Shared constants for tracewire."""

UNKNOWN_WORKFLOW = "UNKNOWN_WORKFLOW"
EXECUTION_ERROR = "EXECUTION_ERROR"
REMOTE_CALL_FAILED = "REMOTE_CALL_FAILED"
REMOTE_EXECUTION_FAILED = "REMOTE_EXECUTION_FAILED"
WEBHOOK_NOT_CONFIGURED = "WEBHOOK_NOT_CONFIGURED"
DUPLICATE_ATTEMPT = "DUPLICATE_ATTEMPT"
AUDIT_FAILED = "AUDIT_FAILED"

DEFAULT_REMOTE_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_POLL_MAX_ATTEMPTS = 10
DEFAULT_EXECUTION_LIST_LIMIT = 20

# Name this service reports itself as in traces it records.
SERVICE_NAME = "tracewire"

PROBE_ACTION_PREFIX = "ts-parse-"
FINAL_OUTPUT_ACTION = "final-output"
