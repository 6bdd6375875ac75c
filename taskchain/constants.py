"""Shared constants for taskchain."""

WORKFLOW_SUBJECT_PREFIX = "WORKFLOW —"
COMPLETED_STATUS = "Completed"

# CRM composite requests accept at most 25 sub-requests.
MAX_BATCH_SIZE = 25
DEFAULT_ACTIVE_PAGE_SIZE = 100
