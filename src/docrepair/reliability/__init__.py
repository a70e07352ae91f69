"""
Reliability Module.

Provides the failure-handling policy pieces of the pipeline:
- Exponential backoff for queue redelivery and budget escalation pacing
- Dead-letter records for jobs that exhaust their attempts
"""

from docrepair.reliability.backoff import BackoffPolicy
from docrepair.reliability.dead_letter_queue import (
    DeadLetterRecord,
    DeadLetterSink,
    FileDeadLetterSink,
    InMemoryDeadLetterSink,
)

__all__ = [
    "BackoffPolicy",
    "DeadLetterRecord",
    "DeadLetterSink",
    "FileDeadLetterSink",
    "InMemoryDeadLetterSink",
]
