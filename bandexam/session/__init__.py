"""
Session engine: answer merging, state machine and expiry sweep.

Components:
- answer_store: Per-key answer merge and completion percentage
- schemas: Inbound progress payload validation
- collaborators: Notification and review queue protocols
- manager: SessionManager (import from bandexam.session.manager)
- sweeper: ExpirySweeper (import from bandexam.session.sweeper)

The manager and sweeper are not re-exported here because the persistence
layer imports this package.
"""

from bandexam.session.answer_store import AnswerStore, SectionAnswers
from bandexam.session.schemas import AnswerDelta, Cursor, SectionAnswerDelta

__all__ = [
    "AnswerDelta",
    "AnswerStore",
    "Cursor",
    "SectionAnswerDelta",
    "SectionAnswers",
]
