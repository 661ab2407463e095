"""
Submission status state machine.

    created --start--> in_progress <--resume-- paused
                       in_progress --pause--> paused
    in_progress/paused --submit--> completed
    in_progress/paused --timeout--> expired
    created/in_progress/paused --abandon--> abandoned

Terminal statuses never transition again.
"""

from enum import Enum


class SubmissionStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class SessionEvent(str, Enum):
    START = "start"
    SAVE_PROGRESS = "save_progress"
    PAUSE = "pause"
    RESUME = "resume"
    SUBMIT = "submit"
    TIMEOUT = "timeout"
    ABANDON = "abandon"


NON_TERMINAL_STATUSES = frozenset(
    {SubmissionStatus.CREATED, SubmissionStatus.IN_PROGRESS, SubmissionStatus.PAUSED}
)
TERMINAL_STATUSES = frozenset(
    {SubmissionStatus.COMPLETED, SubmissionStatus.ABANDONED, SubmissionStatus.EXPIRED}
)
SCORED_STATUSES = frozenset({SubmissionStatus.COMPLETED, SubmissionStatus.EXPIRED})
ACTIVE_STATUSES = frozenset({SubmissionStatus.IN_PROGRESS, SubmissionStatus.PAUSED})

# event -> (allowed source statuses, target status); None keeps the current status
TRANSITIONS: dict[SessionEvent, tuple[frozenset[SubmissionStatus], SubmissionStatus | None]] = {
    SessionEvent.START: (frozenset({SubmissionStatus.CREATED}), SubmissionStatus.IN_PROGRESS),
    SessionEvent.SAVE_PROGRESS: (ACTIVE_STATUSES, None),
    SessionEvent.PAUSE: (frozenset({SubmissionStatus.IN_PROGRESS}), SubmissionStatus.PAUSED),
    SessionEvent.RESUME: (frozenset({SubmissionStatus.PAUSED}), SubmissionStatus.IN_PROGRESS),
    SessionEvent.SUBMIT: (ACTIVE_STATUSES, SubmissionStatus.COMPLETED),
    SessionEvent.TIMEOUT: (ACTIVE_STATUSES, SubmissionStatus.EXPIRED),
    SessionEvent.ABANDON: (NON_TERMINAL_STATUSES, SubmissionStatus.ABANDONED),
}


def sources_for(event: SessionEvent) -> frozenset[SubmissionStatus]:
    return TRANSITIONS[event][0]


def target_for(event: SessionEvent) -> SubmissionStatus | None:
    return TRANSITIONS[event][1]


def can_transition(current: SubmissionStatus | str, event: SessionEvent) -> bool:
    """Check if the event is allowed from the current status."""
    return SubmissionStatus(current) in sources_for(event)
