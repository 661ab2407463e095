"""
Test content: the read-only question tree and the collaborator that serves it.
"""

from bandexam.content.models import (
    CONTENT_VARIANTS,
    OBJECTIVE_SKILLS,
    PRODUCTIVE_SKILLS,
    Question,
    QuestionType,
    Section,
    Skill,
    SpeakingPart,
    TestContent,
    WritingTask,
)
from bandexam.content.provider import (
    ContentProvider,
    InMemoryContentProvider,
    JsonContentProvider,
)

__all__ = [
    "CONTENT_VARIANTS",
    "OBJECTIVE_SKILLS",
    "PRODUCTIVE_SKILLS",
    "Question",
    "QuestionType",
    "Section",
    "Skill",
    "SpeakingPart",
    "TestContent",
    "WritingTask",
    "ContentProvider",
    "InMemoryContentProvider",
    "JsonContentProvider",
]
