"""
bandexam: exam session lifecycle and answer-scoring engine.

Turns a stream of partial answers and timing events into a durable,
auditable, correctly-scored attempt record for four-skill proficiency tests.
"""

__version__ = "1.0.0"
