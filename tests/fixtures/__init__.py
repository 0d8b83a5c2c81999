"""Shared testing fixtures for the mathfly test suite."""

from .quiz import (  # noqa: F401
    FakeClock,
    FakeScheduler,
    StaticSource,
    make_question,
    make_results,
)
from .workspace import WorkspaceBuilder  # noqa: F401

__all__ = [
    "FakeClock",
    "FakeScheduler",
    "StaticSource",
    "WorkspaceBuilder",
    "make_question",
    "make_results",
]
