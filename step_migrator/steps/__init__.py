"""Processor helpers and composite step plumbing built on the runner."""

__all__ = [
    "composite",
    "copy",
    "processors",
]
