"""Exceptions raised at the pipeline boundary."""

from __future__ import annotations


class LightingPipelineError(Exception):
    """Base class for recommendation pipeline failures."""


class DataInsufficientError(LightingPipelineError):
    """Too few classified planes to estimate the room volume."""


class NoCandidatesError(LightingPipelineError):
    """None of the supplied anchor points lies on a detected surface."""
