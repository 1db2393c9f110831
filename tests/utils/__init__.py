"""
Test utilities and helpers for Stepflow tests.
"""

from .fakes import FakeExecutor, FakeVault, InMemoryPipelineSource, make_pipeline, make_step

__all__ = [
    "FakeExecutor",
    "FakeVault",
    "InMemoryPipelineSource",
    "make_pipeline",
    "make_step",
]
