"""
Process-local scan job tracking.
"""

from .registry import JobRegistry, job_registry

__all__ = ["JobRegistry", "job_registry"]
