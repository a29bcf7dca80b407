"""
Data persistence layer.

Provides the abstract job repository and its implementations: JSON files
for local runs and PostgreSQL for shared deployments.
"""

from .json_store import JSONJobStore
from .repository import JobRepository, INTERRUPTED_MESSAGE

__all__ = [
    "JSONJobStore",
    "JobRepository",
    "INTERRUPTED_MESSAGE",
]
