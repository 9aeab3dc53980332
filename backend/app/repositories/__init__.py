"""Repositories layer - Data access abstraction.

Repositories handle all database operations and provide
a clean interface for services to interact with data.
"""

from app.repositories.analysis import AnalysisRepository, AnalysisStore

__all__ = ["AnalysisRepository", "AnalysisStore"]
