"""Models layer - SQLAlchemy ORM models.

Models define the database schema.
All models inherit from the Base class defined in core.database.
"""

from app.core.database import Base
from app.models.analysis import AnalysisRecord, AnalysisStatus, AnalysisType

__all__ = [
    "AnalysisRecord",
    "AnalysisStatus",
    "AnalysisType",
    "Base",
]
