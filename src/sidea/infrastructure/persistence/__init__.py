"""Persistence layer - SQLAlchemy models and the catalogue store."""

from sidea.infrastructure.persistence.database import Database
from sidea.infrastructure.persistence.repositories import (
    SqlCatalogueStore,
    SqlCatalogueUnitOfWork,
)

__all__ = ["Database", "SqlCatalogueStore", "SqlCatalogueUnitOfWork"]
