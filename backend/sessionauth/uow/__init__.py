"""Unit of Work abstractions and the SQLAlchemy-backed implementation."""

from .base import UnitOfWork
from .sqlalchemy_uow import SQLAlchemyRepositoryContainer, SQLAlchemyUnitOfWork

__all__ = [
    "UnitOfWork",
    "SQLAlchemyRepositoryContainer",
    "SQLAlchemyUnitOfWork",
]
