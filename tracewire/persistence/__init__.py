"""Persistence layer for traces and executions."""

from __future__ import annotations

import os
from typing import Optional

from ..config import TracewireConfig, load_config
from .inmemory import InMemoryOrchestratorRepository
from .models import (
    CommunicationTrace,
    ExecutionUpdate,
    TraceCompletion,
    WorkflowExecution,
)
from .postgres import PostgresOrchestratorRepository
from .repository import ExecutionRepository, OrchestratorRepository, TraceRepository
from .sqlite import SQLiteOrchestratorRepository

_repository_instance: OrchestratorRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[TracewireConfig] = None
) -> OrchestratorRepository:
    """Factory function to obtain the orchestrator repository.

    The backend is selected from ``database_url`` which can be provided
    explicitly, via environment variable ``TRACEWIRE_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("TRACEWIRE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryOrchestratorRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteOrchestratorRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        _repository_instance = PostgresOrchestratorRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "CommunicationTrace",
    "ExecutionUpdate",
    "TraceCompletion",
    "WorkflowExecution",
    "TraceRepository",
    "ExecutionRepository",
    "OrchestratorRepository",
    "InMemoryOrchestratorRepository",
    "SQLiteOrchestratorRepository",
    "PostgresOrchestratorRepository",
    "get_repository",
]
