"""Wiring of router, executors and stores from configuration."""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from .api import create_app
from .config import TracewireConfig, load_config
from .executors import LocalExecutor, RemoteExecutor, WebhookUrlCache
from .handlers import register_default_handlers
from .monitor import ExecutionMonitor
from .persistence import OrchestratorRepository, get_repository
from .registry import load_registry
from .router import WorkflowRouter
from .validation import ManifestLoader, StepValidator


def build_router(
    config: Optional[TracewireConfig] = None,
    repository: Optional[OrchestratorRepository] = None,
    cache: Optional[WebhookUrlCache] = None,
) -> WorkflowRouter:
    """Create a router with the default handlers and configured backends."""

    config = config or load_config()
    return WorkflowRouter(
        registry=load_registry(config.registry_path),
        repository=repository or get_repository(config=config),
        local_executor=register_default_handlers(LocalExecutor()),
        remote_executor=RemoteExecutor(cache=cache, config=config.remote),
    )


def build_validator(config: Optional[TracewireConfig] = None) -> StepValidator:
    config = config or load_config()
    return StepValidator(ManifestLoader(config.manifest_dir))


def build_monitor(router: WorkflowRouter) -> ExecutionMonitor:
    return ExecutionMonitor(router.repository, router.remote_executor)


def build_app(config: Optional[TracewireConfig] = None) -> FastAPI:
    """Application factory, e.g. ``uvicorn --factory tracewire.service:build_app``."""

    config = config or load_config()
    return create_app(build_router(config), validator=build_validator(config))
