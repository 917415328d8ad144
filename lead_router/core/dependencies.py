"""
FastAPI dependency injection module for the Lead Router service.

Endpoint handlers never build infrastructure themselves; they receive it
through the dependencies below, which tests replace with
`app.dependency_overrides`.

Key Dependencies Provided:
- get_settings_dependency / SettingsDep: cached Settings singleton
- get_write_queue / WriteQueueDep: the process-wide ExternalWriteQueue
- get_monday_client: the process-wide monday.com client
- get_*_repository: asyncpg repositories bound to the shared pool
- get_orchestrator / OrchestratorDep: fully wired ProposalOrchestrator

The write queue, the monday.com client and the assignee resolver live on
`app.state` and are created by the application lifespan (see main.py), so
every request shares the same rate window and user cache.

Usage Examples:
    @router.post("/execute")
    async def execute(body: ExecuteRequest, orchestrator: OrchestratorDep):
        outcome = await orchestrator.execute(item=body.item)
"""

from typing import Annotated

from fastapi import Depends, Request

from lead_router.core.config import Settings, get_settings
from lead_router.services.monday_client import MondayClient
from lead_router.services.people import AssigneeResolver
from lead_router.services.proposals import ProposalOrchestrator
from lead_router.services.routing_state import (
    AgentSnapshotRepository,
    ApplyGuardRepository,
    ProposalRepository,
    RoutingConfigRepository,
    RoutingSettingsRepository,
)
from lead_router.services.write_queue import ExternalWriteQueue


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can do:

        app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    """
    return get_settings()


# =============================================================================
# Shared Runtime Objects (app.state)
# =============================================================================

def get_write_queue(request: Request) -> ExternalWriteQueue:
    return request.app.state.write_queue


def get_monday_client(request: Request) -> MondayClient:
    return request.app.state.monday_client


def get_assignee_resolver(request: Request) -> AssigneeResolver:
    return request.app.state.assignee_resolver


# =============================================================================
# Repositories
# =============================================================================

def get_config_repository() -> RoutingConfigRepository:
    return RoutingConfigRepository()


def get_settings_repository() -> RoutingSettingsRepository:
    return RoutingSettingsRepository()


def get_snapshot_repository() -> AgentSnapshotRepository:
    return AgentSnapshotRepository()


def get_proposal_repository() -> ProposalRepository:
    return ProposalRepository()


def get_guard_repository() -> ApplyGuardRepository:
    return ApplyGuardRepository()


# =============================================================================
# Orchestrator
# =============================================================================

def get_orchestrator(
    settings: Annotated[Settings, Depends(get_settings_dependency)],
    proposals: Annotated[ProposalRepository, Depends(get_proposal_repository)],
    guards: Annotated[ApplyGuardRepository, Depends(get_guard_repository)],
    config_repo: Annotated[RoutingConfigRepository, Depends(get_config_repository)],
    settings_repo: Annotated[RoutingSettingsRepository, Depends(get_settings_repository)],
    resolver: Annotated[AssigneeResolver, Depends(get_assignee_resolver)],
    queue: Annotated[ExternalWriteQueue, Depends(get_write_queue)],
    client: Annotated[MondayClient, Depends(get_monday_client)],
) -> ProposalOrchestrator:
    return ProposalOrchestrator(
        proposals=proposals,
        guards=guards,
        config_repo=config_repo,
        settings_repo=settings_repo,
        resolver=resolver,
        queue=queue,
        client=client,
        assigned_status_label=settings.assigned_status_label,
        pending_status_label=settings.pending_approval_status_label,
    )


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]
WriteQueueDep = Annotated[ExternalWriteQueue, Depends(get_write_queue)]
SettingsRepoDep = Annotated[RoutingSettingsRepository, Depends(get_settings_repository)]
SnapshotRepoDep = Annotated[AgentSnapshotRepository, Depends(get_snapshot_repository)]
OrchestratorDep = Annotated[ProposalOrchestrator, Depends(get_orchestrator)]
