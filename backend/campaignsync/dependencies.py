"""
FastAPI dependencies that hand out the sync engine's collaborators.
Everything long-lived (breaker registry, adapters, pollers, event bus, repository)
is built once in the app lifespan and kept on app.state.
"""

from fastapi import Request

from campaignsync.jobs.events import EventPublisher
from campaignsync.repositories.campaign_set_repository import CampaignSetRepository
from campaignsync.services.circuit_breaker import CircuitBreakerRegistry
from campaignsync.services.diff_service import DiffSyncService
from campaignsync.services.sync_service import CampaignSetSyncService


def get_repository(request: Request) -> CampaignSetRepository:
    return request.app.state.repository


def get_breakers(request: Request) -> CircuitBreakerRegistry:
    return request.app.state.breakers


def get_events(request: Request) -> EventPublisher:
    return request.app.state.events


def get_pollers(request: Request) -> dict:
    return request.app.state.pollers


def get_sync_service(request: Request) -> CampaignSetSyncService:
    state = request.app.state
    return CampaignSetSyncService(state.adapters, state.repository, state.breakers)


def get_diff_service(request: Request) -> DiffSyncService:
    state = request.app.state
    return DiffSyncService(state.adapters, state.repository, state.breakers)
