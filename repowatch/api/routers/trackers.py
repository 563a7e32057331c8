"""Trackers router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from repowatch.api.deps import (
    get_event_log_service,
    get_github_client,
    get_session,
    get_tracker_service,
)
from repowatch.api.schemas.common import PageMeta, PaginatedResponse
from repowatch.api.schemas.tracker import (
    CreateTrackerRequest,
    EventLogItem,
    TrackerResponse,
    TrackerStatusResponse,
)
from repowatch.engines.activity_tracker.github_client import GitHubGraphQLClient
from repowatch.services.event_log_service import EventLogService
from repowatch.services.tracker_service import TrackerService

router = APIRouter()


@router.post("/", response_model=TrackerResponse, status_code=201)
async def create_tracker(
    body: CreateTrackerRequest,
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
    client: GitHubGraphQLClient = Depends(get_github_client),
) -> TrackerResponse:
    tracker = await svc.create(
        session,
        client,
        user_id=body.user_id,
        repo_url=body.repo_url,
        tracked_events=body.tracked_events,
    )
    return TrackerResponse.model_validate(tracker)


@router.get("/{tracker_id}", response_model=TrackerStatusResponse)
async def get_tracker(
    tracker_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
) -> TrackerStatusResponse:
    result = await svc.get_status(session, tracker_id)
    return TrackerStatusResponse(
        **TrackerResponse.model_validate(result["tracker"]).model_dump(),
        total_events=result["total_events"],
    )


@router.get("/{tracker_id}/events", response_model=PaginatedResponse[EventLogItem])
async def list_tracker_events(
    tracker_id: uuid.UUID,
    cursor: str | None = Query(None),
    page_size: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
    log_svc: EventLogService = Depends(get_event_log_service),
) -> PaginatedResponse[EventLogItem]:
    await svc.get(session, tracker_id)
    result = await log_svc.list_for_tracker(
        session, tracker_id, cursor=cursor, page_size=page_size
    )
    return PaginatedResponse(
        data=[EventLogItem.model_validate(e) for e in result["data"]],
        meta=PageMeta(
            next_cursor=result["next_cursor"],
            has_more=result["has_more"],
            total=result["total"],
        ),
    )


@router.post("/{tracker_id}/pause", response_model=TrackerResponse)
async def pause_tracker(
    tracker_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
) -> TrackerResponse:
    return TrackerResponse.model_validate(await svc.pause(session, tracker_id))


@router.post("/{tracker_id}/resume", response_model=TrackerResponse)
async def resume_tracker(
    tracker_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
) -> TrackerResponse:
    return TrackerResponse.model_validate(await svc.resume(session, tracker_id))


@router.post("/{tracker_id}/reactivate", response_model=TrackerResponse)
async def reactivate_tracker(
    tracker_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
) -> TrackerResponse:
    return TrackerResponse.model_validate(await svc.reactivate(session, tracker_id))


@router.delete("/{tracker_id}", status_code=204)
async def delete_tracker(
    tracker_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: TrackerService = Depends(get_tracker_service),
) -> Response:
    await svc.delete(session, tracker_id)
    return Response(status_code=204)
