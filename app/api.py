"""HTTP route definitions for the agent."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from app.schemas import AgentStatus, CredentialEvent, CredentialEventResponse, Reading
from datastore.errors import StorageError
from services.agent import PollingAgent, build_default_agent
from services.export import readings_to_csv

router = APIRouter()


def get_agent() -> PollingAgent:
    return build_default_agent()


@router.post(
    "/credentials",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CredentialEventResponse,
    summary="Deliver a token (and optionally a snapshot) captured from a live session.",
)
async def post_credentials(
    event: CredentialEvent,
    agent: PollingAgent = Depends(get_agent),
) -> CredentialEventResponse:
    try:
        return await agent.handle_credential_event(event)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Credential could not be persisted: {exc}",
        ) from exc


@router.get(
    "/status",
    response_model=AgentStatus,
    summary="Scheduler state, credential presence and history size.",
)
async def get_status(agent: PollingAgent = Depends(get_agent)) -> AgentStatus:
    return agent.status()


@router.get(
    "/readings",
    response_model=list[Reading],
    summary="Stored readings, oldest first.",
)
async def list_readings(agent: PollingAgent = Depends(get_agent)) -> list[Reading]:
    return agent.readings.list()


@router.get(
    "/readings/latest",
    response_model=Reading,
    summary="Most recent stored reading.",
)
async def latest_reading(agent: PollingAgent = Depends(get_agent)) -> Reading:
    reading = agent.readings.latest()
    if reading is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No readings captured yet.",
        )
    return reading


@router.get(
    "/readings/export.csv",
    response_class=PlainTextResponse,
    summary="Export the full history as CSV.",
)
async def export_readings(agent: PollingAgent = Depends(get_agent)) -> PlainTextResponse:
    body = readings_to_csv(agent.readings.list())
    return PlainTextResponse(
        body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="nest_readings.csv"'},
    )


@router.delete(
    "/readings",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete all stored readings.",
)
async def clear_readings(agent: PollingAgent = Depends(get_agent)) -> None:
    try:
        agent.readings.clear()
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /status for agent state."}
