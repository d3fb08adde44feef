"""
Check Router - API endpoints for message checks and history
"""
import json

from fastapi import APIRouter, Depends, Request, Response, status

from before_send.auth import get_caller
from before_send.exceptions import InputValidationError
from before_send.schemas import (
    CheckCreatedResponse,
    CheckRecord,
    EngineInfoResponse,
    HistoryResponse,
    SegmentsResponse,
)
from before_send.services.check_service import Caller, CheckService


router = APIRouter()


def get_check_service(request: Request) -> CheckService:
    """Dependency for the service built at startup"""
    return request.app.state.check_service


# Endpoints
@router.post("/check", response_model=CheckCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_check(
    request: Request,
    caller: Caller = Depends(get_caller),
    service: CheckService = Depends(get_check_service),
):
    """
    Analyze a draft message

    Body: {situation?, original_message, preferred_tone?}
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InputValidationError()

    record = await service.create_check(payload, caller)
    return CheckCreatedResponse(id=record.id)


@router.get("/check/{check_id}", response_model=CheckRecord)
async def get_check(
    check_id: str,
    caller: Caller = Depends(get_caller),
    service: CheckService = Depends(get_check_service),
):
    """Get a check result"""
    return service.fetch_check(check_id, caller)


@router.get("/check/{check_id}/segments", response_model=SegmentsResponse)
async def get_check_segments(
    check_id: str,
    caller: Caller = Depends(get_caller),
    service: CheckService = Depends(get_check_service),
):
    """Original message split into plain and highlighted segments"""
    return SegmentsResponse(id=check_id, segments=service.fetch_segments(check_id, caller))


@router.delete("/check/{check_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_check(
    check_id: str,
    caller: Caller = Depends(get_caller),
    service: CheckService = Depends(get_check_service),
):
    """Delete a check owned by the caller"""
    service.delete_check(check_id, caller)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    caller: Caller = Depends(get_caller),
    service: CheckService = Depends(get_check_service),
):
    """List the caller's recent checks, newest first"""
    return HistoryResponse(items=service.list_history(caller))


@router.get("/engine", response_model=EngineInfoResponse)
async def get_engine_info(service: CheckService = Depends(get_check_service)):
    """Get information about the configured analysis engine"""
    return service.engine.get_model_info()
