from fastapi import APIRouter, Depends, Query

from routers.dependencies import envelope_response, get_unload_service
from schemas.unload import DepositInKindCreate, UnloadCreate, UnloadDecision, UnloadUpdate
from services.unload_service import UnloadService

router = APIRouter(prefix="/api/unloads", tags=["Unloads"])


# -------------------------------
# Create
# -------------------------------
@router.post("")
async def create_unload(payload: UnloadCreate, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.create(payload), success_status=201)


@router.post("/deposit-in-kind")
async def create_deposit_in_kind(payload: DepositInKindCreate, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.create_deposit_in_kind(payload), success_status=201)


# -------------------------------
# Lists
# -------------------------------
@router.get("/pending")
async def pending_unloads(gas_station_id: int = Query(...), service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.pending_unloads(gas_station_id))


@router.get("/history")
async def unload_history(gas_station_id: int = Query(...), service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.unload_history(gas_station_id))


# -------------------------------
# Edit / decide
# -------------------------------
@router.patch("/{unload_id}")
async def update_unload(unload_id: int, payload: UnloadUpdate, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.update(unload_id, payload))


@router.post("/{unload_id}/approve")
async def approve_unload(unload_id: int, payload: UnloadDecision, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.approve(unload_id, payload.approver_id))


@router.post("/{unload_id}/reject")
async def reject_unload(unload_id: int, payload: UnloadDecision, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.reject(unload_id, payload.approver_id))
