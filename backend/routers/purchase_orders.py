from fastapi import APIRouter, Depends, Query

from routers.dependencies import envelope_response, get_unload_service
from schemas.unload import TankIdsQuery
from services.unload_service import UnloadService

router = APIRouter(prefix="/api/purchase-orders", tags=["Purchase Orders"])


@router.get("/remaining/{product_id}")
async def remaining_by_product(product_id: int, gas_station_id: int = Query(...),
                               service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.remaining(gas_station_id, product_id))


@router.post("/has-approved")
async def has_approved(payload: TankIdsQuery, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(
        await service.has_approved_purchase_for_tanks(payload.tank_ids, payload.gas_station_id)
    )
