from fastapi import APIRouter, Depends, Query

from routers.dependencies import envelope_response, get_unload_service
from services.unload_service import UnloadService

router = APIRouter(prefix="/api/tanks", tags=["Tanks"])


@router.get("/{tank_id}/stock")
async def tank_stock(tank_id: int, service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.tank_stock_summary(tank_id))


@router.get("/{tank_id}/lo-remaining")
async def lo_remaining(tank_id: int, gas_station_id: int = Query(...),
                       service: UnloadService = Depends(get_unload_service)):
    return envelope_response(await service.lo_remaining_by_tank(gas_station_id, tank_id))
