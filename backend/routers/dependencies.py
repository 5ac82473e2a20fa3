# routers/dependencies.py
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from schemas.result import ActionResult
from services.errors import http_status_for
from services.unload_service import UnloadService

_service = UnloadService()


def get_unload_service() -> UnloadService:
    return _service


def envelope_response(result: ActionResult, success_status: int = 200) -> JSONResponse:
    status = success_status if result.success else http_status_for(result.code)
    return JSONResponse(status_code=status, content=jsonable_encoder(result.model_dump(exclude_none=True)))
