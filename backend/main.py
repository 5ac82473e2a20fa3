# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import create_tables
import models  # noqa: F401  registers tables on Base.metadata
from routers import purchase_orders, tanks, unloads
from schemas.result import ActionResult, field_errors

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Fuel Station Back Office - Tank Inventory & Unload Approval")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------
# Request validation -> envelope
# -------------------------------
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    result = ActionResult(
        success=False,
        message="Validation failed",
        errors=field_errors(exc),
        code="ValidationError",
    )
    return JSONResponse(status_code=422, content=result.model_dump(exclude_none=True))


# -------------------------------
# Routers
# -------------------------------
app.include_router(unloads.router)
app.include_router(tanks.router)
app.include_router(purchase_orders.router)


@app.get("/")
def read_root():
    return {"message": "Fuel station back office running"}


@app.on_event("startup")
async def on_startup():
    logger.info("🔄 Initializing database...")
    await create_tables()
    logger.info("✅ Database ready")
