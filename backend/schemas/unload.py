from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional


class UnloadCreate(BaseModel):
    tank_id: int
    unloader_id: int
    liter_amount: float = Field(gt=0)
    delivered_volume: Optional[float] = Field(default=None, ge=0)
    initial_order_volume: Optional[float] = Field(default=None, ge=0)
    purchase_transaction_id: Optional[int] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"str_strip_whitespace": True}


class DepositInKindCreate(BaseModel):
    tank_id: int
    unloader_id: int
    depositor_name: str = Field(min_length=1)
    liter_amount: float = Field(gt=0)
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"str_strip_whitespace": True}


class UnloadUpdate(BaseModel):
    updated_by_id: int
    liter_amount: Optional[float] = Field(default=None, gt=0)
    delivered_volume: Optional[float] = Field(default=None, ge=0)
    initial_order_volume: Optional[float] = Field(default=None, ge=0)
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"str_strip_whitespace": True}


class UnloadDecision(BaseModel):
    approver_id: int


class UnloadOut(BaseModel):
    id: int
    tank_id: int
    unloader_id: int
    manager_id: Optional[int] = None
    kind: str
    depositor_name: Optional[str] = None
    liter_amount: float
    delivered_volume: Optional[float] = None
    initial_order_volume: Optional[float] = None
    purchase_transaction_id: Optional[int] = None
    invoice_number: Optional[str] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PurchaseOrderRemainingOut(BaseModel):
    id: int
    purchase_volume: float
    delivered_volume: float
    remaining_volume: float


class LedgerRemainingOut(BaseModel):
    product_id: int
    total_remaining: float
    orders: List[PurchaseOrderRemainingOut]


class TankStockOut(BaseModel):
    tank_id: int
    capacity: float
    current_stock: float
    free_space: float
    fill_percentage: float
    is_low: bool
    source: str


class TankIdsQuery(BaseModel):
    gas_station_id: int
    tank_ids: List[int]

    @field_validator("tank_ids")
    @classmethod
    def _not_empty(cls, v):
        if not v:
            raise ValueError("at least one tank id is required")
        return v
