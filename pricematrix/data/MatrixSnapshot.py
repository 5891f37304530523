from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CellStatus = Literal["price", "absent", "pending", "unknown", "invalid"]
PriceBand = Literal["low", "mid", "high"]


class MatrixCell(BaseModel):
    outbound_date: date
    inbound_date: date
    status: CellStatus
    price: Optional[float] = None
    band: Optional[PriceBand] = None
    # the searched departure/return pair
    selected: bool = False


class MatrixRow(BaseModel):
    outbound_date: date
    cells: List[MatrixCell]


class MatrixSnapshot(BaseModel):
    origin: str
    destination: str
    outbound_offset: int = 0
    inbound_offset: int = 0
    outbound_dates: List[date]
    inbound_dates: List[date]
    rows: List[MatrixRow]
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    cheapest: List[MatrixCell] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


class MatrixSearch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin: str = Field(..., min_length=3, max_length=3, description="Origin location code")
    destination: str = Field(..., min_length=3, max_length=3, description="Destination location code")
    departure_date: date = Field(..., alias="departureDate")
    return_date: Optional[date] = Field(None, alias="returnDate")


class MatrixShift(BaseModel):
    outbound: int = Field(0, description="Days to move the outbound window")
    inbound: int = Field(0, description="Days to move the inbound window")
