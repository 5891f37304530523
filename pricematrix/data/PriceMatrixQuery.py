import json
from typing import Dict, List
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PriceMatrixQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin: str = Field(
        ...,
        min_length=3,
        max_length=3,
        description="Origin location code"
    )

    destination: str = Field(
        ...,
        min_length=3,
        max_length=3,
        description="Destination location code"
    )

    # Full windows are always sent, the server recomputes the valid pairs
    outbound_dates: List[date] = Field(
        ...,
        alias="outboundDates",
        min_length=1,
        description="Outbound window (YYYY-MM-DD)"
    )

    inbound_dates: List[date] = Field(
        ...,
        alias="inboundDates",
        min_length=1,
        description="Inbound window (YYYY-MM-DD)"
    )

    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    currency: str = Field("EUR", min_length=3, max_length=3)

    @field_validator("origin", "destination", "currency", mode="before")
    @classmethod
    def _upper_code(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    def to_body(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True)

    def to_params(self) -> Dict[str, str]:
        """Query-string mirror of the body; date lists are JSON encoded."""
        params = {}
        for name, value in self.to_body().items():
            if isinstance(value, list):
                params[name] = json.dumps(value, separators=(",", ":"))
            else:
                params[name] = str(value)
        return params
