from datetime import date
from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator

from pricematrix.data import DatePair


class PriceEvent(BaseModel):
    type: Literal["price"]
    # the service sends snake_case, older builds sent camelCase
    outbound_date: date = Field(validation_alias=AliasChoices("outbound_date", "outboundDate"))
    inbound_date: date = Field(validation_alias=AliasChoices("inbound_date", "inboundDate"))
    price: Optional[float] = Field(None, allow_inf_nan=False)
    currency: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def _empty_price(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def pair(self) -> DatePair:
        return DatePair(self.outbound_date, self.inbound_date)


class ProgressEvent(BaseModel):
    type: Literal["progress"]
    current: int
    total: int


class CompleteEvent(BaseModel):
    type: Literal["complete"]
    total: Optional[int] = None
    successful: Optional[int] = None
    failed: Optional[int] = None


PriceMatrixEvent = Annotated[
    Union[PriceEvent, ProgressEvent, CompleteEvent],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(PriceMatrixEvent)


def parse_event(payload: str) -> PriceMatrixEvent:
    """Decode one JSON record; raises pydantic.ValidationError on bad input."""
    return _event_adapter.validate_json(payload)
