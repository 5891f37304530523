import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_STREAM_URL = "http://localhost:3000/price-matrix-stream"

# setting name -> environment variable
ENV_VARS = {
    "stream_url": "PRICE_MATRIX_STREAM_URL",
    "currency": "PRICE_MATRIX_CURRENCY",
    "adults": "PRICE_MATRIX_ADULTS",
    "children": "PRICE_MATRIX_CHILDREN",
    "infants": "PRICE_MATRIX_INFANTS",
    "settle_delay": "PRICE_MATRIX_SETTLE_DELAY",
    "connect_timeout": "PRICE_MATRIX_CONNECT_TIMEOUT",
    "read_timeout": "PRICE_MATRIX_READ_TIMEOUT",
    "port": "PORT",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    stream_url: str = DEFAULT_STREAM_URL
    currency: str = Field("EUR", min_length=3, max_length=3)
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    settle_delay: float = Field(1.0, ge=0)  # seconds before prefetch starts
    connect_timeout: float = Field(10.0, gt=0)
    read_timeout: float = Field(30.0, gt=0)  # max silence between chunks
    port: int = 8080

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {name: env[var] for name, var in ENV_VARS.items() if env.get(var)}
        return cls(**values)
