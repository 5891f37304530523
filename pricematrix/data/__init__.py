from datetime import date
from typing import NamedTuple


class Route(NamedTuple):
    origin: str
    destination: str

    @classmethod
    def of(cls, origin: str, destination: str) -> "Route":
        origin = (origin or "").strip().upper()
        destination = (destination or "").strip().upper()
        for code in (origin, destination):
            if len(code) != 3 or not code.isalnum():
                raise ValueError(f"Invalid location code: {code!r}")
        return cls(origin, destination)

    def __str__(self) -> str:
        return f"{self.origin}-{self.destination}"


class DatePair(NamedTuple):
    outbound: date
    inbound: date

    @property
    def is_valid(self) -> bool:
        # inbound must be strictly after outbound
        return self.inbound > self.outbound

    @property
    def key(self) -> str:
        return f"{self.outbound.isoformat()}_{self.inbound.isoformat()}"

    def __str__(self) -> str:
        return self.key
