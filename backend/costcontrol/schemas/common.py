from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")

# ISO-4217 alpha code; normalized to upper case by the ledgers.
CURRENCY_PATTERN = r"^[A-Za-z]{3}$"


def money_field(default: Any = None, **kwargs: Any) -> Any:
    return Field(default, ge=Decimal("0"), max_digits=18, decimal_places=2, **kwargs)


def quantity_field(default: Any = None, **kwargs: Any) -> Any:
    return Field(default, ge=Decimal("0"), max_digits=18, decimal_places=4, **kwargs)


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT


class ErrorEnvelope(BaseModel):
    ok: bool = False
    code: str
    message: Optional[str] = None
    details: Optional[dict[str, Any]] = None
