"""
Data Source Models - Normalized market data structures.

Provides the typed record every provider response is translated into.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.clock import from_iso8601
from data_sources.exceptions import DecodeError


ZERO = Decimal("0")


def _decimal_field(
    raw: dict[str, Any],
    field_name: str,
    source_name: Optional[str],
) -> Decimal:
    """Read a numeric field; null or absent decodes to zero."""
    value = raw.get(field_name)
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise DecodeError(
            message=f"Field {field_name!r} is not numeric: {value!r}",
            source_name=source_name,
            raw_data=raw,
            field_name=field_name,
        )
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise DecodeError(
            message=f"Field {field_name!r} is not numeric: {value!r}",
            source_name=source_name,
            raw_data=raw,
            field_name=field_name,
            original_error=e,
        ) from e
    if not number.is_finite():
        raise DecodeError(
            message=f"Field {field_name!r} is not a finite number: {value!r}",
            source_name=source_name,
            raw_data=raw,
            field_name=field_name,
        )
    return number


def _rank_field(
    raw: dict[str, Any],
    source_name: Optional[str],
) -> Optional[int]:
    value = raw.get("market_cap_rank")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise DecodeError(
            message=f"Field 'market_cap_rank' is not an integer: {value!r}",
            source_name=source_name,
            raw_data=raw,
            field_name="market_cap_rank",
            original_error=e,
        ) from e


@dataclass(frozen=True)
class ProviderRecord:
    """
    One market row translated from the provider's response.
    
    All providers MUST normalize their data to this format.
    No downstream module depends on provider-specific fields.
    """
    id: str
    symbol: str = ""
    name: str = ""
    image: str = ""
    current_price: Decimal = ZERO
    market_cap: Decimal = ZERO
    market_cap_rank: Optional[int] = None
    total_volume: Decimal = ZERO
    price_change_percentage_24h: Decimal = ZERO
    price_change_percentage_7d: Decimal = ZERO
    circulating_supply: Decimal = ZERO
    total_supply: Decimal = ZERO
    ath: Decimal = ZERO
    ath_change_percentage: Decimal = ZERO
    last_updated: Optional[datetime] = None
    
    @classmethod
    def from_payload(
        cls,
        raw: Any,
        source_name: Optional[str] = None,
    ) -> "ProviderRecord":
        """
        Translate one provider market row.
        
        Raises:
            DecodeError: If the row is not an object, has no id, or a
                numeric field cannot be read
        """
        if not isinstance(raw, dict):
            raise DecodeError(
                message=f"Market row is not an object: {type(raw).__name__}",
                source_name=source_name,
                raw_data=raw,
            )
        
        asset_id = raw.get("id")
        if not isinstance(asset_id, str) or not asset_id:
            raise DecodeError(
                message="Market row has no id",
                source_name=source_name,
                raw_data=raw,
                field_name="id",
            )
        
        last_updated = None
        if raw.get("last_updated"):
            try:
                last_updated = from_iso8601(str(raw["last_updated"]))
            except ValueError:
                last_updated = None
        
        return cls(
            id=asset_id,
            symbol=raw.get("symbol") or "",
            name=raw.get("name") or "",
            image=raw.get("image") or "",
            current_price=_decimal_field(raw, "current_price", source_name),
            market_cap=_decimal_field(raw, "market_cap", source_name),
            market_cap_rank=_rank_field(raw, source_name),
            total_volume=_decimal_field(raw, "total_volume", source_name),
            price_change_percentage_24h=_decimal_field(raw, "price_change_percentage_24h", source_name),
            price_change_percentage_7d=_decimal_field(
                raw, "price_change_percentage_7d_in_currency", source_name
            ),
            circulating_supply=_decimal_field(raw, "circulating_supply", source_name),
            total_supply=_decimal_field(raw, "total_supply", source_name),
            ath=_decimal_field(raw, "ath", source_name),
            ath_change_percentage=_decimal_field(raw, "ath_change_percentage", source_name),
            last_updated=last_updated,
        )
