"""Ingestion data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

UNKNOWN = "unknown"


class Stage(str, Enum):
    LEAD = "lead"
    OPPORTUNITY = "opportunity"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


def to_decimal(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    if isinstance(value, bool):
        raise ValueError(f"Invalid decimal value: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal value: {value!r}") from exc


def to_int(value: Any) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"Invalid integer value: {value!r}")
    return int(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True, slots=True)
class UTMKey:
    campaign: str
    source: str
    medium: str

    def __str__(self) -> str:
        return f"{self.campaign}|{self.source}|{self.medium}"


@dataclass(slots=True)
class RawAdRecord:
    date: str
    campaign_id: str
    channel: str
    clicks: int
    impressions: int
    cost: Decimal
    utm_campaign: str = ""
    utm_source: str = ""
    utm_medium: str = ""

    @classmethod
    def from_payload(cls, item: Mapping[str, Any]) -> "RawAdRecord":
        return cls(
            date=_text(item.get("date")),
            campaign_id=_text(item.get("campaign_id")),
            channel=_text(item.get("channel")),
            clicks=to_int(item.get("clicks")),
            impressions=to_int(item.get("impressions")),
            cost=to_decimal(item.get("cost")),
            utm_campaign=_text(item.get("utm_campaign")),
            utm_source=_text(item.get("utm_source")),
            utm_medium=_text(item.get("utm_medium")),
        )


@dataclass(slots=True)
class RawOpportunity:
    opportunity_id: str
    contact_email: str
    stage: str
    amount: Decimal
    created_at: str
    utm_campaign: str = ""
    utm_source: str = ""
    utm_medium: str = ""

    @classmethod
    def from_payload(cls, item: Mapping[str, Any]) -> "RawOpportunity":
        return cls(
            opportunity_id=_text(item.get("opportunity_id")),
            contact_email=_text(item.get("contact_email")),
            stage=_text(item.get("stage")),
            amount=to_decimal(item.get("amount")),
            created_at=_text(item.get("created_at")),
            utm_campaign=_text(item.get("utm_campaign")),
            utm_source=_text(item.get("utm_source")),
            utm_medium=_text(item.get("utm_medium")),
        )


@dataclass(frozen=True, slots=True)
class NormalizedAdRecord:
    date: datetime
    campaign_id: str
    channel: str
    clicks: int
    impressions: int
    cost: Decimal
    utm_campaign: str
    utm_source: str
    utm_medium: str
    processed_at: datetime

    @property
    def utm_key(self) -> UTMKey:
        return UTMKey(self.utm_campaign, self.utm_source, self.utm_medium)


@dataclass(frozen=True, slots=True)
class NormalizedOpportunity:
    opportunity_id: str
    contact_email: str
    stage: str
    amount: Decimal
    created_at: datetime
    utm_campaign: str
    utm_source: str
    utm_medium: str
    processed_at: datetime

    @property
    def utm_key(self) -> UTMKey:
        return UTMKey(self.utm_campaign, self.utm_source, self.utm_medium)
