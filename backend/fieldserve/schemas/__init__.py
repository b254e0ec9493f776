"""Pydantic schemas for API request/response validation."""

from fieldserve.schemas.customer import CustomerOut, CustomerProfileIn
from fieldserve.schemas.service_request import (
    AvailableRequestOut,
    HistoryEntry,
    RequestCreate,
    RequestDetail,
    TransitionIn,
)
from fieldserve.schemas.sync import SyncResponse, SyncResults

__all__ = [
    "AvailableRequestOut",
    "CustomerOut",
    "CustomerProfileIn",
    "HistoryEntry",
    "RequestCreate",
    "RequestDetail",
    "SyncResponse",
    "SyncResults",
    "TransitionIn",
]
