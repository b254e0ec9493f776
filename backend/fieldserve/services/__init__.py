"""Dispatch services and the stores behind them."""

from fieldserve.services.dispatcher import RequestDispatcher
from fieldserve.services.dual_store import DualStore
from fieldserve.services.history import HistoryReader
from fieldserve.services.identity import IdentityResolver
from fieldserve.services.lifecycle import LifecycleStateMachine
from fieldserve.services.matcher import AvailabilityMatcher
from fieldserve.services.mirror import MirrorStore
from fieldserve.services.reconciliation import ReconciliationService
from fieldserve.services.sheets_client import SheetsClient

__all__ = [
    "AvailabilityMatcher",
    "DualStore",
    "HistoryReader",
    "IdentityResolver",
    "LifecycleStateMachine",
    "MirrorStore",
    "ReconciliationService",
    "RequestDispatcher",
    "SheetsClient",
]
