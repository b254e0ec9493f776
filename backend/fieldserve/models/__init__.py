"""Database models."""

from fieldserve.models.customer import Customer
from fieldserve.models.request_log import RequestLog
from fieldserve.models.service_request import ServiceRequest
from fieldserve.models.sync_checkpoint import SyncCheckpoint
from fieldserve.models.user import User
from fieldserve.models.worker import VerifiedWorker, Worker

__all__ = [
    "Customer",
    "RequestLog",
    "ServiceRequest",
    "SyncCheckpoint",
    "User",
    "VerifiedWorker",
    "Worker",
]
