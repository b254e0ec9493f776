"""Schemas for reconciliation results (snake_case keys on the wire)."""

from pydantic import BaseModel, Field


class UserSyncCounts(BaseModel):
    processed: int = 0
    synced: int = 0
    errors: int = 0


class WorkerSyncCounts(BaseModel):
    processed: int = 0
    synced: int = 0
    verified_synced: int = 0
    errors: int = 0


class SyncResults(BaseModel):
    users: UserSyncCounts = Field(default_factory=UserSyncCounts)
    workers: WorkerSyncCounts = Field(default_factory=WorkerSyncCounts)


class SyncResponse(BaseModel):
    success: bool = True
    results: SyncResults
