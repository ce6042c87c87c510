"""
Step ledger models for the remote deployment strategy.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    """Ledger status of one remote step."""

    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"


def utc_timestamp_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class StepRecord(BaseModel):
    """One submitted remote action (deployment or proposal)."""

    step_name: str = Field(..., alias="stepName", description="Deterministic step name")
    external_ref: Optional[str] = Field(
        None, alias="externalRef", description="Remote deployment or proposal id"
    )
    status: StepStatus = Field(StepStatus.PENDING, description="Step status")
    description: str = Field("", description="Human readable description")
    timestamp: int = Field(default_factory=utc_timestamp_ms, description="Last update (unix milliseconds)")
    address: Optional[str] = Field(None, description="Contract address reported by the remote service")
    tx_hash: Optional[str] = Field(None, alias="txHash", description="Transaction hash reported by the remote service")
    error: Optional[str] = Field(None, description="Failure reason")

    class Config:
        populate_by_name = True


class StepLedgerDocument(BaseModel):
    """On-disk ledger document."""

    diamond_name: str = Field(..., alias="diamondName")
    network: str = Field("")
    deployment_id: str = Field(..., alias="deploymentId")
    steps: List[StepRecord] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class RemoteStatusKind(str, Enum):
    """Normalized status reported by the remote service."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


class RemoteStatus(BaseModel):
    """Status of a remote deployment or proposal."""

    status: RemoteStatusKind
    address: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)
