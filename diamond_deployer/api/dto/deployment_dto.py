from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from diamond_deployer.domain.models.deployment import DeploymentResult
from diamond_deployer.domain.models.step import StepRecord


class StrategyType(str, Enum):

    LOCAL = "local"
    REMOTE = "remote"


# Request DTOs
class DeployRequestDTO(BaseModel):
    """Request DTO for running a deployment or upgrade."""

    strategy: StrategyType = Field(StrategyType.LOCAL, description="Execution backend")
    network_name: Optional[str] = Field(None, description="Network name (defaults to NETWORK_NAME)")
    chain_id: Optional[int] = Field(None, description="Chain id (defaults to CHAIN_ID)")
    write_deployed_data: Optional[bool] = Field(
        None, description="Persist the deployment record (defaults to WRITE_DEPLOYED_DIAMOND_DATA)"
    )


# Response DTOs
class DeployedDiamondResponseDTO(BaseModel):
    """Response DTO for a persisted deployment record."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    deployment_id: str = Field(..., description="Deployment id (diamond-network-chainId)")
    data: Optional[Dict[str, Any]] = Field(None, description="Deployment record in file format")


class StepListResponseDTO(BaseModel):
    """Response DTO for the remote step ledger."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    deployment_id: str = Field(..., description="Deployment id")
    data: List[StepRecord] = Field(..., description="Recorded steps")


class DeployResponseDTO(BaseModel):
    """Response DTO for a deployment run."""

    success: bool = Field(..., description="Operation success status")
    message: str = Field(..., description="Response message")
    data: Optional[DeploymentResult] = Field(None, description="Run summary")
