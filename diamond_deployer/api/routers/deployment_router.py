"""
Deployment Router.
Exposes deployment records, the remote step ledger and deployment runs.
"""

from typing import Optional

from fastapi import APIRouter, Query

from diamond_deployer.api.dto.deployment_dto import (
    DeployedDiamondResponseDTO,
    DeployRequestDTO,
    DeployResponseDTO,
    StepListResponseDTO,
)
from diamond_deployer.api.services.deployment_service import deployment_service
from diamond_deployer.core.exceptions import (
    DiamondDeployException,
    create_http_exception,
    get_exception_status_code,
)
from diamond_deployer.core.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.get("/{diamond_name}/deployment", response_model=DeployedDiamondResponseDTO)
async def get_deployment(
    diamond_name: str,
    network: Optional[str] = Query(None, description="Network name"),
    chain_id: Optional[int] = Query(None, description="Chain id"),
) -> DeployedDiamondResponseDTO:
    """
    Get the persisted deployment record of a diamond.

    Args:
        diamond_name: Diamond name
        network: Optional network override
        chain_id: Optional chain id override

    Returns:
        DeployedDiamondResponseDTO with the record in file format
    """
    try:
        deployment_id, data = deployment_service.get_deployment(diamond_name, network, chain_id)
    except DiamondDeployException as e:
        raise create_http_exception(e, get_exception_status_code(e))

    if data is None:
        return DeployedDiamondResponseDTO(
            success=False,
            message="No deployment record found",
            deployment_id=deployment_id,
            data=None,
        )
    return DeployedDiamondResponseDTO(
        success=True,
        message="Deployment record retrieved",
        deployment_id=deployment_id,
        data=data,
    )


@router.get("/{diamond_name}/steps", response_model=StepListResponseDTO)
async def get_steps(
    diamond_name: str,
    network: Optional[str] = Query(None, description="Network name"),
    chain_id: Optional[int] = Query(None, description="Chain id"),
) -> StepListResponseDTO:
    """Get the remote step ledger of a diamond deployment."""
    try:
        deployment_id, steps = deployment_service.list_steps(diamond_name, network, chain_id)
    except DiamondDeployException as e:
        raise create_http_exception(e, get_exception_status_code(e))

    return StepListResponseDTO(
        success=True,
        message=f"{len(steps)} step(s) recorded",
        deployment_id=deployment_id,
        data=steps,
    )


@router.post("/{diamond_name}/deploy", response_model=DeployResponseDTO)
async def deploy_diamond(diamond_name: str, request: DeployRequestDTO) -> DeployResponseDTO:
    """
    Deploy or upgrade a diamond.

    This endpoint:
    1. Deploys the proxy and cut facet if the diamond has no address yet
    2. Deploys facets whose configured version is newer than the deployed one
    3. Reconciles selectors and submits one diamond cut
    4. Runs post-deploy callbacks

    Args:
        diamond_name: Diamond name
        request: Strategy and network options

    Returns:
        DeployResponseDTO with the run summary
    """
    logger.info(f"Deploy requested for {diamond_name} using {request.strategy.value} strategy")

    try:
        result = await deployment_service.deploy(diamond_name, request)
    except DiamondDeployException as e:
        logger.error(f"Deployment of {diamond_name} failed: {e.message}")
        raise create_http_exception(e, get_exception_status_code(e))

    return DeployResponseDTO(
        success=True,
        message=f"Deployment {result.status.value}",
        data=result,
    )
