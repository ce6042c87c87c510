"""
Deployment Service Layer.
Wires repositories, strategies and the orchestrator for the HTTP surface.
"""

from typing import Dict, List, Optional, Tuple

from diamond_deployer.api.dto.deployment_dto import DeployRequestDTO, StrategyType
from diamond_deployer.core.config import settings
from diamond_deployer.core.logging import get_logger
from diamond_deployer.deployment.callbacks import FacetCallbackManager
from diamond_deployer.deployment.orchestrator import DeploymentOrchestrator
from diamond_deployer.deployment.strategies import (
    DeploymentStrategy,
    LocalDeploymentStrategy,
    RemoteDeploymentStrategy,
)
from diamond_deployer.domain.diamond import Diamond
from diamond_deployer.domain.models.deployment import DeploymentResult
from diamond_deployer.domain.models.step import StepRecord
from diamond_deployer.domain.repositories.deployment_repository import FileDeploymentRepository
from diamond_deployer.domain.repositories.step_ledger import StepLedger
from diamond_deployer.infrastructure.blockchain.artifacts import HardhatArtifactSource
from diamond_deployer.infrastructure.blockchain.contract_client import Web3ExecutionService
from diamond_deployer.infrastructure.defender.defender_client import DefenderClient

logger = get_logger(__name__)


class DeploymentService:
    """Service class for diamond deployments."""

    def _repository(
        self,
        diamond_name: str,
        network_name: Optional[str] = None,
        chain_id: Optional[int] = None,
        write_deployed_data: Optional[bool] = None,
    ) -> FileDeploymentRepository:
        return FileDeploymentRepository(
            diamond_name,
            network_name=network_name,
            chain_id=chain_id,
            write_deployed_diamond_data=write_deployed_data,
        )

    def build_strategy(self, strategy_type: StrategyType, network_name: str, chain_id: int) -> DeploymentStrategy:
        """Create the execution backend for a run."""
        artifact_source = HardhatArtifactSource()
        if strategy_type is StrategyType.REMOTE:
            return RemoteDeploymentStrategy(artifact_source, DefenderClient(network=network_name))
        return LocalDeploymentStrategy(artifact_source, Web3ExecutionService(artifact_source, chain_id=chain_id))

    def get_deployment(
        self,
        diamond_name: str,
        network_name: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> Tuple[str, Optional[Dict]]:
        """
        Get the persisted deployment record.

        Returns:
            Tuple of (deployment id, record in file format or None if never deployed)
        """
        repository = self._repository(diamond_name, network_name, chain_id)
        if not repository.deployed_data_file.exists():
            return repository.get_deployment_id(), None

        data = repository.load_deployed_diamond_data()
        return repository.get_deployment_id(), data.model_dump(mode="json", by_alias=True, exclude_none=True)

    def list_steps(
        self,
        diamond_name: str,
        network_name: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> Tuple[str, List[StepRecord]]:
        """Get the remote step ledger of a deployment."""
        repository = self._repository(diamond_name, network_name, chain_id)
        deployment_id = repository.get_deployment_id()
        ledger = StepLedger(diamond_name, deployment_id, network=repository.network_name)
        return deployment_id, ledger.list_steps()

    async def deploy(self, diamond_name: str, request: DeployRequestDTO) -> DeploymentResult:
        """
        Deploy or upgrade a diamond.

        Steps:
        1. Load config and deployment record
        2. Build the requested execution backend
        3. Run the five-phase pipeline
        """
        repository = self._repository(
            diamond_name,
            request.network_name,
            request.chain_id,
            request.write_deployed_data,
        )
        diamond = Diamond(repository)
        strategy = self.build_strategy(request.strategy, repository.network_name, repository.chain_id)

        logger.info(
            f"Running {request.strategy.value} deployment for {diamond.deployment_id}",
            deployments_path=settings.DEPLOYMENTS_PATH,
        )
        orchestrator = DeploymentOrchestrator(
            diamond,
            strategy,
            callback_runner=FacetCallbackManager.for_diamond(diamond_name),
        )
        return await orchestrator.run()


# Global service instance
deployment_service = DeploymentService()
