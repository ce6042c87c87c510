"""
Deployment repositories.
Load and persist deployment state and desired-state configuration per
(diamond, network, chain id).
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import DeploymentConfigError, DeploymentDataError
from diamond_deployer.core.logging import get_logger
from diamond_deployer.domain.models.deployment import DeployConfig, DeployedDiamondData

logger = get_logger(__name__)


def build_deployment_id(diamond_name: str, network_name: str, chain_id: int) -> str:
    """Stable id namespacing every persisted record of a deployment."""
    return f"{diamond_name}-{network_name}-{chain_id}".lower()


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write JSON through a temp file so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class DeploymentRepository(ABC):
    """Storage contract for one diamond deployment."""

    def __init__(self, diamond_name: str, network_name: str, chain_id: int):
        self.diamond_name = diamond_name
        self.network_name = network_name
        self.chain_id = chain_id

    def get_deployment_id(self) -> str:
        return build_deployment_id(self.diamond_name, self.network_name, self.chain_id)

    @abstractmethod
    def load_deployed_diamond_data(self) -> DeployedDiamondData:
        """Persisted deployment record, or an empty skeleton."""

    @abstractmethod
    def save_deployed_diamond_data(self, data: DeployedDiamondData) -> None:
        """Durably persist the deployment record."""

    @abstractmethod
    def load_deploy_config(self) -> DeployConfig:
        """Desired-state configuration."""


class FileDeploymentRepository(DeploymentRepository):
    """JSON file storage under ``{deployments_path}/{diamond}/``."""

    def __init__(
        self,
        diamond_name: str,
        network_name: Optional[str] = None,
        chain_id: Optional[int] = None,
        deployments_path: Optional[str] = None,
        write_deployed_diamond_data: Optional[bool] = None,
        config_file_path: Optional[str] = None,
    ):
        super().__init__(
            diamond_name,
            network_name or settings.NETWORK_NAME,
            chain_id if chain_id is not None else settings.CHAIN_ID,
        )
        self.deployments_path = Path(deployments_path or settings.DEPLOYMENTS_PATH)
        self.write_deployed_diamond_data = (
            settings.WRITE_DEPLOYED_DIAMOND_DATA
            if write_deployed_diamond_data is None
            else write_deployed_diamond_data
        )
        self.diamond_dir = self.deployments_path / diamond_name
        self.deployed_data_file = self.diamond_dir / "deployments" / f"{self.get_deployment_id()}.json"
        self.config_file = (
            Path(config_file_path)
            if config_file_path
            else self.diamond_dir / f"{diamond_name.lower()}.config.json"
        )

    def load_deployed_diamond_data(self) -> DeployedDiamondData:
        if not self.deployed_data_file.exists():
            logger.info(
                "No deployment record found, starting from empty state",
                path=str(self.deployed_data_file),
            )
            return DeployedDiamondData()

        try:
            raw = json.loads(self.deployed_data_file.read_text(encoding="utf-8"))
            return DeployedDiamondData.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise DeploymentDataError(
                f"Invalid deployment record: {self.deployed_data_file}",
                details={"path": str(self.deployed_data_file), "error": str(e)},
            ) from e

    def save_deployed_diamond_data(self, data: DeployedDiamondData) -> None:
        if not self.write_deployed_diamond_data:
            logger.info(
                "Deployment record writes disabled, skipping save",
                deployment_id=self.get_deployment_id(),
            )
            return

        write_json_atomic(
            self.deployed_data_file,
            data.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        logger.info(
            "Deployment record saved",
            deployment_id=self.get_deployment_id(),
            path=str(self.deployed_data_file),
        )

    def load_deploy_config(self) -> DeployConfig:
        if not self.config_file.exists():
            raise DeploymentConfigError(
                f"Deployment config not found: {self.config_file}",
                details={"path": str(self.config_file)},
            )

        try:
            raw = json.loads(self.config_file.read_text(encoding="utf-8"))
            return DeployConfig.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise DeploymentConfigError(
                f"Invalid deployment config: {self.config_file}",
                details={"path": str(self.config_file), "error": str(e)},
            ) from e


class InMemoryDeploymentRepository(DeploymentRepository):
    """Process-local storage for dry runs and tests."""

    def __init__(
        self,
        diamond_name: str,
        deploy_config: DeployConfig,
        deployed_data: Optional[DeployedDiamondData] = None,
        network_name: str = "hardhat",
        chain_id: int = 31337,
    ):
        super().__init__(diamond_name, network_name, chain_id)
        self.deploy_config = deploy_config
        self.deployed_data = deployed_data or DeployedDiamondData()
        self.save_count = 0

    def load_deployed_diamond_data(self) -> DeployedDiamondData:
        return self.deployed_data.model_copy(deep=True)

    def save_deployed_diamond_data(self, data: DeployedDiamondData) -> None:
        self.deployed_data = data.model_copy(deep=True)
        self.save_count += 1

    def load_deploy_config(self) -> DeployConfig:
        return self.deploy_config
