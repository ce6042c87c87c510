"""
Step ledger for remote deployments.
Persists one record per submitted remote step so reruns can skip or resume work.
"""

from pathlib import Path
from typing import List, Optional

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import DeploymentDataError
from diamond_deployer.core.logging import get_logger
from diamond_deployer.domain.models.step import (
    StepLedgerDocument,
    StepRecord,
    StepStatus,
    utc_timestamp_ms,
)
from diamond_deployer.domain.repositories.deployment_repository import write_json_atomic

logger = get_logger(__name__)


class StepLedger:
    """File-backed ledger at ``{deployments}/{diamond}/deployments/defender/{id}.json``."""

    def __init__(
        self,
        diamond_name: str,
        deployment_id: str,
        deployments_path: Optional[str] = None,
        network: str = "",
    ):
        self.diamond_name = diamond_name
        self.deployment_id = deployment_id
        self.network = network
        base = Path(deployments_path or settings.DEPLOYMENTS_PATH)
        self.file_path = base / diamond_name / "deployments" / "defender" / f"{deployment_id}.json"

    def _load(self) -> StepLedgerDocument:
        if not self.file_path.exists():
            return StepLedgerDocument(
                diamond_name=self.diamond_name,
                network=self.network,
                deployment_id=self.deployment_id,
            )
        try:
            return StepLedgerDocument.model_validate_json(self.file_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise DeploymentDataError(
                f"Invalid step ledger: {self.file_path}",
                details={"path": str(self.file_path), "error": str(e)},
            ) from e

    def _save(self, document: StepLedgerDocument) -> None:
        write_json_atomic(self.file_path, document.model_dump(mode="json", by_alias=True))

    def get_step(self, step_name: str) -> Optional[StepRecord]:
        for step in self._load().steps:
            if step.step_name == step_name:
                return step
        return None

    def save_step(self, step: StepRecord) -> None:
        """Insert or replace the record with the same step name."""
        document = self._load()
        for index, existing in enumerate(document.steps):
            if existing.step_name == step.step_name:
                document.steps[index] = step
                break
        else:
            document.steps.append(step)
        self._save(document)

    def update_status(
        self,
        step_name: str,
        status: StepStatus,
        address: Optional[str] = None,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[StepRecord]:
        """
        Transition a recorded step and refresh its timestamp.

        Returns:
            Updated record, or None when the step was never recorded
        """
        document = self._load()
        for index, existing in enumerate(document.steps):
            if existing.step_name != step_name:
                continue

            update = {"status": status, "timestamp": utc_timestamp_ms()}
            if address:
                update["address"] = address
            if tx_hash:
                update["tx_hash"] = tx_hash
            if error:
                update["error"] = error
            updated = existing.model_copy(update=update)
            document.steps[index] = updated
            self._save(document)
            return updated

        logger.warning("Status update for unknown step", step_name=step_name, status=status.value)
        return None

    def list_steps(self) -> List[StepRecord]:
        return self._load().steps

    def is_executed(self, step_name: str) -> bool:
        step = self.get_step(step_name)
        return step is not None and step.status is StepStatus.EXECUTED
