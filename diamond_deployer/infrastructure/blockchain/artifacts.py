"""
Hardhat artifact source.
Resolves compiled contract artifacts (ABI, bytecode, source name) by contract name.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import ArtifactNotFoundError
from diamond_deployer.core.logging import get_logger
from diamond_deployer.infrastructure.blockchain.selectors import selectors_from_abi

logger = get_logger(__name__)


class HardhatArtifactSource:
    """Reads ``{artifacts}/**/{Contract}.sol/{Contract}.json`` files."""

    def __init__(
        self,
        artifacts_path: Optional[str] = None,
        contract_mapping: Optional[Dict[str, str]] = None,
    ):
        self.artifacts_path = Path(artifacts_path or settings.ARTIFACTS_PATH)
        self.contract_mapping = contract_mapping or {}
        self._cache: Dict[str, Dict[str, Any]] = {}

    def contract_name(self, name: str) -> str:
        """Map a facet or diamond name onto its compiled contract name."""
        return self.contract_mapping.get(name, name)

    def _find_artifact_file(self, contract_name: str) -> Optional[Path]:
        matches = sorted(
            path
            for path in self.artifacts_path.rglob(f"{contract_name}.json")
            if "build-info" not in path.parts
        )
        if len(matches) > 1:
            logger.warning(
                "Multiple artifacts found, using the first",
                contract_name=contract_name,
                paths=[str(path) for path in matches],
            )
        return matches[0] if matches else None

    def get_artifact(self, name: str) -> Dict[str, Any]:
        contract_name = self.contract_name(name)
        if contract_name in self._cache:
            return self._cache[contract_name]

        artifact_file = self._find_artifact_file(contract_name)
        if artifact_file is None:
            raise ArtifactNotFoundError(
                contract_name, details={"artifacts_path": str(self.artifacts_path)}
            )

        with open(artifact_file, "r", encoding="utf-8") as f:
            artifact = json.load(f)

        self._cache[contract_name] = artifact
        return artifact

    def get_selectors(self, name: str) -> List[str]:
        return selectors_from_abi(self.get_artifact(name).get("abi", []))
