"""
Diamond aggregate.
Owns the deployment record, desired-state config, selector registry and the
facets deployed during the current run.
"""

from typing import Dict, List, Optional, Tuple

from diamond_deployer.core.logging import LoggerMixin
from diamond_deployer.domain.models.deployment import (
    DeployConfig,
    DeployedDiamondData,
    DeployedFacet,
    FacetDeploymentRecord,
    RegistryAction,
    RegistryEntry,
    SelectorRegistry,
)
from diamond_deployer.domain.repositories.deployment_repository import DeploymentRepository


class Diamond(LoggerMixin):
    """One diamond proxy on one network."""

    def __init__(self, repository: DeploymentRepository):
        self.repository = repository
        self.diamond_name = repository.diamond_name
        self.network_name = repository.network_name
        self.chain_id = repository.chain_id
        self.deployment_id = repository.get_deployment_id()

        self.deploy_config: DeployConfig = repository.load_deploy_config()
        self.deployed_data: DeployedDiamondData = repository.load_deployed_diamond_data()

        self.registry: SelectorRegistry = {}
        self.candidates: Dict[str, FacetDeploymentRecord] = {}
        self.initializer_registry: Dict[str, str] = {}
        self._load_registry()

    def _load_registry(self) -> None:
        registry: Dict[str, RegistryEntry] = {}
        for facet_name, facet in self.deployed_data.deployed_facets.items():
            for selector in facet.func_selectors:
                registry[selector] = RegistryEntry(
                    facet_name=facet_name,
                    priority=self.deploy_config.facet_priority(facet_name),
                    address=facet.address or "",
                    action=RegistryAction.DEPLOYED,
                )
        self.registry = registry

    @property
    def has_address(self) -> bool:
        return self.deployed_data.has_address

    @property
    def diamond_address(self) -> Optional[str]:
        return self.deployed_data.diamond_address or None

    def set_diamond_address(self, address: str, deployer_address: Optional[str] = None) -> None:
        update = {"diamond_address": address}
        if deployer_address:
            update["deployer_address"] = deployer_address
        self.deployed_data = self.deployed_data.model_copy(update=update)

    def record_deployed_facet(self, facet_name: str, facet: DeployedFacet) -> None:
        """Record a facet that is live as soon as it is deployed (the cut facet)."""
        facets = dict(self.deployed_data.deployed_facets)
        facets[facet_name] = facet
        self.deployed_data = self.deployed_data.model_copy(update={"deployed_facets": facets})
        self.set_registry_entries(facet_name, facet, RegistryAction.DEPLOYED)

    def set_registry_entries(self, facet_name: str, facet: DeployedFacet, action: RegistryAction) -> None:
        priority = self.deploy_config.facet_priority(facet_name)
        registry = dict(self.registry)
        for selector in facet.func_selectors:
            registry[selector] = RegistryEntry(
                facet_name=facet_name,
                priority=priority,
                address=facet.address or "",
                action=action,
            )
        self.registry = registry

    def add_candidate(self, facet_name: str, record: FacetDeploymentRecord) -> None:
        self.candidates[facet_name] = record

    def pending_initializers(self) -> List[Tuple[str, str, int]]:
        """(facet name, init function, deployed version) for this run's facets."""
        return [
            (facet_name, init_function, self.candidates[facet_name].version)
            for facet_name, init_function in self.initializer_registry.items()
            if facet_name in self.candidates
        ]

    def register_initializer(self, facet_name: str, init_function: str) -> None:
        self.initializer_registry[facet_name] = init_function

    def update_registry(self, registry: SelectorRegistry) -> None:
        self.registry = dict(registry)

    def commit(self, data: DeployedDiamondData) -> None:
        """
        Persist a rebuilt deployment record and start over from it.

        The registry is replayed from the saved record and candidates are
        cleared, so a later run on this instance sees only committed state.
        """
        self.deployed_data = data
        self.repository.save_deployed_diamond_data(data)
        self.candidates = {}
        self.initializer_registry = {}
        self._load_registry()
        self.logger.info(
            "Deployment record committed",
            deployment_id=self.deployment_id,
            facet_count=len(data.deployed_facets),
            protocol_version=data.protocol_version,
        )
