"""
Models for diamond deployment state, desired-state configuration and the
function selector registry.
"""

from enum import Enum, IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
EMPTY_CALLDATA = "0x"
DEFAULT_FACET_PRIORITY = 1000
DIAMOND_CUT_FACET = "DiamondCutFacet"


class RegistryAction(str, Enum):
    """Action recorded against a selector in the registry."""

    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"
    DEPLOYED = "deployed"

    @property
    def is_live(self) -> bool:
        return self is not RegistryAction.REMOVE


class FacetCutAction(IntEnum):
    """On-chain IDiamondCut.FacetCutAction encoding."""

    ADD = 0
    REPLACE = 1
    REMOVE = 2

    @classmethod
    def from_registry_action(cls, action: RegistryAction) -> "FacetCutAction":
        if action is RegistryAction.DEPLOYED:
            raise ValueError("Deployed selectors are not part of a diamond cut")
        return cls[action.name]


# Selector registry


class RegistryEntry(BaseModel):
    """Current owner of one function selector."""

    facet_name: str = Field(..., description="Facet that owns the selector")
    priority: int = Field(..., description="Configured priority of the owning facet")
    address: str = Field(..., description="Facet address the selector dispatches to")
    action: RegistryAction = Field(..., description="Pending cut action")

    class Config:
        frozen = True


SelectorRegistry = Dict[str, RegistryEntry]


class FacetDeploymentRecord(BaseModel):
    """Freshly deployed facet waiting to be cut into the diamond."""

    address: str = Field(..., description="Deployed facet address")
    tx_hash: str = Field("", description="Deployment transaction hash or remote reference")
    version: int = Field(..., description="Facet version deployed")
    selectors: List[str] = Field(default_factory=list, description="Function selectors exposed by the facet")
    deploy_include: List[str] = Field(default_factory=list, description="Selectors forced onto this facet")
    deploy_exclude: List[str] = Field(default_factory=list, description="Selectors withheld from this facet")
    init_function: Optional[str] = Field(None, description="Initializer for the current mode")
    priority: int = Field(DEFAULT_FACET_PRIORITY, description="Configured facet priority")


# Persisted deployment state


class DeployedFacet(BaseModel):
    """Live facet as recorded in the deployment-state file."""

    address: Optional[str] = Field(None, description="Facet address")
    tx_hash: Optional[str] = Field(None, description="Deployment transaction hash")
    version: Optional[int] = Field(None, description="Deployed facet version")
    func_selectors: List[str] = Field(default_factory=list, alias="funcSelectors", description="Live selectors")
    verified: Optional[bool] = Field(None, description="Source verification status")

    class Config:
        populate_by_name = True


class DeployedDiamondData(BaseModel):
    """Durable deployment record for one (diamond, network, chain id)."""

    diamond_address: Optional[str] = Field("", alias="DiamondAddress", description="Diamond proxy address")
    deployer_address: Optional[str] = Field("", alias="DeployerAddress", description="Deployer account")
    deployed_facets: Dict[str, DeployedFacet] = Field(
        default_factory=dict, alias="DeployedFacets", description="Live facets by name"
    )
    external_libraries: Dict[str, str] = Field(
        default_factory=dict, alias="ExternalLibraries", description="Linked libraries"
    )
    protocol_version: Optional[int] = Field(0, alias="protocolVersion", description="Deployed protocol version")

    class Config:
        populate_by_name = True

    @property
    def has_address(self) -> bool:
        return bool(self.diamond_address)

    def facet_version(self, facet_name: str) -> int:
        """Recorded version of a facet, -1 if it was never deployed."""
        facet = self.deployed_facets.get(facet_name)
        if facet is None or facet.version is None:
            return -1
        return facet.version


# Desired-state configuration


class VersionSpec(BaseModel):
    """Per-version facet deployment options."""

    deploy_init: Optional[str] = Field(None, alias="deployInit")
    upgrade_init: Optional[str] = Field(None, alias="upgradeInit")
    callbacks: List[str] = Field(default_factory=list)
    deploy_include: List[str] = Field(default_factory=list, alias="deployInclude")
    deploy_exclude: List[str] = Field(default_factory=list, alias="deployExclude")
    from_versions: List[int] = Field(default_factory=list, alias="fromVersions")

    class Config:
        populate_by_name = True

    def init_function(self, new_deployment: bool) -> Optional[str]:
        return self.deploy_init if new_deployment else self.upgrade_init


class FacetConfig(BaseModel):
    """Desired state of one facet."""

    priority: int = Field(DEFAULT_FACET_PRIORITY)
    libraries: List[str] = Field(default_factory=list)
    versions: Dict[int, VersionSpec] = Field(default_factory=dict)

    @property
    def target_version(self) -> int:
        return max(self.versions) if self.versions else 0

    def version_spec(self, version: int) -> VersionSpec:
        return self.versions.get(version) or VersionSpec()


class DeployConfig(BaseModel):
    """Desired-state configuration for a diamond."""

    protocol_version: int = Field(0, alias="protocolVersion")
    protocol_init_facet: Optional[str] = Field(None, alias="protocolInitFacet")
    facets: Dict[str, FacetConfig] = Field(default_factory=dict)

    class Config:
        populate_by_name = True

    def facet_priority(self, facet_name: str) -> int:
        facet = self.facets.get(facet_name)
        return facet.priority if facet else DEFAULT_FACET_PRIORITY

    def facets_by_priority(self) -> List[str]:
        """Facet names ordered by ascending priority value."""
        return sorted(self.facets, key=lambda name: self.facets[name].priority)


# Diamond cut


class FacetCut(BaseModel):
    """One IDiamondCut.FacetCut record."""

    facet_address: str = Field(..., description="Target facet address")
    action: RegistryAction = Field(..., description="Add, Replace or Remove")
    function_selectors: List[str] = Field(..., description="Selectors affected")
    facet_name: str = Field(..., description="Facet name")

    def to_abi(self) -> Dict[str, object]:
        return {
            "facetAddress": self.facet_address,
            "action": int(FacetCutAction.from_registry_action(self.action)),
            "functionSelectors": list(self.function_selectors),
        }


class CutPlan(BaseModel):
    """Everything needed to submit one atomic diamondCut."""

    cuts: List[FacetCut] = Field(default_factory=list)
    init_address: str = Field(NULL_ADDRESS)
    init_calldata: str = Field(EMPTY_CALLDATA)

    @property
    def is_empty(self) -> bool:
        return not self.cuts


class CutOutcome(BaseModel):
    """Result of submitting a cut plan."""

    confirmed: bool = Field(True, description="Cut executed on chain")
    tx_hash: Optional[str] = Field(None, description="Cut transaction hash or proposal id")
    cut_count: int = Field(0, description="Number of cut records submitted")


class DeploymentMode(str, Enum):
    DEPLOY = "deploy"
    UPGRADE = "upgrade"


class DeploymentStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"


class DeploymentResult(BaseModel):
    """Summary of one orchestrator run."""

    deployment_id: str
    mode: DeploymentMode
    status: DeploymentStatus = DeploymentStatus.COMPLETED
    diamond_address: Optional[str] = None
    deployed_facets: List[str] = Field(default_factory=list, description="Facets deployed in this run")
    cut_count: int = 0
    cut_tx_hash: Optional[str] = None


class ContractDeployment(BaseModel):
    """Address and transaction of a confirmed contract deployment."""

    address: str
    tx_hash: str = ""
