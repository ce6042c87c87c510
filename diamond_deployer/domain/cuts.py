"""
Diamond cut computation and validation.

Turns a reconciled selector registry into the cut records, initializer target
and calldata for one atomic ``diamondCut`` call, and rebuilds the persisted
deployment record once that cut is confirmed.
"""

from typing import Dict, List, Mapping, Optional, Tuple

from eth_utils import keccak

from diamond_deployer.core.exceptions import MissingInitializerError, OrphanedSelectorsError
from diamond_deployer.core.logging import get_logger
from diamond_deployer.domain.models.deployment import (
    EMPTY_CALLDATA,
    NULL_ADDRESS,
    CutPlan,
    DeployConfig,
    DeployedDiamondData,
    DeployedFacet,
    FacetCut,
    FacetDeploymentRecord,
    RegistryAction,
    SelectorRegistry,
)
from diamond_deployer.infrastructure.blockchain.selectors import (
    encode_diamond_cut_calldata,
    encode_init_calldata,
)

logger = get_logger(__name__)


def derive_facet_cuts(registry: SelectorRegistry) -> List[FacetCut]:
    """One cut record per selector whose action is not ``deployed``."""
    return [
        FacetCut(
            facet_address=entry.address,
            action=entry.action,
            function_selectors=[selector],
            facet_name=entry.facet_name,
        )
        for selector, entry in registry.items()
        if entry.action is not RegistryAction.DEPLOYED
    ]


def group_facet_cuts(cuts: List[FacetCut]) -> List[FacetCut]:
    """Batch records sharing (address, action, facet) in first-seen order."""
    grouped: Dict[Tuple[str, RegistryAction, str], FacetCut] = {}
    for cut in cuts:
        key = (cut.facet_address.lower(), cut.action, cut.facet_name)
        if key in grouped:
            grouped[key].function_selectors.extend(cut.function_selectors)
        else:
            grouped[key] = cut.model_copy(update={"function_selectors": list(cut.function_selectors)})
    return list(grouped.values())


def validate_no_orphaned_selectors(cuts: List[FacetCut]) -> None:
    """
    Ensure no facet name is bound to two live addresses.

    Raises:
        OrphanedSelectorsError: Two live records share a facet name but not an address
    """
    live_addresses: Dict[str, str] = {}
    for cut in cuts:
        if not cut.action.is_live:
            continue
        seen = live_addresses.setdefault(cut.facet_name, cut.facet_address)
        if seen.lower() != cut.facet_address.lower():
            raise OrphanedSelectorsError(
                cut.facet_name,
                cut.facet_address,
                details={
                    "facet_name": cut.facet_name,
                    "addresses": [seen, cut.facet_address],
                },
            )


def resolve_initializer(
    config: DeployConfig,
    candidates: Mapping[str, FacetDeploymentRecord],
    new_deployment: bool,
) -> Tuple[str, str]:
    """
    Resolve the protocol initializer for the current mode.

    Args:
        config: Desired-state configuration
        candidates: Facets deployed in this run
        new_deployment: True on the first deployment of the diamond

    Returns:
        Tuple of (initializer address, calldata); null address and ``0x`` when
        no initializer applies
    """
    facet_name = config.protocol_init_facet
    if not facet_name:
        return NULL_ADDRESS, EMPTY_CALLDATA

    facet_config = config.facets.get(facet_name)
    if facet_config is None:
        raise MissingInitializerError(
            facet_name, details={"reason": "protocol init facet is not configured"}
        )

    init_function = facet_config.version_spec(config.protocol_version).init_function(new_deployment)
    if not init_function:
        return NULL_ADDRESS, EMPTY_CALLDATA

    candidate = candidates.get(facet_name)
    if candidate is None:
        logger.warning(
            "Protocol init facet was not deployed in this run, skipping initializer",
            facet_name=facet_name,
            init_function=init_function,
        )
        return NULL_ADDRESS, EMPTY_CALLDATA
    if not candidate.address:
        raise MissingInitializerError(
            facet_name, details={"reason": "protocol init facet has no deployed address"}
        )

    return candidate.address, encode_init_calldata(init_function)


def build_cut_plan(
    registry: SelectorRegistry,
    config: DeployConfig,
    candidates: Mapping[str, FacetDeploymentRecord],
    new_deployment: bool,
) -> CutPlan:
    """Validated, batched cut plan for the reconciled registry."""
    cuts = derive_facet_cuts(registry)
    validate_no_orphaned_selectors(cuts)
    if not cuts:
        return CutPlan()

    init_address, init_calldata = resolve_initializer(config, candidates, new_deployment)
    return CutPlan(
        cuts=group_facet_cuts(cuts),
        init_address=init_address,
        init_calldata=init_calldata,
    )


def cut_plan_digest(plan: CutPlan, length: int = 8) -> str:
    """Stable short hash of the encoded diamondCut calldata."""
    calldata = encode_diamond_cut_calldata(
        [cut.to_abi() for cut in plan.cuts], plan.init_address, plan.init_calldata
    )
    return keccak(hexstr=calldata).hex()[:length]


def rebuild_deployed_data(
    current: DeployedDiamondData,
    registry: SelectorRegistry,
    candidates: Mapping[str, FacetDeploymentRecord],
    protocol_version: Optional[int],
) -> DeployedDiamondData:
    """
    Rebuild the deployment record from the registry's live entries.

    Candidates carry their new version and deployment tx; facets not touched
    in this run keep their recorded metadata. Facets left without selectors
    are dropped.
    """
    selectors_by_facet: Dict[str, List[str]] = {}
    addresses: Dict[str, str] = {}
    for selector, entry in registry.items():
        if not entry.action.is_live:
            continue
        selectors_by_facet.setdefault(entry.facet_name, []).append(selector)
        addresses.setdefault(entry.facet_name, entry.address)

    facets: Dict[str, DeployedFacet] = {}
    for facet_name, selectors in selectors_by_facet.items():
        candidate = candidates.get(facet_name)
        if candidate is not None:
            facets[facet_name] = DeployedFacet(
                address=candidate.address,
                tx_hash=candidate.tx_hash,
                version=candidate.version,
                func_selectors=selectors,
                verified=False,
            )
            continue

        previous = current.deployed_facets.get(facet_name)
        if previous is not None:
            facets[facet_name] = previous.model_copy(update={"func_selectors": selectors})
        else:
            facets[facet_name] = DeployedFacet(address=addresses[facet_name], func_selectors=selectors)

    return current.model_copy(
        update={"deployed_facets": facets, "protocol_version": protocol_version}
    )
