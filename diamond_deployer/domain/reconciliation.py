"""
Function selector reconciliation.

Folds freshly deployed facets into the selector registry and decides, per
selector, whether the next diamond cut adds, replaces or removes it. The
procedure never mutates its input and has no I/O, so a registry snapshot can
be replayed against any candidate set.
"""

from typing import Dict, Iterable, List, Mapping, Tuple

from diamond_deployer.core.logging import get_logger
from diamond_deployer.domain.models.deployment import (
    DIAMOND_CUT_FACET,
    NULL_ADDRESS,
    FacetDeploymentRecord,
    RegistryAction,
    RegistryEntry,
    SelectorRegistry,
)

logger = get_logger(__name__)


def order_candidates(
    candidates: Mapping[str, FacetDeploymentRecord]
) -> List[Tuple[str, FacetDeploymentRecord]]:
    """Candidates in ascending priority value; equal priorities keep insertion order."""
    return sorted(candidates.items(), key=lambda item: item[1].priority)


def _entry(facet_name: str, record: FacetDeploymentRecord, action: RegistryAction) -> RegistryEntry:
    return RegistryEntry(
        facet_name=facet_name,
        priority=record.priority,
        address=record.address,
        action=action,
    )


def _removed(entry: RegistryEntry) -> RegistryEntry:
    return entry.model_copy(update={"address": NULL_ADDRESS, "action": RegistryAction.REMOVE})


def _apply_exclusions(
    registry: Dict[str, RegistryEntry],
    facet_name: str,
    record: FacetDeploymentRecord,
    remaining: List[str],
) -> None:
    for selector in record.deploy_exclude:
        if selector in remaining:
            remaining.remove(selector)
        existing = registry.get(selector)
        if existing is not None and existing.facet_name == facet_name:
            registry[selector] = _removed(existing)


def _apply_inclusions(
    registry: Dict[str, RegistryEntry],
    facet_name: str,
    record: FacetDeploymentRecord,
    remaining: List[str],
) -> None:
    # A live owner with a numerically greater priority value is overridden.
    for selector in record.deploy_include:
        existing = registry.get(selector)
        if existing is not None and existing.action.is_live and (
            existing.facet_name == facet_name or existing.priority > record.priority
        ):
            registry[selector] = _entry(facet_name, record, RegistryAction.REPLACE)
        else:
            registry[selector] = _entry(facet_name, record, RegistryAction.ADD)

        while selector in remaining:
            remaining.remove(selector)


def _apply_selectors(
    registry: Dict[str, RegistryEntry],
    facet_name: str,
    record: FacetDeploymentRecord,
    remaining: Iterable[str],
) -> None:
    for selector in remaining:
        existing = registry.get(selector)
        if existing is None:
            registry[selector] = _entry(facet_name, record, RegistryAction.ADD)
        elif existing.facet_name == facet_name:
            registry[selector] = _entry(facet_name, record, RegistryAction.REPLACE)
        elif record.priority < existing.priority:
            registry[selector] = _entry(facet_name, record, RegistryAction.REPLACE)


def _remove_stale_addresses(
    registry: Dict[str, RegistryEntry],
    facet_name: str,
    record: FacetDeploymentRecord,
) -> None:
    for selector, entry in list(registry.items()):
        if entry.facet_name == facet_name and entry.address != record.address:
            registry[selector] = _removed(entry)


def reconcile_selectors(
    registry: SelectorRegistry,
    candidates: Mapping[str, FacetDeploymentRecord],
    active_facets: Iterable[str],
) -> SelectorRegistry:
    """
    Reconcile candidate facets against the selector registry.

    Args:
        registry: Current selector registry (typically all ``deployed`` entries)
        candidates: Freshly deployed facets keyed by facet name
        active_facets: Facet names present in the desired configuration

    Returns:
        SelectorRegistry: New registry; the input is left untouched
    """
    result: Dict[str, RegistryEntry] = dict(registry)

    for facet_name, record in order_candidates(candidates):
        remaining = list(record.selectors)

        _apply_exclusions(result, facet_name, record, remaining)
        _apply_inclusions(result, facet_name, record, remaining)
        _apply_selectors(result, facet_name, record, remaining)
        _remove_stale_addresses(result, facet_name, record)

    active = set(active_facets)
    active.add(DIAMOND_CUT_FACET)
    for selector, entry in list(result.items()):
        if entry.facet_name not in active and entry.action is not RegistryAction.REMOVE:
            logger.info(
                "Removing selector of unconfigured facet",
                selector=selector,
                facet_name=entry.facet_name,
            )
            result[selector] = _removed(entry)

    return result
