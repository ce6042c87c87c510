"""
Deployment strategy interface and the phases shared by every backend.
"""

from abc import ABC, abstractmethod
from typing import List, Protocol, Tuple

from diamond_deployer.core.logging import LoggerMixin, log_diamond_cut
from diamond_deployer.deployment.context import DeploymentContext
from diamond_deployer.domain.cuts import build_cut_plan, rebuild_deployed_data
from diamond_deployer.domain.diamond import Diamond
from diamond_deployer.domain.models.deployment import (
    DIAMOND_CUT_FACET,
    CutOutcome,
    CutPlan,
    FacetConfig,
    FacetDeploymentRecord,
)
from diamond_deployer.domain.reconciliation import reconcile_selectors


class ArtifactSource(Protocol):
    def get_artifact(self, contract_name: str) -> dict:
        ...

    def get_selectors(self, contract_name: str) -> List[str]:
        ...


class DeploymentStrategy(ABC):
    """One async method per pipeline phase."""

    @abstractmethod
    async def deploy_diamond(self, context: DeploymentContext) -> None:
        ...

    @abstractmethod
    async def deploy_facets(self, context: DeploymentContext) -> None:
        ...

    @abstractmethod
    async def update_function_selector_registry(self, context: DeploymentContext) -> None:
        ...

    @abstractmethod
    async def perform_diamond_cut(self, context: DeploymentContext) -> CutOutcome:
        ...

    @abstractmethod
    async def run_post_deploy_callbacks(self, context: DeploymentContext) -> None:
        ...


class BaseDeploymentStrategy(DeploymentStrategy, LoggerMixin):
    """
    Backend-independent phases: reconciliation, cut planning, persistence and
    callbacks. Subclasses provide contract deployment, cut submission and the
    per-facet initializer calls.
    """

    def __init__(self, artifact_source: ArtifactSource):
        self.artifact_source = artifact_source

    # Helpers

    def facets_to_deploy(self, diamond: Diamond) -> List[Tuple[str, FacetConfig, int]]:
        """Facets whose target version exceeds the recorded one, by ascending priority."""
        pending = []
        for facet_name in diamond.deploy_config.facets_by_priority():
            facet_config = diamond.deploy_config.facets[facet_name]
            target_version = facet_config.target_version
            deployed_version = diamond.deployed_data.facet_version(facet_name)
            if deployed_version == -1 or target_version > deployed_version:
                pending.append((facet_name, facet_config, target_version))
            else:
                self.logger.info(
                    "Facet already at target version",
                    facet_name=facet_name,
                    version=deployed_version,
                )
        return pending

    def cut_facet_version(self, diamond: Diamond) -> int:
        facet_config = diamond.deploy_config.facets.get(DIAMOND_CUT_FACET)
        return facet_config.target_version if facet_config else 0

    def record_candidate(
        self,
        context: DeploymentContext,
        facet_name: str,
        facet_config: FacetConfig,
        version: int,
        address: str,
        tx_hash: str,
        selectors: List[str],
    ) -> FacetDeploymentRecord:
        """Register a freshly deployed facet as a cut candidate."""
        diamond = context.diamond
        version_spec = facet_config.version_spec(version)
        init_function = version_spec.init_function(context.new_deployment)

        if init_function and facet_name != diamond.deploy_config.protocol_init_facet:
            diamond.register_initializer(facet_name, init_function)

        record = FacetDeploymentRecord(
            address=address,
            tx_hash=tx_hash,
            version=version,
            selectors=list(selectors),
            deploy_include=list(version_spec.deploy_include),
            deploy_exclude=list(version_spec.deploy_exclude),
            init_function=init_function,
            priority=facet_config.priority,
        )
        diamond.add_candidate(facet_name, record)
        context.deployed_facets.append(facet_name)
        return record

    # Backend specific

    @abstractmethod
    async def submit_diamond_cut(self, context: DeploymentContext, plan: CutPlan) -> CutOutcome:
        """Submit the plan as one atomic operation and wait for it as configured."""

    @abstractmethod
    async def run_facet_initializers(
        self, context: DeploymentContext, initializers: List[Tuple[str, str, int]]
    ) -> None:
        """Invoke the per-facet initializers recorded during facet deployment."""

    # Shared phases

    async def update_function_selector_registry(self, context: DeploymentContext) -> None:
        diamond = context.diamond
        registry = reconcile_selectors(
            diamond.registry,
            diamond.candidates,
            diamond.deploy_config.facets.keys(),
        )
        diamond.update_registry(registry)
        self.logger.info(
            "Function selector registry updated",
            deployment_id=diamond.deployment_id,
            candidates=list(diamond.candidates),
            selector_count=len(registry),
        )

    async def perform_diamond_cut(self, context: DeploymentContext) -> CutOutcome:
        diamond = context.diamond
        plan = build_cut_plan(
            diamond.registry,
            diamond.deploy_config,
            diamond.candidates,
            context.new_deployment,
        )

        if plan.is_empty:
            self.logger.info("No selector changes, skipping diamond cut", deployment_id=diamond.deployment_id)
            if context.new_deployment and diamond.has_address:
                # The proxy itself is new and must be recorded even without a cut
                diamond.commit(self._rebuild(diamond))
            return CutOutcome(confirmed=True, cut_count=0)

        outcome = await self.submit_diamond_cut(context, plan)
        outcome = outcome.model_copy(update={"cut_count": len(plan.cuts)})
        log_diamond_cut(
            diamond.diamond_address,
            [
                {"facet": cut.facet_name, "action": cut.action.value, "selectors": cut.function_selectors}
                for cut in plan.cuts
            ],
            plan.init_address,
            tx_hash=outcome.tx_hash,
            confirmed=outcome.confirmed,
        )
        if not outcome.confirmed:
            return outcome

        # Persist as soon as the cut is live on chain
        initializers = diamond.pending_initializers()
        diamond.commit(self._rebuild(diamond))

        await self.run_facet_initializers(context, initializers)
        return outcome

    @staticmethod
    def _rebuild(diamond: Diamond):
        return rebuild_deployed_data(
            diamond.deployed_data,
            diamond.registry,
            diamond.candidates,
            diamond.deploy_config.protocol_version,
        )

    async def run_post_deploy_callbacks(self, context: DeploymentContext) -> None:
        diamond = context.diamond
        runner = context.callback_runner

        for facet_name, facet_config in diamond.deploy_config.facets.items():
            for version, version_spec in facet_config.versions.items():
                if not version_spec.callbacks:
                    continue
                if runner is None:
                    self.logger.warning(
                        "No callback runner configured, skipping callbacks",
                        facet_name=facet_name,
                        callbacks=version_spec.callbacks,
                    )
                    continue

                self.logger.info(
                    "Running post-deploy callbacks",
                    facet_name=facet_name,
                    version=version,
                    callbacks=version_spec.callbacks,
                )
                await runner.run(facet_name, version_spec.callbacks, diamond)
