"""
Local deployment strategy.
Deploys contracts and executes the diamond cut directly through a signing
execution service, confirming every transaction before moving on.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple

from diamond_deployer.core.logging import log_facet_deployment
from diamond_deployer.deployment.context import DeploymentContext
from diamond_deployer.deployment.strategies.base import ArtifactSource, BaseDeploymentStrategy
from diamond_deployer.domain.models.deployment import (
    DIAMOND_CUT_FACET,
    ContractDeployment,
    CutOutcome,
    CutPlan,
    DeployedFacet,
)


class LocalExecutionService(Protocol):
    async def get_deployer_address(self) -> str:
        ...

    async def deploy_contract(
        self, contract_name: str, constructor_args: Optional[List[Any]] = None
    ) -> ContractDeployment:
        ...

    async def diamond_cut(
        self,
        diamond_address: str,
        cuts: List[Dict[str, Any]],
        init_address: str,
        init_calldata: str,
    ) -> str:
        ...

    async def send_call(self, contract_address: str, contract_name: str, function_name: str) -> str:
        ...


class LocalDeploymentStrategy(BaseDeploymentStrategy):
    """Synchronous-confirmation backend (direct RPC)."""

    def __init__(self, artifact_source: ArtifactSource, executor: LocalExecutionService):
        super().__init__(artifact_source)
        self.executor = executor

    async def deploy_diamond(self, context: DeploymentContext) -> None:
        diamond = context.diamond
        deployer_address = await self.executor.get_deployer_address()

        cut_facet = await self.executor.deploy_contract(DIAMOND_CUT_FACET)
        cut_selectors = self.artifact_source.get_selectors(DIAMOND_CUT_FACET)
        version = self.cut_facet_version(diamond)
        diamond.record_deployed_facet(
            DIAMOND_CUT_FACET,
            DeployedFacet(
                address=cut_facet.address,
                tx_hash=cut_facet.tx_hash,
                version=version,
                func_selectors=cut_selectors,
            ),
        )
        log_facet_deployment(DIAMOND_CUT_FACET, cut_facet.address, version, len(cut_selectors), cut_facet.tx_hash)

        proxy = await self.executor.deploy_contract(
            diamond.diamond_name, [deployer_address, cut_facet.address]
        )
        diamond.set_diamond_address(proxy.address, deployer_address)
        self.logger.info(
            "Diamond deployed",
            diamond_name=diamond.diamond_name,
            address=proxy.address,
            tx_hash=proxy.tx_hash,
        )

    async def deploy_facets(self, context: DeploymentContext) -> None:
        for facet_name, facet_config, version in self.facets_to_deploy(context.diamond):
            deployment = await self.executor.deploy_contract(facet_name)
            selectors = self.artifact_source.get_selectors(facet_name)
            self.record_candidate(
                context,
                facet_name,
                facet_config,
                version,
                deployment.address,
                deployment.tx_hash,
                selectors,
            )
            log_facet_deployment(facet_name, deployment.address, version, len(selectors), deployment.tx_hash)

    async def submit_diamond_cut(self, context: DeploymentContext, plan: CutPlan) -> CutOutcome:
        tx_hash = await self.executor.diamond_cut(
            context.diamond.diamond_address,
            [cut.to_abi() for cut in plan.cuts],
            plan.init_address,
            plan.init_calldata,
        )
        return CutOutcome(confirmed=True, tx_hash=tx_hash)

    async def run_facet_initializers(
        self, context: DeploymentContext, initializers: List[Tuple[str, str, int]]
    ) -> None:
        diamond = context.diamond
        for facet_name, init_function, _version in initializers:
            self.logger.info("Running facet initializer", facet_name=facet_name, init_function=init_function)
            await self.executor.send_call(diamond.diamond_address, facet_name, init_function)
