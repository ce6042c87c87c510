"""
Remote deployment strategy.

Contract deployments and the diamond cut are submitted to an external
deployment/proposal service (Defender style) and polled until they reach a
terminal state. Every submission is recorded in the step ledger so a rerun
skips executed steps and resumes polling pending ones.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Tuple

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import (
    ContractDeploymentError,
    DeploymentConfigError,
    StepNotCompletedError,
)
from diamond_deployer.core.logging import log_facet_deployment, log_remote_step
from diamond_deployer.deployment.context import DeploymentContext
from diamond_deployer.deployment.strategies.base import ArtifactSource, BaseDeploymentStrategy
from diamond_deployer.deployment.strategies.polling import PollOptions, Sleep, poll_until_terminal
from diamond_deployer.domain.cuts import cut_plan_digest
from diamond_deployer.domain.diamond import Diamond
from diamond_deployer.domain.models.deployment import (
    DIAMOND_CUT_FACET,
    CutOutcome,
    CutPlan,
    DeployedFacet,
)
from diamond_deployer.domain.models.step import (
    RemoteStatus,
    RemoteStatusKind,
    StepRecord,
    StepStatus,
)
from diamond_deployer.domain.repositories.step_ledger import StepLedger
from diamond_deployer.infrastructure.blockchain.selectors import (
    DIAMOND_CUT_FUNCTION_INTERFACE,
    normalize_init_signature,
)

DEPLOY_CUT_FACET_STEP = "deploy-diamondcutfacet"
DEPLOY_DIAMOND_STEP = "deploy-diamond"


def facet_step_name(facet_name: str, version: int) -> str:
    return f"deploy-{facet_name}-v{version}"


def cut_step_name(plan: CutPlan) -> str:
    return f"diamond-cut-{cut_plan_digest(plan)}"


def init_step_name(facet_name: str, version: int) -> str:
    return f"init-{facet_name}-v{version}"


class RemoteExecutionService(Protocol):
    async def deploy_contract(
        self,
        contract_name: str,
        artifact: Dict[str, Any],
        constructor_args: Optional[List[Any]] = None,
    ) -> str:
        ...

    async def get_deployment(self, deployment_id: str) -> RemoteStatus:
        ...

    async def create_proposal(self, proposal: Dict[str, Any]) -> str:
        ...

    async def approve_proposal(self, proposal_id: str) -> None:
        ...

    async def get_proposal(self, proposal_id: str) -> RemoteStatus:
        ...


class RemoteDeploymentStrategy(BaseDeploymentStrategy):
    """Asynchronous backend: submit, record in the ledger, poll."""

    def __init__(
        self,
        artifact_source: ArtifactSource,
        service: RemoteExecutionService,
        deployer_address: Optional[str] = None,
        ledger: Optional[StepLedger] = None,
        poll_options: Optional[PollOptions] = None,
        auto_approve: Optional[bool] = None,
        wait_for_proposal: Optional[bool] = None,
        via: Optional[str] = None,
        via_type: Optional[str] = None,
        deployments_path: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(artifact_source)
        self.service = service
        self.deployer_address = deployer_address or settings.DEFENDER_RELAYER_ADDRESS
        self.ledger = ledger
        self.poll_options = poll_options or PollOptions.from_settings()
        self.auto_approve = settings.DEFENDER_AUTO_APPROVE if auto_approve is None else auto_approve
        self.wait_for_proposal = (
            settings.DEFENDER_WAIT_FOR_PROPOSAL if wait_for_proposal is None else wait_for_proposal
        )
        self.via = via or settings.DEFENDER_VIA
        self.via_type = via_type or settings.DEFENDER_VIA_TYPE
        self.deployments_path = deployments_path
        self.sleep = sleep

    def get_ledger(self, diamond: Diamond) -> StepLedger:
        if self.ledger is None:
            self.ledger = StepLedger(
                diamond.diamond_name,
                diamond.deployment_id,
                self.deployments_path,
                network=diamond.network_name,
            )
        return self.ledger

    async def _poll(self, ledger: StepLedger, step_name: str, fetch) -> RemoteStatus:
        result = await poll_until_terminal(step_name, fetch, ledger, self.poll_options, self.sleep)
        if result is None:
            step = ledger.get_step(step_name)
            raise StepNotCompletedError(
                step_name, details={"external_ref": step.external_ref if step else None}
            )
        return result

    async def _deploy_step(
        self,
        ledger: StepLedger,
        step_name: str,
        contract_name: str,
        constructor_args: Optional[List[Any]] = None,
        description: str = "",
    ) -> RemoteStatus:
        """Submit (or resume) one contract deployment and wait for its address."""
        step = ledger.get_step(step_name)

        if step is not None and step.status is StepStatus.EXECUTED and step.address:
            log_remote_step(step_name, "skipped", step.external_ref)
            return RemoteStatus(
                status=RemoteStatusKind.COMPLETED,
                address=step.address,
                tx_hash=step.tx_hash,
            )

        if step is not None and step.status is not StepStatus.FAILED and step.external_ref:
            external_ref = step.external_ref
            self.logger.info("Resuming remote step", step_name=step_name, external_ref=external_ref)
        else:
            artifact = self.artifact_source.get_artifact(contract_name)
            external_ref = await self.service.deploy_contract(contract_name, artifact, constructor_args or [])
            ledger.save_step(
                StepRecord(
                    step_name=step_name,
                    external_ref=external_ref,
                    status=StepStatus.PENDING,
                    description=description or f"{contract_name} deployment",
                )
            )
            log_remote_step(step_name, StepStatus.PENDING.value, external_ref)

        result = await self._poll(ledger, step_name, lambda: self.service.get_deployment(external_ref))
        if not result.address:
            raise ContractDeploymentError(contract_name, details={"step_name": step_name})
        return result

    async def deploy_diamond(self, context: DeploymentContext) -> None:
        diamond = context.diamond
        if not self.deployer_address:
            raise DeploymentConfigError("DEFENDER_RELAYER_ADDRESS is required to deploy a diamond remotely")
        ledger = self.get_ledger(diamond)

        cut_facet = await self._deploy_step(
            ledger, DEPLOY_CUT_FACET_STEP, DIAMOND_CUT_FACET, description="DiamondCutFacet deployment"
        )
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

        proxy = await self._deploy_step(
            ledger,
            DEPLOY_DIAMOND_STEP,
            diamond.diamond_name,
            [self.deployer_address, cut_facet.address],
            description=f"{diamond.diamond_name} deployment",
        )
        diamond.set_diamond_address(proxy.address, self.deployer_address)
        self.logger.info("Diamond deployed", diamond_name=diamond.diamond_name, address=proxy.address)

    async def deploy_facets(self, context: DeploymentContext) -> None:
        ledger = self.get_ledger(context.diamond)
        for facet_name, facet_config, version in self.facets_to_deploy(context.diamond):
            result = await self._deploy_step(
                ledger,
                facet_step_name(facet_name, version),
                facet_name,
                description=f"{facet_name} v{version} deployment",
            )
            selectors = self.artifact_source.get_selectors(facet_name)
            self.record_candidate(
                context,
                facet_name,
                facet_config,
                version,
                result.address,
                result.tx_hash or "",
                selectors,
            )
            log_facet_deployment(facet_name, result.address, version, len(selectors), result.tx_hash)

    def build_cut_proposal(self, diamond: Diamond, plan: CutPlan) -> Dict[str, Any]:
        """Proposal mirroring the cut: records, initializer target and calldata."""
        return {
            "contract": {"address": diamond.diamond_address, "network": diamond.network_name},
            "title": f"DiamondCut {len(plan.cuts)} facets",
            "description": "Perform diamondCut",
            "type": "custom",
            "functionInterface": DIAMOND_CUT_FUNCTION_INTERFACE,
            "functionInputs": [
                [list(cut.to_abi().values()) for cut in plan.cuts],
                plan.init_address,
                plan.init_calldata,
            ],
            "via": self.via,
            "viaType": self.via_type,
        }

    def build_call_proposal(self, diamond: Diamond, facet_name: str, init_function: str) -> Dict[str, Any]:
        name = normalize_init_signature(init_function).split("(", 1)[0]
        return {
            "contract": {"address": diamond.diamond_address, "network": diamond.network_name},
            "title": f"{facet_name}.{name}",
            "description": f"Run {name} from the {facet_name} facet",
            "type": "custom",
            "functionInterface": {"name": name, "inputs": []},
            "functionInputs": [],
            "via": self.via,
            "viaType": self.via_type,
        }

    async def _proposal_step(
        self,
        ledger: StepLedger,
        step_name: str,
        proposal: Dict[str, Any],
        wait: bool,
    ) -> CutOutcome:
        step = ledger.get_step(step_name)
        if step is not None and step.status is StepStatus.EXECUTED:
            log_remote_step(step_name, "skipped", step.external_ref)
            return CutOutcome(confirmed=True, tx_hash=step.tx_hash or step.external_ref)

        if step is not None and step.status is not StepStatus.FAILED and step.external_ref:
            proposal_id = step.external_ref
            self.logger.info("Resuming proposal", step_name=step_name, proposal_id=proposal_id)
        else:
            proposal_id = await self.service.create_proposal(proposal)
            ledger.save_step(
                StepRecord(
                    step_name=step_name,
                    external_ref=proposal_id,
                    status=StepStatus.PENDING,
                    description=proposal.get("title", ""),
                )
            )
            log_remote_step(step_name, StepStatus.PENDING.value, proposal_id)
            if self.auto_approve:
                await self.service.approve_proposal(proposal_id)
                self.logger.info("Proposal approved", step_name=step_name, proposal_id=proposal_id)

        if not wait:
            self.logger.warning(
                "Proposal awaiting approval, not waiting for execution",
                step_name=step_name,
                proposal_id=proposal_id,
            )
            return CutOutcome(confirmed=False, tx_hash=proposal_id)

        result = await self._poll(ledger, step_name, lambda: self.service.get_proposal(proposal_id))
        return CutOutcome(confirmed=True, tx_hash=result.tx_hash or proposal_id)

    async def submit_diamond_cut(self, context: DeploymentContext, plan: CutPlan) -> CutOutcome:
        diamond = context.diamond
        return await self._proposal_step(
            self.get_ledger(diamond),
            cut_step_name(plan),
            self.build_cut_proposal(diamond, plan),
            self.wait_for_proposal,
        )

    async def run_facet_initializers(
        self, context: DeploymentContext, initializers: List[Tuple[str, str, int]]
    ) -> None:
        diamond = context.diamond
        ledger = self.get_ledger(diamond)
        for facet_name, init_function, version in initializers:
            await self._proposal_step(
                ledger,
                init_step_name(facet_name, version),
                self.build_call_proposal(diamond, facet_name, init_function),
                wait=True,
            )
