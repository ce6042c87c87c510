"""
Per-run deployment context threaded through every pipeline phase.
"""

from enum import Enum
from typing import Dict, List, Optional

from diamond_deployer.deployment.callbacks import CallbackRunner
from diamond_deployer.domain.diamond import Diamond
from diamond_deployer.domain.models.deployment import CutOutcome, DeploymentMode


class PipelinePhase(str, Enum):
    """The five pipeline phases, in execution order."""

    DEPLOY_DIAMOND = "deploy_diamond"
    DEPLOY_FACETS = "deploy_facets"
    UPDATE_REGISTRY = "update_function_selector_registry"
    PERFORM_DIAMOND_CUT = "perform_diamond_cut"
    RUN_CALLBACKS = "run_post_deploy_callbacks"


class DeploymentContext:
    """Explicit state for one orchestrator run."""

    def __init__(
        self,
        diamond: Diamond,
        callback_runner: Optional[CallbackRunner] = None,
        new_deployment: Optional[bool] = None,
    ):
        self.diamond = diamond
        self.callback_runner = callback_runner
        self.new_deployment = (not diamond.has_address) if new_deployment is None else new_deployment

        # Bookkeeping
        self.deployed_facets: List[str] = []
        self.cut_outcome: Optional[CutOutcome] = None
        self.phase_durations: Dict[str, float] = {}

    @property
    def deployment_id(self) -> str:
        return self.diamond.deployment_id

    @property
    def mode(self) -> DeploymentMode:
        return DeploymentMode.DEPLOY if self.new_deployment else DeploymentMode.UPGRADE
