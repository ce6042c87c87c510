"""
Deployment orchestrator.

Runs the five deployment phases in order against a strategy. Cross-cutting
behavior wraps each phase call as middleware:

    async def middleware(phase, context, call_next):
        ...
        return await call_next()
"""

import time
from typing import Any, Awaitable, Callable, List, Optional

from diamond_deployer.core.logging import get_logger, log_deployment_phase, log_error
from diamond_deployer.deployment.callbacks import CallbackRunner, FacetCallbackManager
from diamond_deployer.deployment.context import DeploymentContext, PipelinePhase
from diamond_deployer.deployment.strategies.base import DeploymentStrategy
from diamond_deployer.domain.diamond import Diamond
from diamond_deployer.domain.models.deployment import DeploymentResult, DeploymentStatus

logger = get_logger(__name__)

CallNext = Callable[[], Awaitable[Any]]
PhaseMiddleware = Callable[[PipelinePhase, DeploymentContext, CallNext], Awaitable[Any]]
PhaseHook = Callable[[PipelinePhase, DeploymentContext], Awaitable[None]]


async def logging_middleware(phase: PipelinePhase, context: DeploymentContext, call_next: CallNext) -> Any:
    """Log start, completion and failure of every phase with its duration."""
    log_deployment_phase(phase.value, context.deployment_id, "started", mode=context.mode.value)
    started = time.perf_counter()
    try:
        result = await call_next()
    except Exception as e:
        duration = time.perf_counter() - started
        log_deployment_phase(phase.value, context.deployment_id, "failed", duration, error=str(e))
        raise
    duration = time.perf_counter() - started
    context.phase_durations[phase.value] = duration
    log_deployment_phase(phase.value, context.deployment_id, "completed", duration)
    return result


def hook_middleware(
    pre: Optional[PhaseHook] = None,
    post: Optional[PhaseHook] = None,
) -> PhaseMiddleware:
    """Middleware running ``pre`` before and ``post`` after every phase."""

    async def middleware(phase: PipelinePhase, context: DeploymentContext, call_next: CallNext) -> Any:
        if pre is not None:
            await pre(phase, context)
        result = await call_next()
        if post is not None:
            await post(phase, context)
        return result

    return middleware


class DeploymentOrchestrator:
    """Drive one deployment or upgrade of a diamond."""

    def __init__(
        self,
        diamond: Diamond,
        strategy: DeploymentStrategy,
        callback_runner: Optional[CallbackRunner] = None,
        middlewares: Optional[List[PhaseMiddleware]] = None,
    ):
        self.diamond = diamond
        self.strategy = strategy
        self.callback_runner = callback_runner or FacetCallbackManager.for_diamond(diamond.diamond_name)
        self.middlewares = [logging_middleware] if middlewares is None else list(middlewares)

    async def _call_phase(
        self,
        phase: PipelinePhase,
        context: DeploymentContext,
        handler: Callable[[DeploymentContext], Awaitable[Any]],
    ) -> Any:
        async def invoke(index: int) -> Any:
            if index == len(self.middlewares):
                return await handler(context)
            return await self.middlewares[index](phase, context, lambda: invoke(index + 1))

        return await invoke(0)

    async def run(self) -> DeploymentResult:
        """
        Run the pipeline.

        Returns:
            DeploymentResult: ``pending`` when the cut awaits approval, otherwise
            ``completed``

        Raises:
            DiamondDeployException: Any phase failure aborts the run
        """
        context = DeploymentContext(self.diamond, self.callback_runner)
        logger.info(
            "Starting diamond deployment",
            deployment_id=context.deployment_id,
            mode=context.mode.value,
        )

        try:
            if context.new_deployment:
                await self._call_phase(PipelinePhase.DEPLOY_DIAMOND, context, self.strategy.deploy_diamond)
            else:
                logger.info(
                    "Diamond already deployed, skipping proxy deployment",
                    diamond_address=self.diamond.diamond_address,
                )

            await self._call_phase(PipelinePhase.DEPLOY_FACETS, context, self.strategy.deploy_facets)
            await self._call_phase(
                PipelinePhase.UPDATE_REGISTRY, context, self.strategy.update_function_selector_registry
            )
            context.cut_outcome = await self._call_phase(
                PipelinePhase.PERFORM_DIAMOND_CUT, context, self.strategy.perform_diamond_cut
            )

            if context.cut_outcome is not None and not context.cut_outcome.confirmed:
                logger.warning(
                    "Diamond cut not confirmed, stopping before callbacks",
                    deployment_id=context.deployment_id,
                    reference=context.cut_outcome.tx_hash,
                )
                return self._result(context, DeploymentStatus.PENDING)

            await self._call_phase(
                PipelinePhase.RUN_CALLBACKS, context, self.strategy.run_post_deploy_callbacks
            )
        except Exception as e:
            log_error(e, {"deployment_id": context.deployment_id, "mode": context.mode.value})
            raise

        logger.info("Diamond deployment completed", deployment_id=context.deployment_id)
        return self._result(context, DeploymentStatus.COMPLETED)

    def _result(self, context: DeploymentContext, status: DeploymentStatus) -> DeploymentResult:
        outcome = context.cut_outcome
        return DeploymentResult(
            deployment_id=context.deployment_id,
            mode=context.mode,
            status=status,
            diamond_address=self.diamond.diamond_address,
            deployed_facets=list(context.deployed_facets),
            cut_count=outcome.cut_count if outcome else 0,
            cut_tx_hash=outcome.tx_hash if outcome else None,
        )
