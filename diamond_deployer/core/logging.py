"""
Logging configuration for the diamond deployer.
Provides structured logging for deployment, diamond cut and remote step operations.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog
from structlog.stdlib import LoggerFactory

from diamond_deployer.core.config import settings


def setup_logging() -> None:
    """
    Configure structured logging for the application.
    Sets up different log formats for development and production environments.
    """

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _get_processor(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Set specific logger levels
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _get_processor():
    """
    Get the appropriate processor based on environment.

    Returns:
        Processor function for structlog
    """
    if settings.ENVIRONMENT == "production" or settings.LOG_FORMAT == "json":
        return structlog.processors.JSONRenderer()
    else:
        return structlog.dev.ConsoleRenderer(colors=True)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


class LoggerMixin:
    """Mixin class to add logging capabilities to any class."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get logger instance for this class."""
        return get_logger(self.__class__.__module__ + "." + self.__class__.__name__)


# Specialized logging functions for deployment operations

def log_deployment_phase(
    phase: str,
    deployment_id: str,
    status: str = "started",
    duration: Optional[float] = None,
    **kwargs
) -> None:
    """
    Log a pipeline phase transition.

    Args:
        phase: Phase name (deploy_diamond, deploy_facets, ...)
        deployment_id: Deployment identifier (diamond-network-chainId)
        status: started, completed or failed
        duration: Phase duration in seconds
        **kwargs: Additional context
    """
    logger = get_logger("deployment.phase")
    logger.info(
        "Deployment phase",
        phase=phase,
        deployment_id=deployment_id,
        status=status,
        duration=duration,
        **kwargs
    )


def log_facet_deployment(
    facet_name: str,
    address: str,
    version: int,
    selector_count: int,
    tx_hash: Optional[str] = None,
    **kwargs
) -> None:
    """
    Log a facet deployment.

    Args:
        facet_name: Facet contract name
        address: Deployed facet address
        version: Facet version deployed
        selector_count: Number of function selectors exposed by the facet
        tx_hash: Deployment transaction hash or remote reference
        **kwargs: Additional context
    """
    logger = get_logger("deployment.facet")
    logger.info(
        "Facet deployed",
        facet_name=facet_name,
        address=address,
        version=version,
        selector_count=selector_count,
        tx_hash=tx_hash,
        **kwargs
    )


def log_diamond_cut(
    diamond_address: str,
    cuts: List[Dict[str, Any]],
    init_address: str,
    tx_hash: Optional[str] = None,
    **kwargs
) -> None:
    """
    Log a diamond cut submission.

    Args:
        diamond_address: Diamond proxy address
        cuts: Cut records (facet, action, selectors)
        init_address: Initializer target address
        tx_hash: Transaction hash or proposal reference
        **kwargs: Additional context
    """
    logger = get_logger("deployment.cut")
    logger.info(
        "Diamond cut",
        diamond_address=diamond_address,
        cut_count=len(cuts),
        cuts=cuts,
        init_address=init_address,
        tx_hash=tx_hash,
        **kwargs
    )


def log_remote_step(
    step_name: str,
    status: str,
    external_ref: Optional[str] = None,
    **kwargs
) -> None:
    """
    Log a remote step status change.

    Args:
        step_name: Ledger step name
        status: Step status (pending, executed, failed, skipped)
        external_ref: Remote deployment or proposal id
        **kwargs: Additional context
    """
    logger = get_logger("deployment.remote")
    logger.info(
        "Remote step",
        step_name=step_name,
        status=status,
        external_ref=external_ref,
        **kwargs
    )


def log_blockchain_transaction(
    tx_hash: str,
    chain_id: int,
    contract_address: str = None,
    method: str = None,
    **kwargs
) -> None:
    """
    Log blockchain transaction details.

    Args:
        tx_hash: Transaction hash
        chain_id: Blockchain chain ID
        contract_address: Smart contract address
        method: Contract method called
        **kwargs: Additional transaction context
    """
    logger = get_logger("blockchain.transaction")
    logger.info(
        "Blockchain transaction",
        tx_hash=tx_hash,
        chain_id=chain_id,
        contract_address=contract_address,
        method=method,
        **kwargs
    )


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with context.

    Args:
        error: Exception instance
        context: Additional context information
    """
    logger = get_logger("error")
    logger.error(
        "An error occurred",
        error=str(error),
        error_type=type(error).__name__,
        context=context or {},
        exc_info=True
    )
