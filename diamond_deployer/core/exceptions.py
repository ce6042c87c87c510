"""
Custom exceptions for the diamond deployer.
Provides structured error handling for diamond deployments and upgrades.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DiamondDeployException(Exception):
    """Base exception for the diamond deployer."""

    def __init__(
        self,
        message: str,
        error_code: str = "DIAMOND_DEPLOY_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# Validation
class ValidationError(DiamondDeployException):
    """Raised when a computed diamond cut is internally inconsistent."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None, error_code: str = "VALIDATION_ERROR"):
        super().__init__(message, error_code, details)


class OrphanedSelectorsError(ValidationError):
    """Raised when one facet name is bound to two live addresses in the same cut."""

    def __init__(self, facet_name: str, facet_address: str, details: Optional[Dict[str, Any]] = None):
        message = f"Orphaned selectors found for facet {facet_name} at address {facet_address}"
        super().__init__(message, details, "ORPHANED_SELECTORS")


class MissingInitializerError(ValidationError):
    """Raised when the configured protocol initializer cannot be resolved."""

    def __init__(self, facet_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Protocol initializer facet has no deployable target: {facet_name}"
        super().__init__(message, details, "MISSING_INITIALIZER")


# Configuration & persisted state
class DeploymentConfigError(DiamondDeployException):
    """Raised when the desired-state configuration is missing or invalid."""

    def __init__(self, message: str = "Invalid deployment configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", details)


class DeploymentDataError(DiamondDeployException):
    """Raised when a persisted deployment record cannot be read."""

    def __init__(self, message: str = "Invalid deployment data", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DEPLOYMENT_DATA_ERROR", details)


class ArtifactNotFoundError(DiamondDeployException):
    """Raised when no compiled artifact exists for a contract."""

    def __init__(self, contract_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Contract artifact not found: {contract_name}"
        super().__init__(message, "ARTIFACT_NOT_FOUND", details)


# Blockchain Operations
class BlockchainError(DiamondDeployException):
    """Raised when blockchain operations fail."""

    def __init__(self, message: str = "Blockchain operation failed", details: Optional[Dict[str, Any]] = None, error_code: str = "BLOCKCHAIN_ERROR"):
        super().__init__(message, error_code, details)


class ContractDeploymentError(BlockchainError):
    """Raised when a contract deployment does not produce an address."""

    def __init__(self, contract_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Contract deployment failed: {contract_name}"
        super().__init__(message, details, "CONTRACT_DEPLOYMENT_FAILED")


class TransactionFailedError(BlockchainError):
    """Raised when blockchain transaction fails."""

    def __init__(self, tx_hash: str, details: Optional[Dict[str, Any]] = None):
        message = f"Transaction failed: {tx_hash}"
        super().__init__(message, details, "TRANSACTION_FAILED")


# Remote execution service
class RemoteServiceError(DiamondDeployException):
    """Raised when the remote deployment service rejects or fails a request."""

    def __init__(self, message: str = "Remote service request failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "REMOTE_SERVICE_ERROR", details)


class RemoteStepFailedError(DiamondDeployException):
    """Raised when the remote service reports a terminal failure for a step."""

    def __init__(self, step_name: str, reason: str = "Unknown deployment error", details: Optional[Dict[str, Any]] = None):
        message = f"Remote step failed for {step_name}: {reason}"
        super().__init__(message, "REMOTE_STEP_FAILED", details)
        self.step_name = step_name


class StepNotCompletedError(DiamondDeployException):
    """Raised when a blocking step did not reach a terminal state."""

    def __init__(self, step_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Step did not complete: {step_name}"
        super().__init__(message, "STEP_NOT_COMPLETED", details)
        self.step_name = step_name


# Callbacks
class CallbackNotFoundError(DiamondDeployException):
    """Raised when a declared post-deploy callback is not registered."""

    def __init__(self, facet_name: str, callback_name: str, details: Optional[Dict[str, Any]] = None):
        message = f'Callback "{callback_name}" not found for facet "{facet_name}"'
        super().__init__(message, "CALLBACK_NOT_FOUND", details)


def create_http_exception(
    exc: DiamondDeployException,
    status_code: int = status.HTTP_400_BAD_REQUEST
) -> HTTPException:
    """
    Convert a DiamondDeployException to an HTTPException.

    Args:
        exc: DiamondDeployException instance
        status_code: HTTP status code

    Returns:
        HTTPException: FastAPI HTTP exception
    """
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


def get_exception_status_code(exc: DiamondDeployException) -> int:
    """
    Get the appropriate HTTP status code for a DiamondDeployException.

    Args:
        exc: DiamondDeployException instance

    Returns:
        int: HTTP status code
    """
    status_mapping = {
        # Validation
        "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ORPHANED_SELECTORS": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "MISSING_INITIALIZER": status.HTTP_422_UNPROCESSABLE_ENTITY,

        # Configuration & persisted state
        "CONFIG_ERROR": status.HTTP_400_BAD_REQUEST,
        "DEPLOYMENT_DATA_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "ARTIFACT_NOT_FOUND": status.HTTP_404_NOT_FOUND,

        # Blockchain Operations
        "BLOCKCHAIN_ERROR": status.HTTP_502_BAD_GATEWAY,
        "CONTRACT_DEPLOYMENT_FAILED": status.HTTP_502_BAD_GATEWAY,
        "TRANSACTION_FAILED": status.HTTP_502_BAD_GATEWAY,

        # Remote execution service
        "REMOTE_SERVICE_ERROR": status.HTTP_502_BAD_GATEWAY,
        "REMOTE_STEP_FAILED": status.HTTP_502_BAD_GATEWAY,
        "STEP_NOT_COMPLETED": status.HTTP_504_GATEWAY_TIMEOUT,

        # Callbacks
        "CALLBACK_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    }

    return status_mapping.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
