"""
Client for the remote deployment and proposal service (Defender style REST API).
"""

import json
import secrets
from typing import Any, Dict, List, Optional

import httpx

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import RemoteServiceError
from diamond_deployer.core.logging import get_logger
from diamond_deployer.domain.models.step import RemoteStatus, RemoteStatusKind

logger = get_logger(__name__)


def new_salt() -> str:
    """Random 32-byte CREATE2 salt."""
    return "0x" + secrets.token_hex(32)


def normalize_deployment_status(data: Dict[str, Any]) -> RemoteStatus:
    """Map a deployment response onto a RemoteStatus."""
    raw_status = str(data.get("status", "pending")).lower()
    try:
        status = RemoteStatusKind(raw_status)
    except ValueError:
        status = RemoteStatusKind.PENDING
    return RemoteStatus(
        status=status,
        address=data.get("address"),
        tx_hash=data.get("txHash"),
        error=data.get("error"),
        raw=data,
    )


def normalize_proposal_status(data: Dict[str, Any]) -> RemoteStatus:
    """Map a proposal response onto a RemoteStatus."""
    if "status" in data:
        return normalize_deployment_status(data)

    transaction = data.get("transaction") or {}
    tx_hash = transaction.get("txHash") or data.get("executionTxHash")
    if transaction.get("isReverted"):
        status = RemoteStatusKind.FAILED
    elif data.get("isExecuted") or transaction.get("isExecuted"):
        status = RemoteStatusKind.COMPLETED
    else:
        status = RemoteStatusKind.PENDING
    return RemoteStatus(
        status=status,
        address=(data.get("contract") or {}).get("address"),
        tx_hash=tx_hash,
        error="Proposal transaction reverted" if status is RemoteStatusKind.FAILED else None,
        raw=data,
    )


class DefenderClient:
    """Remote execution service over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        network: Optional[str] = None,
        verify_source: Optional[bool] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.DEFENDER_API_URL).rstrip("/")
        self.api_key = api_key or settings.DEFENDER_API_KEY
        self.api_secret = api_secret or settings.DEFENDER_API_SECRET
        self.network = network or settings.NETWORK_NAME
        self.verify_source = settings.DEFENDER_VERIFY_SOURCE if verify_source is None else verify_source
        self.timeout = timeout or settings.DEFENDER_REQUEST_TIMEOUT
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        if self.api_secret:
            headers["X-Api-Secret"] = self.api_secret
        return headers

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.request(method, url, json=payload, headers=self._headers())
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                logger.error(f"Remote service request failed with status {status_code}: {exc.response.text}")
                message = (
                    "Remote service billing issue, check the account subscription"
                    if status_code == 402
                    else f"Remote service request failed: {method} {path}"
                )
                raise RemoteServiceError(
                    message,
                    details={"status_code": status_code, "body": exc.response.text},
                ) from exc

        if not response.content:
            return {}
        return response.json()

    async def deploy_contract(
        self,
        contract_name: str,
        artifact: Dict[str, Any],
        constructor_args: Optional[List[Any]] = None,
    ) -> str:
        """
        Submit a contract deployment.

        Returns:
            str: Remote deployment id
        """
        request = {
            "network": self.network,
            "contractName": artifact.get("contractName", contract_name),
            "contractPath": artifact.get("sourceName", ""),
            "constructorInputs": constructor_args or [],
            "verifySourceCode": self.verify_source,
            "artifactPayload": json.dumps(artifact),
            "salt": new_salt(),
        }
        data = await self._request("POST", "/deployments", request)
        deployment_id = data.get("deploymentId")
        if not deployment_id:
            raise RemoteServiceError(
                f"Deployment response for {contract_name} has no deployment id",
                details={"response": data},
            )
        logger.info(f"Submitted deployment of {contract_name}: {deployment_id}")
        return deployment_id

    async def get_deployment(self, deployment_id: str) -> RemoteStatus:
        data = await self._request("GET", f"/deployments/{deployment_id}")
        return normalize_deployment_status(data)

    async def create_proposal(self, proposal: Dict[str, Any]) -> str:
        data = await self._request("POST", "/proposals", proposal)
        proposal_id = data.get("proposalId")
        if not proposal_id:
            raise RemoteServiceError("Proposal response has no proposal id", details={"response": data})
        logger.info(f"Proposal created: {proposal_id} {data.get('url', '')}")
        return proposal_id

    async def approve_proposal(self, proposal_id: str) -> None:
        await self._request("POST", f"/proposals/{proposal_id}/approve")

    async def get_proposal(self, proposal_id: str) -> RemoteStatus:
        data = await self._request("GET", f"/proposals/{proposal_id}")
        return normalize_proposal_status(data)
