import json

import httpx
import pytest

from diamond_deployer.core.exceptions import ArtifactNotFoundError, RemoteServiceError
from diamond_deployer.domain.models.step import RemoteStatusKind
from diamond_deployer.infrastructure.blockchain.artifacts import HardhatArtifactSource
from diamond_deployer.infrastructure.defender.defender_client import (
    DefenderClient,
    normalize_proposal_status,
)

OWNERSHIP_ABI = [
    {"type": "function", "name": "owner", "inputs": []},
    {"type": "function", "name": "transferOwnership", "inputs": [{"name": "newOwner", "type": "address"}]},
]


def write_artifact(root, source_dir, contract_name, abi):
    artifact_dir = root / source_dir / f"{contract_name}.sol"
    artifact_dir.mkdir(parents=True, exist_ok=True)
    (artifact_dir / f"{contract_name}.json").write_text(
        json.dumps(
            {
                "contractName": contract_name,
                "sourceName": f"{source_dir}/{contract_name}.sol",
                "abi": abi,
                "bytecode": "0x6080",
            }
        )
    )


def test_artifact_source_reads_selectors(tmp_path):
    write_artifact(tmp_path, "contracts/facets", "OwnershipFacet", OWNERSHIP_ABI)
    write_artifact(tmp_path / "build-info", "contracts", "OwnershipFacet", [])

    source = HardhatArtifactSource(str(tmp_path))

    assert source.get_artifact("OwnershipFacet")["sourceName"] == "contracts/facets/OwnershipFacet.sol"
    assert source.get_selectors("OwnershipFacet") == ["0x8da5cb5b", "0xf2fde38b"]


def test_artifact_source_applies_contract_mapping(tmp_path):
    write_artifact(tmp_path, "contracts", "Diamond", [])

    source = HardhatArtifactSource(str(tmp_path), contract_mapping={"ExampleDiamond": "Diamond"})

    assert source.get_artifact("ExampleDiamond")["contractName"] == "Diamond"


def test_missing_artifact_raises(tmp_path):
    with pytest.raises(ArtifactNotFoundError):
        HardhatArtifactSource(str(tmp_path)).get_artifact("NoSuchFacet")


def test_proposal_status_from_execution_flags():
    assert normalize_proposal_status({"isExecuted": True, "transaction": {"txHash": "0x1"}}).status is RemoteStatusKind.COMPLETED
    assert normalize_proposal_status({"transaction": {"isReverted": True}}).status is RemoteStatusKind.FAILED
    assert normalize_proposal_status({"isExecuted": False}).status is RemoteStatusKind.PENDING


@pytest.mark.anyio
async def test_defender_client_deploy_and_poll():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST" and request.url.path == "/v2/deployments":
            return httpx.Response(200, json={"deploymentId": "dep-1"})
        if request.url.path == "/v2/deployments/dep-1":
            return httpx.Response(200, json={"status": "completed", "address": "0x" + "ab" * 20, "txHash": "0xfeed"})
        return httpx.Response(404)

    client = DefenderClient(
        base_url="https://defender.test/v2",
        api_key="key",
        api_secret="secret",
        network="sepolia",
        transport=httpx.MockTransport(handler),
    )

    deployment_id = await client.deploy_contract("OwnershipFacet", {"contractName": "OwnershipFacet", "abi": []})
    status = await client.get_deployment(deployment_id)

    assert deployment_id == "dep-1"
    assert status.status is RemoteStatusKind.COMPLETED
    assert status.address == "0x" + "ab" * 20
    body = json.loads(requests[0].content)
    assert body["network"] == "sepolia"
    assert body["salt"].startswith("0x") and len(body["salt"]) == 66
    assert requests[0].headers["X-Api-Key"] == "key"


@pytest.mark.anyio
async def test_defender_client_maps_http_errors():
    client = DefenderClient(
        base_url="https://defender.test/v2",
        transport=httpx.MockTransport(lambda request: httpx.Response(402, text="payment required")),
    )

    with pytest.raises(RemoteServiceError) as exc_info:
        await client.create_proposal({"title": "DiamondCut"})

    assert exc_info.value.details["status_code"] == 402
    assert "billing" in exc_info.value.message
