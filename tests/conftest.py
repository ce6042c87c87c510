import json
import os
import sys
from typing import Any, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
os.environ.setdefault("ANYIO_BACKEND", "asyncio")

from diamond_deployer.core.config import settings  # noqa: E402
from diamond_deployer.domain.models.deployment import ContractDeployment  # noqa: E402
from diamond_deployer.domain.models.step import RemoteStatus, RemoteStatusKind  # noqa: E402
from diamond_deployer.infrastructure.blockchain.selectors import DIAMOND_CUT_SELECTOR  # noqa: E402
from diamond_deployer.main import app  # noqa: E402


def make_address(n: int) -> str:
    return "0x" + f"{n:040x}"


class FakeArtifactSource:
    """Selectors per contract; artifacts are minimal Hardhat-shaped dicts."""

    def __init__(self, selectors: Optional[Dict[str, List[str]]] = None):
        self.selectors = {"DiamondCutFacet": [DIAMOND_CUT_SELECTOR]}
        self.selectors.update(selectors or {})

    def get_artifact(self, contract_name: str) -> dict:
        return {
            "contractName": contract_name,
            "sourceName": f"contracts/{contract_name}.sol",
            "abi": [],
            "bytecode": "0x",
        }

    def get_selectors(self, contract_name: str) -> List[str]:
        return list(self.selectors.get(contract_name, []))


class FakeLocalExecutor:
    """Records every deployment, cut and call; addresses are sequential."""

    def __init__(self, deployer: str = make_address(0xDE)):
        self.deployer = deployer
        self.deployments: List[tuple] = []
        self.cuts: List[dict] = []
        self.calls: List[tuple] = []
        self._counter = 0x1000

    async def get_deployer_address(self) -> str:
        return self.deployer

    async def deploy_contract(self, contract_name: str, constructor_args=None) -> ContractDeployment:
        self._counter += 1
        self.deployments.append((contract_name, list(constructor_args or [])))
        return ContractDeployment(address=make_address(self._counter), tx_hash=f"0xtx{self._counter}")

    async def diamond_cut(self, diamond_address, cuts, init_address, init_calldata) -> str:
        self.cuts.append(
            {
                "diamond": diamond_address,
                "cuts": cuts,
                "init_address": init_address,
                "init_calldata": init_calldata,
            }
        )
        return f"0xcut{len(self.cuts)}"

    async def send_call(self, contract_address, contract_name, function_name) -> str:
        self.calls.append((contract_address, contract_name, function_name))
        return f"0xcall{len(self.calls)}"

    def deployed_names(self) -> List[str]:
        return [name for name, _ in self.deployments]


class FakeRemoteService:
    """
    In-memory remote deployment/proposal service.

    Deployments complete on the first poll unless a status script is queued
    for the contract name; proposals behave the same.
    """

    def __init__(self):
        self.deploy_requests: List[tuple] = []
        self.proposals: List[dict] = []
        self.approved: List[str] = []
        self.deployment_scripts: Dict[str, List[RemoteStatusKind]] = {}
        self.proposal_script: List[RemoteStatusKind] = []
        self._by_ref: Dict[str, str] = {}
        self._address: Dict[str, str] = {}
        self._counter = 0x2000

    async def deploy_contract(self, contract_name: str, artifact: Dict[str, Any], constructor_args=None) -> str:
        self._counter += 1
        ref = f"dep-{self._counter}"
        self.deploy_requests.append((contract_name, list(constructor_args or [])))
        self._by_ref[ref] = contract_name
        self._address[ref] = make_address(self._counter)
        return ref

    async def get_deployment(self, deployment_id: str) -> RemoteStatus:
        contract_name = self._by_ref[deployment_id]
        script = self.deployment_scripts.get(contract_name)
        status = script.pop(0) if script else RemoteStatusKind.COMPLETED
        return RemoteStatus(
            status=status,
            address=self._address[deployment_id] if status is RemoteStatusKind.COMPLETED else None,
            tx_hash=f"0xdeploy-{deployment_id}",
            error="execution reverted" if status is RemoteStatusKind.FAILED else None,
        )

    async def create_proposal(self, proposal: Dict[str, Any]) -> str:
        self.proposals.append(proposal)
        return f"prop-{len(self.proposals)}"

    async def approve_proposal(self, proposal_id: str) -> None:
        self.approved.append(proposal_id)

    async def get_proposal(self, proposal_id: str) -> RemoteStatus:
        status = self.proposal_script.pop(0) if self.proposal_script else RemoteStatusKind.COMPLETED
        return RemoteStatus(status=status, tx_hash=f"0xexec-{proposal_id}")

    def deployed_names(self) -> List[str]:
        return [name for name, _ in self.deploy_requests]


async def no_sleep(delay: float) -> None:
    return None


def write_diamond_config(deployments_path, diamond_name: str, config: Dict[str, Any]) -> None:
    diamond_dir = deployments_path / diamond_name
    diamond_dir.mkdir(parents=True, exist_ok=True)
    (diamond_dir / f"{diamond_name.lower()}.config.json").write_text(json.dumps(config))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def deployments_path(tmp_path, monkeypatch):
    """Point every file-backed store at a temporary deployments directory."""
    path = tmp_path / "diamonds"
    path.mkdir()
    monkeypatch.setattr(settings, "DEPLOYMENTS_PATH", str(path))
    monkeypatch.setattr(settings, "NETWORK_NAME", "hardhat")
    monkeypatch.setattr(settings, "CHAIN_ID", 31337)
    monkeypatch.setattr(settings, "WRITE_DEPLOYED_DIAMOND_DATA", True)
    return path


@pytest.fixture
def artifact_source() -> FakeArtifactSource:
    return FakeArtifactSource(
        {
            "OwnershipFacet": ["0x8da5cb5b", "0xf2fde38b"],
            "TokenFacet": ["0xa9059cbb", "0x70a08231"],
            "AdminFacet": ["0x3659cfe6"],
        }
    )


@pytest.fixture
def local_executor() -> FakeLocalExecutor:
    return FakeLocalExecutor()


@pytest.fixture
def remote_service() -> FakeRemoteService:
    return FakeRemoteService()


@pytest.fixture
async def async_client():
    """Shared HTTPX async client with FastAPI lifespan handling."""
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
