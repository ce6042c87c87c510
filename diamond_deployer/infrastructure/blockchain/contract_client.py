"""
Web3 execution service.
Signs and sends contract deployments, diamond cuts and initializer calls,
waiting for each receipt before returning.
"""

from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_utils import to_bytes
from web3 import Web3
from web3.exceptions import ContractLogicError

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import (
    BlockchainError,
    ContractDeploymentError,
    DeploymentConfigError,
    TransactionFailedError,
)
from diamond_deployer.core.logging import get_logger, log_blockchain_transaction
from diamond_deployer.domain.models.deployment import ContractDeployment
from diamond_deployer.infrastructure.blockchain.artifacts import HardhatArtifactSource
from diamond_deployer.infrastructure.blockchain.selectors import (
    DIAMOND_CUT_FUNCTION_INTERFACE,
    normalize_init_signature,
)

logger = get_logger(__name__)

DIAMOND_CUT_ABI: List[Dict[str, Any]] = [
    {
        **DIAMOND_CUT_FUNCTION_INTERFACE,
        "type": "function",
        "outputs": [],
        "stateMutability": "nonpayable",
    }
]


class Web3ExecutionService:
    """Local execution service backed by a JSON-RPC node."""

    def __init__(
        self,
        artifact_source: HardhatArtifactSource,
        rpc_url: Optional[str] = None,
        private_key: Optional[str] = None,
        chain_id: Optional[int] = None,
    ):
        """
        Initialize the execution service.

        Args:
            artifact_source: Source of ABI and bytecode for deployments
            rpc_url: JSON-RPC endpoint (defaults to RPC_URL)
            private_key: Deployer key (defaults to DEPLOYER_PRIVATE_KEY)
            chain_id: Chain id used when signing (defaults to CHAIN_ID)
        """
        self.artifact_source = artifact_source
        self.chain_id = chain_id if chain_id is not None else settings.CHAIN_ID

        private_key = private_key or settings.DEPLOYER_PRIVATE_KEY
        if not private_key:
            raise DeploymentConfigError("DEPLOYER_PRIVATE_KEY not configured")
        self.account = Account.from_key(private_key)

        rpc_url = rpc_url or settings.RPC_URL
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        logger.info(f"Connecting to RPC: {rpc_url}")

        if not self.w3.is_connected():
            logger.error("Failed to connect to Web3 provider")
            raise BlockchainError("Cannot connect to blockchain RPC", details={"rpc_url": rpc_url})

    async def get_deployer_address(self) -> str:
        return self.account.address

    def _transact(self, contract_call, label: str, contract_address: Optional[str] = None) -> Dict:
        """Build, sign and send a transaction, then wait for a successful receipt."""
        from_address = self.account.address
        nonce = self.w3.eth.get_transaction_count(from_address, "pending")

        try:
            gas_limit = int(contract_call.estimate_gas({"from": from_address}) * settings.GAS_LIMIT_MULTIPLIER)
        except (ContractLogicError, ValueError) as e:
            logger.warning(f"Gas estimation failed for {label}: {e}, using default")
            gas_limit = settings.DEFAULT_GAS_LIMIT

        transaction = contract_call.build_transaction(
            {
                "from": from_address,
                "nonce": nonce,
                "gas": gas_limit,
                "gasPrice": self.w3.eth.gas_price,
                "chainId": self.chain_id,
            }
        )
        signed_txn = self.account.sign_transaction(transaction)
        tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction sent: {label} {tx_hash_hex}")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=settings.TX_RECEIPT_TIMEOUT)
        if receipt.get("status") != 1:
            raise TransactionFailedError(tx_hash_hex, details={"label": label})

        log_blockchain_transaction(
            tx_hash_hex,
            self.chain_id,
            contract_address=contract_address or receipt.get("contractAddress"),
            method=label,
            gas_used=receipt.get("gasUsed"),
        )
        return dict(receipt)

    async def deploy_contract(
        self, contract_name: str, constructor_args: Optional[List[Any]] = None
    ) -> ContractDeployment:
        artifact = self.artifact_source.get_artifact(contract_name)
        factory = self.w3.eth.contract(abi=artifact["abi"], bytecode=artifact["bytecode"])
        receipt = self._transact(factory.constructor(*(constructor_args or [])), f"deploy {contract_name}")

        address = receipt.get("contractAddress")
        if not address:
            raise ContractDeploymentError(contract_name)
        return ContractDeployment(address=address, tx_hash=Web3.to_hex(receipt["transactionHash"]))

    async def diamond_cut(
        self,
        diamond_address: str,
        cuts: List[Dict[str, Any]],
        init_address: str,
        init_calldata: str,
    ) -> str:
        diamond = self.w3.eth.contract(address=Web3.to_checksum_address(diamond_address), abi=DIAMOND_CUT_ABI)
        facet_cuts = [
            (
                Web3.to_checksum_address(cut["facetAddress"]),
                cut["action"],
                [to_bytes(hexstr=selector) for selector in cut["functionSelectors"]],
            )
            for cut in cuts
        ]
        receipt = self._transact(
            diamond.functions.diamondCut(
                facet_cuts,
                Web3.to_checksum_address(init_address),
                to_bytes(hexstr=init_calldata),
            ),
            "diamondCut",
            contract_address=diamond_address,
        )
        return Web3.to_hex(receipt["transactionHash"])

    async def send_call(self, contract_address: str, contract_name: str, function_name: str) -> str:
        """Call a zero-argument function of ``contract_name`` through ``contract_address``."""
        artifact = self.artifact_source.get_artifact(contract_name)
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=artifact["abi"])
        contract_function = contract.get_function_by_signature(normalize_init_signature(function_name))
        receipt = self._transact(
            contract_function(),
            f"{contract_name}.{function_name}",
            contract_address=contract_address,
        )
        return Web3.to_hex(receipt["transactionHash"])
