"""
Configuration management for the diamond deployer.
Handles environment variables and settings for diamond deployments and upgrades.
"""

from typing import Any, Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Diamond Deployer"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Deployment storage
    DEPLOYMENTS_PATH: str = "diamonds"
    ARTIFACTS_PATH: str = "artifacts"
    WRITE_DEPLOYED_DIAMOND_DATA: bool = True
    DEFAULT_FACET_PRIORITY: int = 1000

    # Network
    NETWORK_NAME: str = "hardhat"
    CHAIN_ID: int = 31337
    RPC_URL: str = "http://127.0.0.1:8545"

    # Private key for signing (from .env)
    DEPLOYER_PRIVATE_KEY: Optional[str] = None

    # Transactions
    GAS_LIMIT_MULTIPLIER: float = 1.2
    DEFAULT_GAS_LIMIT: int = 6_000_000
    TX_RECEIPT_TIMEOUT: int = 120

    # Remote deployment / proposal service (Defender style API)
    DEFENDER_API_URL: str = "https://defender-api.openzeppelin.com/v2"
    DEFENDER_API_KEY: Optional[str] = None
    DEFENDER_API_SECRET: Optional[str] = None
    DEFENDER_RELAYER_ADDRESS: Optional[str] = None
    DEFENDER_VIA: Optional[str] = None
    DEFENDER_VIA_TYPE: str = "Safe"
    DEFENDER_AUTO_APPROVE: bool = False
    DEFENDER_WAIT_FOR_PROPOSAL: bool = True
    DEFENDER_VERIFY_SOURCE: bool = True
    DEFENDER_REQUEST_TIMEOUT: float = 30.0

    # Polling (seconds)
    POLL_MAX_ATTEMPTS: int = 30
    POLL_INITIAL_DELAY: float = 8.0
    POLL_MAX_DELAY: float = 60.0
    POLL_JITTER: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed_envs = ["development", "test", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of {allowed_envs}")
        return v

    @field_validator("GAS_LIMIT_MULTIPLIER")
    @classmethod
    def validate_gas_multiplier(cls, v):
        """Gas estimates are padded by at most 2x."""
        if v < 1.0 or v > 2.0:
            raise ValueError("GAS_LIMIT_MULTIPLIER must be between 1.0 and 2.0")
        return v

    def get_network_config(self) -> Dict[str, Any]:
        """Get the active network configuration."""
        return {
            "name": self.NETWORK_NAME,
            "rpc_url": self.RPC_URL,
            "chain_id": self.CHAIN_ID,
            "deployments_path": self.DEPLOYMENTS_PATH,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Create global settings instance
settings = Settings()
