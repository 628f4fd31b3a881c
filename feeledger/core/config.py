# /feeledger/core/config.py
# Service settings loaded from the environment and .env.
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Node & indexer endpoints
    RPC_URL: SecretStr | None = None
    ETHERSCAN_API_KEY: SecretStr | None = None
    GAS_API_BASE_URL: str = "https://gas.api.cx.metamask.io"

    # Wallet / chain configuration
    WALLET_ADDRESS: str | None = None
    chain_id: int = 1

    # Network behaviour
    HTTP_TIMEOUT_SECONDS: float = 10.0
    INCOMING_TX_POLL_SECONDS: int = 30
    INCOMING_TX_LIMIT: int | None = None
    TX_HISTORY_LIMIT: int | None = 40

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None
    HEALTH_PORT: int = 8080

    @property
    def rpc_url(self) -> str | None:
        """Plain-text RPC URL, or ``None`` when no endpoint is configured."""
        return self.RPC_URL.get_secret_value() if self.RPC_URL else None

    @property
    def etherscan_api_key(self) -> str | None:
        return self.ETHERSCAN_API_KEY.get_secret_value() if self.ETHERSCAN_API_KEY else None


try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from feeledger.core.logger import get_logger, configure_logging
        configure_logging()
        log = get_logger("feeledger.config")
        log.critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    raise SystemExit(1)
