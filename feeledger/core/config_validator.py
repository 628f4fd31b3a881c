# A script to be run at startup to validate the service configuration.
from feeledger.core.config import settings
from feeledger.core.logger import log
from feeledger.adapters.etherscan import is_supported_network


def validate():
    log.info("--- CONFIG VALIDATION START ---")
    required_vars = ['RPC_URL', 'WALLET_ADDRESS']
    errors = []

    for var in required_vars:
        if not getattr(settings, var, None):
            errors.append(f"Missing required configuration: {var}")

    if not is_supported_network(settings.chain_id):
        errors.append(f"No supported block explorer for chain_id {settings.chain_id}")

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("Service configuration is incomplete. Halting.")

    if not settings.ETHERSCAN_API_KEY:
        log.warning("ETHERSCAN_API_KEY_MISSING_RATE_LIMITED")
    log.info("--- CONFIG VALIDATION PASSED ---")


if __name__ == "__main__":
    validate()
