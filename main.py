# /main.py
# Service entry point: keeps the wallet ledger reconciled with the block
# explorer and exposes it over a small HTTP surface.
import asyncio
from functools import partial
from aiohttp import web

from feeledger.core.config import settings
from feeledger.core.config_validator import validate as validate_config
from feeledger.core.logger import configure_logging, get_logger
from feeledger.core.fee_history import FeeHistoryFetcher
from feeledger.core.gas_estimator import FeeHistoryGasEstimator
from feeledger.core.gas_fees import GasFeeResolver
from feeledger.core.incoming import IncomingTransactionPoller
from feeledger.core.rpc import NodeClient
from feeledger.core.store import TransactionStore
from feeledger.adapters.etherscan import EtherscanRemoteTransactionSource
from feeledger.adapters.gas_api import GasFeeOracle


def build_app(store: TransactionStore, fetcher: FeeHistoryFetcher, resolver: GasFeeResolver, eip1559: bool) -> web.Application:
    async def healthz(request):
        """Provides a JSON health status for the service."""
        return web.json_response({"status": "ok", "transactions": len(store.get().transactions)})

    async def transactions(request):
        snapshot = store.get()
        return web.json_response(text=snapshot.model_dump_json(by_alias=True))

    async def fee_history(request):
        try:
            blocks = int(request.query.get("blocks", "10"))
            percentiles = [int(p) for p in request.query.get("percentiles", "").split(",") if p]
            records = await fetcher.fetch(
                blocks,
                percentiles=percentiles,
                include_next_block=request.query.get("includeNextBlock") == "true",
            )
        except ValueError as e:
            raise web.HTTPBadRequest(text=str(e))
        return web.json_response([record.model_dump(mode="json", by_alias=True) for record in records])

    async def resolve_gas_fees(request):
        record = store.get_transaction(request.match_info["tx_id"])
        if record is None:
            raise web.HTTPNotFound()
        resolved = await resolver.resolve(record, eip1559)
        store.upsert_transaction(resolved)
        return web.json_response(text=resolved.model_dump_json(by_alias=True))

    app = web.Application()
    app.add_routes([
        web.get("/healthz", healthz),
        web.get("/transactions", transactions),
        web.get("/fee-history", fee_history),
        web.post("/transactions/{tx_id}/gas-fees", resolve_gas_fees),
    ])
    return app


async def main():
    configure_logging()
    log = get_logger("feeledger.system")
    validate_config()
    log.info("FEELEDGER_SERVICE_STARTING", chain_id=settings.chain_id)

    # --- Core components ---
    node = NodeClient()
    store = TransactionStore()
    fetcher = FeeHistoryFetcher(node)
    eip1559 = await node.supports_eip1559()
    oracle = GasFeeOracle(node, FeeHistoryGasEstimator(fetcher))
    resolver = GasFeeResolver(partial(oracle.get_estimates, eip1559), node)
    poller = IncomingTransactionPoller(
        store=store,
        source=EtherscanRemoteTransactionSource(),
        address=settings.WALLET_ADDRESS,
        node=node,
    )
    store.on_change(lambda snapshot: log.info("LEDGER_UPDATED", transactions=len(snapshot.transactions)))

    app = build_app(store, fetcher, resolver, eip1559)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", settings.HEALTH_PORT)
    await site.start()
    log.info("HTTP_SERVER_STARTED", port=settings.HEALTH_PORT, eip1559=eip1559)

    try:
        await poller.run_loop()
    finally:
        await runner.cleanup()
        log.warning("SYSTEM_SHUTDOWN_COMPLETE")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
