"""
txmonitor command line.

    txmonitor list --account 0xabc... [--network 1]
    txmonitor resume
"""

import argparse
import asyncio
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

from .adapters.chain.json_rpc import JsonRpcBlockFeed, JsonRpcChainAdapter
from .adapters.explorer.etherscan import EtherscanExplorerAdapter
from .adapters.store.file_store import JsonFileStore
from .application.services.block_clock import BlockClock
from .application.tx_manager import TransactionManager
from .domain.models.predicates import get_tx_hash
from .domain.models.transaction import Success, TxRecord
from .infrastructure.config.app_config import AppConfig
from .infrastructure.logging_setup import setup_logging
from .infrastructure.persistence.codec import decode_transactions
from .domain.errors import CodecError
from .utils.shutdown import install_signal_handlers, wait_for_stop


def format_record(record: TxRecord) -> str:
    parts = [
        f"#{record.tx_no}",
        record.status.value,
        get_tx_hash(record) or "-",
        record.start.isoformat(timespec="seconds"),
    ]
    if isinstance(record.payload, Success):
        parts.append(f"{record.payload.confirmations}/{record.payload.safe_confirmations} conf")
    if record.dismissed:
        parts.append("dismissed")
    return "  ".join(parts)


# =============================================================================
# COMMANDS
# =============================================================================

async def command_list(config: AppConfig, args) -> int:
    store = JsonFileStore(config.storage.path)
    blob = await store.get(config.storage.key)
    try:
        records = decode_transactions(blob) if blob else []
    except CodecError as exc:
        logger.error(f"[CLI] Cannot read persisted transactions from {config.storage.path}: {exc}")
        return 1
    network = args.network or config.chain.network_id
    account = args.account.lower()
    matching = [r for r in records if r.account.lower() == account and r.network_id == network]
    if not matching:
        print(f"No transactions for {args.account} on network {network}")
        return 0
    for record in sorted(matching, key=lambda r: r.tx_no, reverse=True):
        print(format_record(record))
    return 0


async def command_resume(config: AppConfig, args) -> int:
    if not config.chain.rpc_url:
        logger.error("[CLI] chain.rpc_url is not configured")
        return 2

    install_signal_handlers(asyncio.get_running_loop())
    chain = JsonRpcChainAdapter(config.chain.rpc_url, timeout=config.chain.http_timeout_seconds)
    feed = JsonRpcBlockFeed(chain, interval_seconds=config.chain.block_poll_interval_seconds)
    explorer: Optional[EtherscanExplorerAdapter] = None
    if config.explorer.api_url:
        explorer = EtherscanExplorerAdapter(
            api_url=config.explorer.api_url,
            api_key=config.explorer.api_key,
            min_interval_seconds=config.explorer.min_interval_seconds,
        )

    clock = BlockClock()
    manager = TransactionManager(
        chain,
        JsonFileStore(config.storage.path),
        clock,
        explorer=explorer,
        settings=config.monitor,
        storage_key=config.storage.key,
    )
    clock_task = asyncio.create_task(clock.run(feed))
    try:
        resumed = await manager.start()
        if not resumed:
            logger.info("[CLI] Nothing to resume")
        idle = asyncio.create_task(manager.wait_idle())
        stop = asyncio.create_task(wait_for_stop())
        await asyncio.wait({idle, stop}, return_when=asyncio.FIRST_COMPLETED)
        for task in (idle, stop):
            task.cancel()
    finally:
        await manager.shutdown()
        await feed.close()
        clock_task.cancel()
        await asyncio.gather(clock_task, return_exceptions=True)
        await chain.aclose()
        if explorer is not None:
            await explorer.aclose()
    return 0


# =============================================================================
# MAIN CLI
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="txmonitor", description="Blockchain transaction lifecycle monitor")
    parser.add_argument("--config", default=None, help="Path to a TOML settings file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_list = subparsers.add_parser("list", help="Print persisted transactions for an account")
    parser_list.add_argument("--account", required=True)
    parser_list.add_argument("--network", default=None, help="Network id (defaults to chain.network_id)")

    subparsers.add_parser("resume", help="Resume watching pending transactions until they settle")
    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = AppConfig.load(args.config)
    setup_logging(config.logging.level, config.logging.file)

    commands = {
        "list": command_list,
        "resume": command_resume,
    }
    return asyncio.run(commands[args.command](config, args))


if __name__ == "__main__":
    raise SystemExit(main())
