"""
Command line entry point for txflood.

Usage: `txflood --json-rpc http://127.0.0.1:8545 --mnemonic "..." --mode ERC20`
"""
import argparse
import logging
import sys
import time
import typing as t
from dataclasses import dataclass

from .collector import CollectorData, StatCollector
from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_SUB_ACCOUNTS,
    DEFAULT_TRANSACTIONS,
    RECEIPTS_WAIT_TIMEOUT,
    TXPOOL_TIMEOUT,
)
from .distributor import AllocationPolicy, Distributor, TokenDistributor
from .engine import Engine, EngineContext, flatten_identifiers
from .errors import InvalidSubAccountsError, TxFloodError
from .identity import AccountDeriver
from .logging_config import setup_logging
from .network import ConnectionManager
from .outputter import output_data
from .runtimes import RuntimeType, TokenRuntime, build_runtime

log = logging.getLogger(__name__)


@dataclass
class RunOptions:
    url: str
    mnemonic: str
    sub_accounts: int = DEFAULT_SUB_ACCOUNTS
    transactions: int = DEFAULT_TRANSACTIONS
    mode: str = RuntimeType.EOA.value
    batch_size: int = DEFAULT_BATCH_SIZE
    dynamic: bool = False
    output: t.Optional[str] = None
    txpool_timeout: int = TXPOOL_TIMEOUT
    receipts_wait_timeout: int = RECEIPTS_WAIT_TIMEOUT
    policy: AllocationPolicy = AllocationPolicy.SMALLEST_NEED_FIRST


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="txflood",
        description="A small and simple stress testing tool for Ethereum-compatible blockchain clients",
    )
    parser.add_argument("-u", "--json-rpc", dest="url", required=True,
                        help="The URL of the JSON-RPC for the client")
    parser.add_argument("-m", "--mnemonic", required=True,
                        help="The mnemonic used to generate spam accounts")
    parser.add_argument("-s", "--sub-accounts", type=int, default=DEFAULT_SUB_ACCOUNTS,
                        help="The number of sub-accounts that will send out transactions")
    parser.add_argument("-t", "--transactions", type=int, default=DEFAULT_TRANSACTIONS,
                        help="The total number of transactions to be emitted")
    parser.add_argument("--mode", default=RuntimeType.EOA.value, choices=[r.value for r in RuntimeType],
                        type=str.upper, help="The mode for the stress test")
    parser.add_argument("-o", "--output", help="The output path for the results JSON")
    parser.add_argument("-b", "--batch", dest="batch_size", type=int, default=DEFAULT_BATCH_SIZE,
                        help="The batch size of JSON-RPC transactions used for funding")
    parser.add_argument("--dynamic", action="store_true", help="Use dynamic (EIP-1559) transactions")
    parser.add_argument("--txpool-timeout", type=int, default=TXPOOL_TIMEOUT,
                        help="Timeout to wait for the txpool to be empty (in seconds)")
    parser.add_argument("--receipts-wait-timeout", type=int, default=RECEIPTS_WAIT_TIMEOUT,
                        help="Timeout to gather transaction receipts (in seconds)")
    parser.add_argument("--allocation-policy", dest="policy", default=AllocationPolicy.SMALLEST_NEED_FIRST.value,
                        choices=[p.value for p in AllocationPolicy],
                        help="Which short accounts are funded first when the budget is tight")
    parser.add_argument("--log-level", default=None, help="Override TXFLOOD_LOG_LEVEL")
    return parser


def parse_options(argv: t.Optional[t.Sequence[str]] = None) -> t.Tuple[RunOptions, argparse.Namespace]:
    args = build_parser().parse_args(argv)
    options = RunOptions(
        url=args.url,
        mnemonic=args.mnemonic,
        sub_accounts=args.sub_accounts,
        transactions=args.transactions,
        mode=args.mode,
        batch_size=args.batch_size,
        dynamic=args.dynamic,
        output=args.output,
        txpool_timeout=args.txpool_timeout,
        receipts_wait_timeout=args.receipts_wait_timeout,
        policy=AllocationPolicy(args.policy),
    )
    return options, args


def run(options: RunOptions) -> CollectorData:
    if options.sub_accounts < 1:
        raise InvalidSubAccountsError(options.sub_accounts)

    network = ConnectionManager(options.url)
    deriver = AccountDeriver(options.mnemonic)
    try:
        runtime = build_runtime(options.mode, network, deriver)

        # 1. Distribute the native currency funds
        start = time.time()
        distributor = Distributor(
            network, deriver, runtime,
            sub_accounts=options.sub_accounts,
            total_transactions=options.transactions,
            batch_size=options.batch_size,
            policy=options.policy,
        )
        account_indexes = distributor.distribute()

        # 2. Distribute the token funds, if any
        if isinstance(runtime, TokenRuntime):
            token_distributor = TokenDistributor(
                network, deriver, runtime,
                total_transactions=options.transactions,
                batch_size=options.batch_size,
                policy=options.policy,
            )
            account_indexes = token_distributor.distribute(account_indexes)
        log.info("Time to distribute funds: %.2fs", time.time() - start)

        # 3. Run the workload
        start = time.time()
        reports = Engine(network).run(runtime, EngineContext(
            account_indexes=account_indexes,
            total_transactions=options.transactions,
            mnemonic=options.mnemonic,
            url=options.url,
            batch_size=options.batch_size,
            dynamic=options.dynamic,
        ))
        log.info("Time to run the stress test: %.2fs", time.time() - start)

        # 4. Collect the data
        start = time.time()
        data = StatCollector(network).generate_stats(
            flatten_identifiers(reports),
            txpool_timeout=options.txpool_timeout,
            receipts_timeout=options.receipts_wait_timeout,
        )
        log.info("Time to gather and calculate results: %.2fs", time.time() - start)
    finally:
        network.close()

    if options.output:
        output_data(data, options.output)
    return data


def main(argv: t.Optional[t.Sequence[str]] = None) -> int:
    options, args = parse_options(argv)
    setup_logging(args.log_level)
    try:
        run(options)
    except TxFloodError as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.warning("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
