import json

import pytest

from txflood import cli
from txflood.cli import RunOptions, parse_options, run
from txflood.distributor import AllocationPolicy
from txflood.engine import Engine
from txflood.errors import InvalidSubAccountsError
from txflood.logging_config import _build_config
from txflood.runtimes.eoa import EOARuntime

from .conftest import MNEMONIC, LedgerTokenRuntime


def test_defaults():
    options, args = parse_options(["--json-rpc", "http://127.0.0.1:8545", "--mnemonic", MNEMONIC])
    assert options == RunOptions(url="http://127.0.0.1:8545", mnemonic=MNEMONIC)
    assert (options.sub_accounts, options.transactions, options.batch_size) == (10, 2000, 20)
    assert options.mode == "EOA"
    assert options.policy is AllocationPolicy.SMALLEST_NEED_FIRST
    assert args.log_level is None


def test_overrides():
    options, _ = parse_options([
        "-u", "http://node:8545", "-m", MNEMONIC,
        "-s", "3", "-t", "50", "--mode", "erc721", "-b", "5", "--dynamic",
        "-o", "out.json", "--allocation-policy", "index",
    ])
    assert options.sub_accounts == 3
    assert options.transactions == 50
    assert options.mode == "ERC721"
    assert options.batch_size == 5
    assert options.dynamic
    assert options.output == "out.json"
    assert options.policy is AllocationPolicy.INDEX_ORDER


def test_unknown_mode_is_rejected():
    with pytest.raises(SystemExit):
        parse_options(["-u", "http://node:8545", "-m", MNEMONIC, "--mode", "SWAP"])


def test_zero_sub_accounts_is_fatal():
    with pytest.raises(InvalidSubAccountsError):
        run(RunOptions(url="http://127.0.0.1:1", mnemonic=MNEMONIC, sub_accounts=0))


def test_logging_config_adds_file_handler(tmp_path):
    config = _build_config("DEBUG", str(tmp_path / "txflood.log"))
    assert config["loggers"]["txflood"]["level"] == "DEBUG"
    assert config["loggers"]["txflood"]["handlers"] == ["console", "file"]
    assert _build_config("INFO", None)["loggers"]["txflood"]["handlers"] == ["console"]


@pytest.fixture
def engine_contexts(monkeypatch):
    contexts = []
    real_run = Engine.run

    def recording_run(self, runtime, ctx):
        contexts.append(ctx)
        return real_run(self, runtime, ctx)

    monkeypatch.setattr(Engine, "run", recording_run)
    return contexts


@pytest.fixture
def fake_node_run(monkeypatch, network, node, deriver):
    node.balances[deriver.get_address(0)] = 10 ** 20
    monkeypatch.setattr(cli, "ConnectionManager", lambda url: network)

    def use_runtime(factory):
        monkeypatch.setattr(cli, "build_runtime", lambda mode, net, der: factory(net, der))

    return use_runtime


def test_run_sends_exactly_the_requested_total(fake_node_run, engine_contexts, node, tmp_path):
    fake_node_run(EOARuntime)
    output = tmp_path / "results" / "report.json"

    data = run(RunOptions(
        url="http://fake-node:8545", mnemonic=MNEMONIC,
        sub_accounts=4, transactions=3, output=str(output),
    ))

    (ctx,) = engine_contexts
    assert ctx.account_indexes == [1, 2, 3, 4]
    assert ctx.total_transactions == 3
    # 4 funding transfers, then the workload itself
    assert len(node.sent) == 4 + 3
    assert (data.submitted, data.mined, data.missing) == (3, 3, 0)

    report = json.loads(output.read_text())
    assert report["submitted"] == 3
    assert report["mined"] == 3
    assert sum(block["num_txs"] for block in report["blocks"]) == 3


def test_run_distributes_tokens_for_token_workloads(fake_node_run, engine_contexts, node, deriver):
    ledger = {deriver.get_address(0): 100}
    runtimes = []

    def ledger_runtime(net, der):
        runtimes.append(LedgerTokenRuntime(net, der, ledger))
        return runtimes[0]

    fake_node_run(ledger_runtime)

    data = run(RunOptions(url="http://fake-node:8545", mnemonic=MNEMONIC, sub_accounts=3, transactions=6))

    (runtime,) = runtimes
    assert [amount for _, amount in runtime.funded] == [2, 2, 2]
    (ctx,) = engine_contexts
    assert ctx.account_indexes == [1, 2, 3]
    # 3 native top-ups, 3 token top-ups, 6 workload transfers
    assert len(node.sent) == 3 + 3 + 6
    assert data.submitted == 6
