import pytest

from txflood.batcher import Batcher
from txflood.engine import (
    Engine,
    EngineContext,
    flatten_identifiers,
    identifiers_by_sender,
    split_transactions,
)
from txflood.runtimes.eoa import EOARuntime

from .conftest import MNEMONIC


@pytest.fixture
def runtime(network, deriver):
    eoa = EOARuntime(network, deriver)
    eoa.estimate_base_tx()
    return eoa


def make_context(network, indexes, total, dynamic=False):
    return EngineContext(
        account_indexes=indexes,
        total_transactions=total,
        mnemonic=MNEMONIC,
        url=network.url,
        dynamic=dynamic,
    )


def test_run_dispatches_every_senders_workload_in_nonce_order(network, node, deriver, runtime):
    node.nonces[deriver.get_address(2)] = 5
    batcher = Batcher(network.session, network.url, backoff_factor=0, show_progress=False)

    reports = Engine(network, batcher=batcher).run(runtime, make_context(network, [1, 2, 3], 12))

    assert set(reports) == {deriver.get_address(i) for i in (1, 2, 3)}
    for address, report in reports.items():
        assert len(report.identifiers) == 4
        assert report.errors == []
        nonces = [r.transaction.nonce for r in report.results]
        start = 5 if address == deriver.get_address(2) else 0
        assert nonces == list(range(start, start + 4))
        # The node saw this sender's transactions in nonce order
        mine = set(report.identifiers)
        assert [h for h in node.send_order if h in mine] == report.identifiers

    assert len(flatten_identifiers(reports)) == 12
    assert identifiers_by_sender(reports)[deriver.get_address(1)] == reports[deriver.get_address(1)].identifiers


def test_run_reports_node_rejections_per_sender(network, node, deriver, runtime):
    batcher = Batcher(network.session, network.url, backoff_factor=0, show_progress=False)
    real_handle = node.handle
    seen = []

    def reject_second(request):
        seen.append(request["id"])
        if len(seen) == 2:
            return {"jsonrpc": "2.0", "id": request["id"], "error": {"code": -32000, "message": "nonce too low"}}
        return real_handle(request)

    node.handle = reject_second
    reports = Engine(network, batcher=batcher).run(runtime, make_context(network, [1], 3))

    report = reports[deriver.get_address(1)]
    assert len(report) == 3
    assert report.errors == ["nonce too low"]
    assert len(report.identifiers) == 2
    assert report.results[1].error == "nonce too low"


def test_run_with_no_accounts_sends_nothing(network, runtime):
    reports = Engine(network).run(runtime, make_context(network, [], 10))
    assert reports == {}
    assert network.session.calls == []


def test_small_total_limits_the_number_of_senders(network, node, deriver, runtime):
    batcher = Batcher(network.session, network.url, backoff_factor=0, show_progress=False)

    reports = Engine(network, batcher=batcher).run(runtime, make_context(network, list(range(1, 11)), 3))

    assert set(reports) == {deriver.get_address(i) for i in (1, 2, 3)}
    assert len(flatten_identifiers(reports)) == 3
    assert len(node.sent) == 3
    # Only the senders actually used were queried for nonces
    assert len(node.nonce_queries) == 3


def test_uneven_total_is_sent_exactly(network, node, deriver, runtime):
    batcher = Batcher(network.session, network.url, backoff_factor=0, show_progress=False)

    reports = Engine(network, batcher=batcher).run(runtime, make_context(network, [1, 2, 3, 4], 10))

    assert [len(reports[deriver.get_address(i)]) for i in (1, 2, 3, 4)] == [3, 3, 2, 2]
    assert len(node.sent) == 10


@pytest.mark.parametrize("total,senders,expected", [
    (12, 3, [4, 4, 4]),
    (10, 4, [3, 3, 2, 2]),
    (3, 3, [1, 1, 1]),
    (0, 2, [0, 0]),
    (5, 0, []),
])
def test_split_transactions(total, senders, expected):
    counts = split_transactions(total, senders)
    assert counts == expected
    if senders:
        assert sum(counts) == total
        assert max(counts) - min(counts) <= 1
