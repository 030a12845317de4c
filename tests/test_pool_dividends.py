from prometheus_client import REGISTRY
import pytest

from poolledger.ledger.errors import (
    InsufficientCustody,
    InvalidAmount,
    InvalidState,
    NothingToDistribute,
    Reentrancy,
    TransferFailed,
    Unauthorized,
)
from poolledger.ledger.model import UNIT

MANAGER = "manager"


def _seed_25_75(ledger):
    ledger.contribute("alice", 1 * UNIT, now=1)
    ledger.contribute("bob", 3 * UNIT, now=2)


def test_fund_and_distribute_25_75(ledger, settlement):
    _seed_25_75(ledger)
    assert ledger.add_dividends(MANAGER, 100) == 100
    alice_before = settlement.balance_of("alice")
    bob_before = settlement.balance_of("bob")

    paid = ledger.distribute_dividends(MANAGER, now=50)

    assert paid == {"alice": 25, "bob": 75}
    assert settlement.balance_of("alice") - alice_before == 25
    assert settlement.balance_of("bob") - bob_before == 75
    assert ledger.total_dividends == 0
    assert ledger.get_participant_info("alice").last_dividends_claimed == 50
    assert ledger.get_participant_info("bob").last_dividends_claimed == 50
    # contributions are not reduced by payouts
    assert ledger.get_participant_info("bob").contribution == 3 * UNIT


def test_rounding_remainder_stays_funded(ledger):
    for who in ("alice", "bob", "carol"):
        ledger.contribute(who, 1 * UNIT)
    ledger.add_dividends(MANAGER, 100)
    old_total = ledger.total_dividends

    paid = ledger.distribute_dividends(MANAGER)

    assert paid == {"alice": 33, "bob": 33, "carol": 33}
    assert ledger.total_dividends == 1
    assert sum(paid.values()) == old_total - ledger.total_dividends

    # the remainder is carried into the next round
    ledger.add_dividends(MANAGER, 99)
    assert ledger.total_dividends == 100
    assert ledger.distribute_dividends(MANAGER) == {"alice": 33, "bob": 33, "carol": 33}
    assert ledger.total_dividends == 1


def test_zero_share_participant_is_skipped(ledger, settlement):
    settlement.credit("bob", 200 * UNIT)
    ledger.contribute("alice", 1 * UNIT, now=5)
    ledger.contribute("bob", 150 * UNIT, now=6)  # alice ends up below 1%
    assert ledger.get_participant_info("alice").ownership_percentage == 0
    assert ledger.get_participant_info("bob").ownership_percentage == 99
    ledger.add_dividends(MANAGER, 10)

    paid = ledger.distribute_dividends(MANAGER, now=99)

    assert paid == {"bob": 9}
    assert ledger.get_participant_info("alice").last_dividends_claimed == 5
    assert ledger.total_dividends == 10 - sum(paid.values())


def test_small_pot_pays_nothing_but_keeps_funds(ledger):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 1)
    # floor(25*1/100) and floor(75*1/100) are both zero
    assert ledger.distribute_dividends(MANAGER) == {}
    assert ledger.total_dividends == 1


def test_distribute_with_nothing_pending(ledger, published):
    _seed_25_75(ledger)
    published.clear()
    with pytest.raises(NothingToDistribute):
        ledger.distribute_dividends(MANAGER)
    assert ledger.total_dividends == 0
    assert published == []


def test_insufficient_custody_blocks_distribution(ledger, settlement):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 100)
    settlement.custody = 50
    with pytest.raises(InsufficientCustody):
        ledger.distribute_dividends(MANAGER)
    assert ledger.total_dividends == 100
    assert settlement.custody_balance() == 50


def test_rejecting_recipient_fails_whole_distribution(ledger, settlement, published):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 100)
    settlement.on_receive("bob", lambda amount: False)
    balances = dict(settlement.balances)
    custody = settlement.custody
    published.clear()

    with pytest.raises(TransferFailed):
        ledger.distribute_dividends(MANAGER, now=77)

    # alice was paid before bob failed; that payment is rolled back too
    assert settlement.balances == balances
    assert settlement.custody == custody
    assert ledger.total_dividends == 100
    assert ledger.get_participant_info("alice").last_dividends_claimed == 1
    assert published == []

    # once the recipient accepts again the same round goes through
    settlement.on_receive("bob", None)
    assert ledger.distribute_dividends(MANAGER) == {"alice": 25, "bob": 75}


def test_recipient_calling_back_into_ledger_is_rejected(ledger, settlement):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 100)
    settlement.on_receive("bob", lambda amount: ledger.contribute("bob", 1 * UNIT))
    custody = settlement.custody

    with pytest.raises(Reentrancy):
        ledger.distribute_dividends(MANAGER)

    assert ledger.total_dividends == 100
    assert ledger.get_participant_info("bob").contribution == 3 * UNIT
    assert settlement.custody == custody
    # the guard is released after the failure
    settlement.on_receive("bob", None)
    assert ledger.distribute_dividends(MANAGER) == {"alice": 25, "bob": 75}


def test_hook_can_read_ledger_during_payout(ledger, settlement):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 100)
    seen = []
    settlement.on_receive("alice", lambda amount: seen.append(ledger.get_pool_metrics().total_dividends))
    ledger.distribute_dividends(MANAGER)
    assert seen == [100]


@pytest.mark.parametrize("caller", ["alice", "bob", "stranger"])
def test_non_manager_cannot_fund_distribute_or_close(ledger, settlement, caller):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 100)
    balances = dict(settlement.balances)

    with pytest.raises(Unauthorized):
        ledger.add_dividends(caller, 10)
    with pytest.raises(Unauthorized):
        ledger.distribute_dividends(caller)
    with pytest.raises(Unauthorized):
        ledger.close_pool(caller)

    assert settlement.balances == balances
    assert ledger.total_dividends == 100
    assert ledger.get_pool_metrics().state.value == "Active"


@pytest.mark.parametrize("amount", [0, -5, 2.5])
def test_add_dividends_requires_positive_integer(ledger, amount):
    with pytest.raises(InvalidAmount):
        ledger.add_dividends(MANAGER, amount)
    assert ledger.total_dividends == 0


def test_add_dividends_needs_manager_funds(ledger, settlement):
    settlement.balances[MANAGER] = 10
    with pytest.raises(TransferFailed):
        ledger.add_dividends(MANAGER, 11)
    assert ledger.total_dividends == 0
    assert settlement.balance_of(MANAGER) == 10


def test_add_dividends_moves_funds_into_custody(ledger, settlement):
    before = settlement.balance_of(MANAGER)
    ledger.add_dividends(MANAGER, 500)
    ledger.add_dividends(MANAGER, 250)
    assert ledger.total_dividends == 750
    assert settlement.balance_of(MANAGER) == before - 750
    assert settlement.custody_balance() == 750


def test_dividends_without_participants_stay_pending(ledger):
    ledger.add_dividends(MANAGER, 100)
    assert ledger.distribute_dividends(MANAGER) == {}
    assert ledger.total_dividends == 100


def test_funding_and_distribution_fail_once_closed(ledger):
    _seed_25_75(ledger)
    ledger.close_pool(MANAGER)
    with pytest.raises(InvalidState):
        ledger.add_dividends(MANAGER, 100)
    with pytest.raises(InvalidState):
        ledger.distribute_dividends(MANAGER)


def _rejected(operation: str, reason: str) -> float:
    val = REGISTRY.get_sample_value("pool_operations_rejected_total", {"operation": operation, "reason": reason})
    return 0.0 if val is None else float(val)


def test_crashing_recipient_fails_as_transfer_failed(ledger, settlement, published):
    _seed_25_75(ledger)
    ledger.add_dividends(MANAGER, 100)

    def crash(amount):
        raise RuntimeError("recipient code crashed")

    settlement.on_receive("alice", crash)
    balances = dict(settlement.balances)
    custody = settlement.custody
    before = _rejected("distribute_dividends", "transfer_failed")
    published.clear()

    with pytest.raises(TransferFailed) as exc:
        ledger.distribute_dividends(MANAGER, now=77)

    assert isinstance(exc.value.__cause__, RuntimeError)
    assert _rejected("distribute_dividends", "transfer_failed") - before == 1.0
    assert settlement.balances == balances
    assert settlement.custody == custody
    assert ledger.total_dividends == 100
    assert ledger.get_participant_info("alice").last_dividends_claimed == 1
    assert published == []


def test_collaborator_error_on_collect_fails_as_transfer_failed(ledger, settlement, monkeypatch):
    def broken(sender, amount):
        raise ConnectionError("custody backend unavailable")

    monkeypatch.setattr(settlement, "collect", broken)
    with pytest.raises(TransferFailed) as exc:
        ledger.contribute("alice", 1 * UNIT)
    assert isinstance(exc.value.__cause__, ConnectionError)
    assert not ledger.is_participant("alice")
    assert ledger.total_contributions == 0
