"""Tests for the overspend guard."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from budget_engine.engine import ConfirmationExpiredError, OverspendGuard, OverspendPending
from budget_engine.models.audit import AuditEventType
from budget_engine.models.guard import GuardState, ProposalKind
from budget_engine.services import LedgerAccessor
from budget_engine.services.storage import (
    InMemoryLedgerStorage,
    NotFoundError,
    PersistenceError,
)
from budget_engine.validation import ValidationError

from conftest import OTHER_USER, USER, Clock, add_income, budget, expense, income_tx


class FlakyLedgerStorage(InMemoryLedgerStorage):
    """Fails the next N transaction inserts."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    async def insert_transaction(self, draft):
        if self.failures:
            self.failures -= 1
            raise PersistenceError("sheet unavailable")
        return await super().insert_transaction(draft)


async def _seed(ledger, income="1000", spent="800"):
    await add_income(ledger, income)
    if spent:
        await ledger.insert_transaction(expense(spent))


@pytest.mark.asyncio
class TestAdmission:

    async def test_fits_within_income(self, guard, ledger):
        await _seed(ledger)

        decision = await guard.evaluate_transaction(USER, expense("150"))

        assert decision.state == GuardState.ADMITTED
        assert decision.record is not None
        assert decision.token is None
        assert decision.shortfall == Decimal("0")
        assert len(await ledger.list_transactions(USER)) == 2

    async def test_exactly_at_income_is_admitted(self, guard, ledger):
        await _seed(ledger)
        decision = await guard.evaluate_transaction(USER, expense("200"))
        assert decision.is_admitted

    async def test_overspend_waits_for_confirmation(self, guard, ledger):
        await _seed(ledger)

        decision = await guard.evaluate_transaction(USER, expense("250"))

        assert decision.state == GuardState.AWAITING_CONFIRMATION
        assert decision.shortfall == Decimal("50")
        assert decision.projected_expenses == Decimal("1050")
        assert decision.token
        assert decision.expires_at is not None
        assert decision.record is None
        assert len(await ledger.list_transactions(USER)) == 1
        with pytest.raises(OverspendPending):
            decision.raise_if_pending()

    async def test_income_transaction_always_admitted(self, guard, ledger):
        decision = await guard.evaluate_transaction(USER, income_tx("500"))
        assert decision.is_admitted
        assert decision.kind == ProposalKind.TRANSACTION

    async def test_no_income_means_any_expense_waits(self, guard):
        decision = await guard.evaluate_transaction(USER, expense("0.01"))
        assert decision.requires_confirmation
        assert decision.shortfall == Decimal("0.01")

    async def test_budget_checked_against_remaining_income(self, guard, ledger, budgets):
        await _seed(ledger)

        fits = await guard.evaluate_budget(USER, budget("200"))
        assert fits.is_admitted
        assert fits.kind == ProposalKind.BUDGET

        too_big = await guard.evaluate_budget(USER, budget("300", name="Rent"))
        assert too_big.requires_confirmation
        assert too_big.shortfall == Decimal("100")
        assert len(await budgets.list_budgets(USER)) == 1

    async def test_draft_for_another_user_rejected(self, guard):
        with pytest.raises(ValidationError):
            await guard.evaluate_transaction(USER, expense("10", user_key=OTHER_USER))


@pytest.mark.asyncio
class TestConfirmation:

    async def test_confirm_persists_exactly_once(self, guard, ledger):
        await _seed(ledger)
        decision = await guard.evaluate_transaction(USER, expense("250"))

        record = await guard.confirm(decision.token)
        assert record.amount == Decimal("250")
        assert len(await ledger.list_transactions(USER)) == 2

        with pytest.raises(NotFoundError):
            await guard.confirm(decision.token)
        assert len(await ledger.list_transactions(USER)) == 2

    async def test_concurrent_confirms_write_once(self, guard, ledger):
        await _seed(ledger)
        decision = await guard.evaluate_transaction(USER, expense("250"))

        results = await asyncio.gather(
            guard.confirm(decision.token),
            guard.confirm(decision.token),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, NotFoundError)) == 1
        assert len(await ledger.list_transactions(USER)) == 2

    async def test_confirm_budget(self, guard, ledger, budgets):
        await _seed(ledger)
        decision = await guard.evaluate_budget(USER, budget("500"))
        record = await guard.confirm(decision.token)
        assert (await budgets.get_budget(record.id, USER)).amount == Decimal("500")

    async def test_cancel_persists_nothing(self, guard, ledger):
        await _seed(ledger)
        decision = await guard.evaluate_transaction(USER, expense("250"))

        rejected = await guard.cancel(decision.token)

        assert rejected.state == GuardState.REJECTED
        assert rejected.token is None
        assert len(await ledger.list_transactions(USER)) == 1
        with pytest.raises(NotFoundError):
            await guard.confirm(decision.token)

    async def test_unknown_token(self, guard):
        with pytest.raises(NotFoundError):
            await guard.confirm("nope")
        with pytest.raises(NotFoundError):
            await guard.cancel("nope")

    async def test_failed_write_keeps_proposal(self, aggregation, budgets, audit_logger):
        storage = FlakyLedgerStorage(failures=0)
        ledger = LedgerAccessor(storage, timeout_seconds=1.0)
        aggregation.ledger = ledger
        guard = OverspendGuard(aggregation, ledger, budgets, audit_logger=audit_logger)

        decision = await guard.evaluate_transaction(USER, expense("25"))
        assert decision.requires_confirmation

        storage.failures = 1
        with pytest.raises(PersistenceError):
            await guard.confirm(decision.token)
        assert guard.pending_count == 1

        record = await guard.confirm(decision.token)
        assert record.amount == Decimal("25")
        assert guard.pending_count == 0

    async def test_audit_trail_shares_correlation_id(self, guard, ledger, audit_storage):
        await _seed(ledger)
        decision = await guard.evaluate_transaction(USER, expense("250"))
        await guard.confirm(decision.token)

        events = await audit_storage.get_events_by_correlation_id(decision.correlation_id)
        types = [e.event_type for e in events]
        assert types == [
            AuditEventType.OVERSPEND_PENDING,
            AuditEventType.TRANSACTION_SAVED,
            AuditEventType.USER_CONFIRMED,
        ]


@pytest.mark.asyncio
class TestExpiry:

    @pytest.fixture
    def clock(self):
        return Clock()

    @pytest.fixture
    def timed_guard(self, aggregation, ledger, budgets, audit_logger, clock):
        return OverspendGuard(
            aggregation,
            ledger,
            budgets,
            audit_logger=audit_logger,
            ttl_seconds=60,
            clock=clock,
        )

    async def test_confirm_within_window(self, timed_guard, clock):
        decision = await timed_guard.evaluate_transaction(USER, expense("10"))
        assert decision.expires_at == clock.now + timedelta(seconds=60)

        clock.now += timedelta(seconds=59)
        assert (await timed_guard.confirm(decision.token)).amount == Decimal("10")

    async def test_expired_token(self, timed_guard, ledger, clock):
        decision = await timed_guard.evaluate_transaction(USER, expense("10"))

        clock.now += timedelta(seconds=61)
        with pytest.raises(ConfirmationExpiredError):
            await timed_guard.confirm(decision.token)

        # Expired proposals are gone for good
        with pytest.raises(NotFoundError):
            await timed_guard.confirm(decision.token)
        assert await ledger.list_transactions(USER) == []

    async def test_expired_is_a_not_found(self):
        assert issubclass(ConfirmationExpiredError, NotFoundError)

    async def test_purge_expired(self, timed_guard, clock):
        await timed_guard.evaluate_transaction(USER, expense("10"))
        clock.now += timedelta(seconds=30)
        await timed_guard.evaluate_transaction(USER, expense("20"))

        clock.now += timedelta(seconds=31)
        assert await timed_guard.purge_expired() == 1
        assert timed_guard.pending_count == 1

    async def test_evaluation_sweeps_abandoned_proposals(self, timed_guard, clock):
        for _ in range(5):
            await timed_guard.evaluate_transaction(USER, expense("10"))
            clock.now += timedelta(days=1)

        assert timed_guard.pending_count == 1


@pytest.mark.asyncio
class TestSerialization:

    async def test_concurrent_proposals_cannot_both_pass(self, guard, ledger):
        await add_income(ledger, "1000")

        first, second = await asyncio.gather(
            guard.evaluate_transaction(USER, expense("600")),
            guard.evaluate_transaction(USER, expense("600")),
        )

        states = sorted([first.state, second.state], key=lambda s: s.value)
        assert states == [GuardState.ADMITTED, GuardState.AWAITING_CONFIRMATION]
        assert len(await ledger.list_transactions(USER)) == 1

    async def test_users_are_independent(self, guard, ledger):
        await add_income(ledger, "100")
        await add_income(ledger, "100", user_key=OTHER_USER)

        decisions = await asyncio.gather(
            guard.evaluate_transaction(USER, expense("100")),
            guard.evaluate_transaction(OTHER_USER, expense("100", user_key=OTHER_USER)),
        )
        assert all(d.is_admitted for d in decisions)

    async def test_locks_released_after_use(self, guard, ledger):
        await add_income(ledger, "100")
        await asyncio.gather(
            guard.evaluate_transaction(USER, expense("10")),
            guard.evaluate_transaction(OTHER_USER, expense("10", user_key=OTHER_USER)),
        )
        assert len(guard._locks) == 0
        assert len(ledger._source_locks) == 0
