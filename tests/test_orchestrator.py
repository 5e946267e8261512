"""
Tests for LedgerOrchestrator: mutations, recompute scoping, rejections
and the audit trail.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from finance_tracker.models import (
    AlertSeverity,
    AuditEventType,
    BudgetState,
    BudgetStatus,
    ErrorKind,
    GoalStatus,
    LedgerSnapshot,
    MalformedPayloadError,
    MutationRequest,
    Operation,
    EntityKind,
)
from finance_tracker.orchestrator import LedgerOrchestrator, create_app_components
from finance_tracker.services.storage import InMemoryAuditStorage

from factories import NOW, make_account, make_budget, make_settings, make_snapshot, make_transaction


def expense(account_id, amount, day="2024-01-10", category="Food"):
    return {
        "date": day,
        "amount": amount,
        "description": f"{category} purchase",
        "category": category,
        "account_id": account_id,
        "type": "expense",
    }


def new_orchestrator():
    storage = InMemoryAuditStorage()
    orchestrator, _ = create_app_components(make_settings(), storage)
    return orchestrator, storage


def ledger_with_account(orchestrator, balance="1000"):
    result = orchestrator.create_account(
        LedgerSnapshot(),
        {"name": "Everyday", "type": "checking", "balance": balance},
        now=NOW,
    )
    assert result.success
    return result.snapshot, result.entity


class TestFoodBudgetScenario:
    """Spending climbs through safe, warning and danger on one Food budget."""
    
    def test_budget_progress_and_alerts_follow_spending(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        created = orchestrator.create_budget(snapshot, {
            "category": "Food",
            "limit": "500",
            "period": "monthly",
            "start_date": "2024-01-01",
        }, now=NOW)
        assert created.success
        snapshot = created.snapshot
        budget_id = created.entity.id
        
        for amount, day in (("-50", "2024-01-03"), ("-75", "2024-01-15")):
            result = orchestrator.create_transaction(snapshot, expense(account.id, amount, day), now=NOW)
            snapshot = result.snapshot
        
        progress = orchestrator.get_budget_progress(snapshot, budget_id, NOW)
        assert progress.spent == Decimal("125")
        assert progress.remaining == Decimal("375")
        assert progress.percentage == Decimal("25")
        assert progress.status == BudgetStatus.SAFE
        assert result.alerts == []
        
        result = orchestrator.create_transaction(snapshot, expense(account.id, "-300"), now=NOW)
        snapshot = result.snapshot
        progress = orchestrator.get_budget_progress(snapshot, budget_id, NOW)
        assert progress.spent == Decimal("425")
        assert progress.status == BudgetStatus.WARNING
        assert len(result.alerts) == 1
        assert result.alerts[0].severity == AlertSeverity.WARNING
        assert result.alerts[0].message == "You have used 85.0% of your Food budget"
        
        result = orchestrator.create_transaction(snapshot, expense(account.id, "-400"), now=NOW)
        snapshot = result.snapshot
        progress = orchestrator.get_budget_progress(snapshot, budget_id, NOW)
        assert progress.spent == Decimal("825")
        assert progress.raw_percentage == Decimal("165")
        assert progress.status == BudgetStatus.DANGER
        assert result.alerts[0].severity == AlertSeverity.DANGER
        assert result.alerts[0].message == "You have exceeded your Food budget by $325.00"
        
        assert snapshot.get_account(account.id).balance == Decimal("175")
        assert orchestrator.get_account_balance(snapshot, account.id) == Decimal("175")


class TestAccounts:
    
    def test_create_defaults_currency_and_opening_balance(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator, "250.50")
        assert account.currency == "USD"
        assert account.initial_balance == Decimal("250.50")
        assert account.balance == Decimal("250.50")
        assert account.created_at == NOW
    
    def test_invalid_account_reports_every_error(self):
        orchestrator, _ = new_orchestrator()
        snapshot = LedgerSnapshot()
        result = orchestrator.create_account(snapshot, {"name": "", "type": "wallet"}, now=NOW)
        assert result.success is False
        assert result.snapshot is snapshot
        assert result.error_kinds == [ErrorKind.VALIDATION]
        assert len(result.errors[0].errors) == 3
    
    def test_savings_cannot_open_negative(self):
        orchestrator, _ = new_orchestrator()
        result = orchestrator.create_account(
            LedgerSnapshot(),
            {"name": "Rainy day", "type": "savings", "balance": "-1"},
            now=NOW,
        )
        assert result.errors[0].errors == ["Savings accounts cannot have negative balance"]
    
    def test_balance_edit_resets_opening_balance(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator, "100")
        snapshot = orchestrator.create_transaction(
            snapshot, expense(account.id, "-40"), now=NOW
        ).snapshot
        
        result = orchestrator.update_account(snapshot, account.id, {"balance": "500"}, now=NOW)
        assert result.success
        assert result.entity.initial_balance == Decimal("500")
        assert result.entity.balance == Decimal("460")
    
    def test_rename_skips_balance_rules(self):
        """Test an overdrawn savings account can still be renamed."""
        orchestrator, _ = new_orchestrator()
        account = make_account("-20", account_type="savings")
        result = orchestrator.update_account(
            make_snapshot(accounts=[account]), account.id, {"name": "Holiday pot"}, now=NOW
        )
        assert result.success
        assert result.entity.name == "Holiday pot"
    
    def test_duplicate_id_is_invariant_error(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        result = orchestrator.create_account(
            snapshot,
            {"id": account.id, "name": "Copy", "type": "checking", "balance": "0"},
            now=NOW,
        )
        assert result.error_kinds == [ErrorKind.INVARIANT]
    
    def test_soft_delete_archives_and_removes_transactions(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        snapshot = orchestrator.create_transaction(
            snapshot, expense(account.id, "-40"), now=NOW
        ).snapshot
        
        result = orchestrator.delete_account(snapshot, account.id, now=NOW)
        assert result.success
        assert result.snapshot.get_account(account.id).is_archived is True
        assert result.snapshot.transactions == ()
        assert orchestrator.get_net_worth(result.snapshot) == Decimal("0")
        
        again = orchestrator.update_account(result.snapshot, account.id, {"name": "X"}, now=NOW)
        assert again.error_kinds == [ErrorKind.REFERENCE]
    
    def test_hard_delete_removes_the_record(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        result = orchestrator.delete_account(snapshot, account.id, hard=True, now=NOW)
        assert result.snapshot.accounts == ()
        assert result.entity.id == account.id


class TestTransactions:
    
    def test_unknown_account_is_reference_error(self):
        orchestrator, _ = new_orchestrator()
        snapshot = LedgerSnapshot()
        result = orchestrator.create_transaction(snapshot, expense("nope", "-10"), now=NOW)
        assert result.error_kinds == [ErrorKind.REFERENCE]
        assert result.snapshot is snapshot
    
    def test_sign_mismatch_is_a_warning(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        result = orchestrator.create_transaction(snapshot, expense(account.id, "10"), now=NOW)
        assert result.success
        assert result.warnings == ["Expense transaction has a positive amount"]
        assert result.snapshot.get_account(account.id).balance == Decimal("1010")
    
    def test_recompute_is_scoped_to_matching_budgets(self):
        orchestrator, _ = new_orchestrator()
        account = make_account()
        food = make_budget("Food")
        rent = make_budget("Rent")
        snapshot = make_snapshot(accounts=[account], budgets=[food, rent])
        
        result = orchestrator.create_transaction(snapshot, expense(account.id, "-10"), now=NOW)
        assert result.recompute.step("budget_progress").entity_ids == [food.id]
        assert result.recompute.step("goal_progress") is None
    
    def test_moving_a_transaction_refreshes_both_accounts(self):
        orchestrator, _ = new_orchestrator()
        first = make_account("100")
        second = make_account("100")
        snapshot = make_snapshot(accounts=[first, second])
        created = orchestrator.create_transaction(snapshot, expense(first.id, "-30"), now=NOW)
        transaction_id = created.entity.id
        
        moved = orchestrator.update_transaction(
            created.snapshot, transaction_id, {"account_id": second.id}, now=NOW
        )
        assert moved.success
        assert moved.snapshot.get_account(first.id).balance == Decimal("100")
        assert moved.snapshot.get_account(second.id).balance == Decimal("70")
    
    def test_delete_restores_balance(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator, "100")
        created = orchestrator.create_transaction(snapshot, expense(account.id, "-30"), now=NOW)
        deleted = orchestrator.delete_transaction(created.snapshot, created.entity.id, now=NOW)
        assert deleted.snapshot.get_account(account.id).balance == Decimal("100")
    
    def test_unexpected_field_is_malformed(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        payload = {**expense(account.id, "-10"), "balance": "5"}
        with pytest.raises(MalformedPayloadError):
            orchestrator.create_transaction(snapshot, payload, now=NOW)
    
    def test_non_mapping_payload_is_malformed(self):
        orchestrator, _ = new_orchestrator()
        with pytest.raises(MalformedPayloadError):
            orchestrator.create_transaction(LedgerSnapshot(), ["not", "a", "record"], now=NOW)
    
    def test_preview_does_not_commit(self):
        orchestrator, _ = new_orchestrator()
        account = make_account()
        snapshot = make_snapshot(
            accounts=[account],
            transactions=[make_transaction(account.id, "-480")],
            budgets=[make_budget("Food", "500")],
        )
        preview = orchestrator.preview_transaction(snapshot, expense(account.id, "-50"), now=NOW)
        assert preview.validation.is_valid
        assert preview.would_exceed_budget is True
        assert len(snapshot.transactions) == 1


class TestBudgets:
    
    def _payload(self, **overrides):
        payload = {
            "category": "Food",
            "limit": "500",
            "period": "monthly",
            "start_date": "2024-01-01",
        }
        payload.update(overrides)
        return payload
    
    def test_second_active_budget_for_category_is_rejected(self):
        orchestrator, _ = new_orchestrator()
        first = orchestrator.create_budget(LedgerSnapshot(), self._payload(), now=NOW)
        second = orchestrator.create_budget(first.snapshot, self._payload(limit="300"), now=NOW)
        assert second.success is False
        assert second.error_kinds == [ErrorKind.INVARIANT]
        assert second.errors[0].message == "An active budget for category Food already exists"
        assert second.snapshot is first.snapshot
    
    def test_non_overlapping_or_other_category_is_allowed(self):
        orchestrator, _ = new_orchestrator()
        snapshot = orchestrator.create_budget(LedgerSnapshot(), self._payload(), now=NOW).snapshot
        february = orchestrator.create_budget(snapshot, self._payload(start_date="2024-02-01"), now=NOW)
        rent = orchestrator.create_budget(snapshot, self._payload(category="Rent"), now=NOW)
        assert february.success
        assert rent.success
    
    def test_end_date_follows_new_start_date(self):
        orchestrator, _ = new_orchestrator()
        created = orchestrator.create_budget(LedgerSnapshot(), self._payload(), now=NOW)
        updated = orchestrator.update_budget(
            created.snapshot, created.entity.id, {"start_date": "2024-03-01"}, now=NOW
        )
        assert updated.entity.end_date == date(2024, 3, 31)
    
    def test_rolled_budget_cannot_be_reactivated(self):
        orchestrator, _ = new_orchestrator()
        budget = make_budget()
        feb = datetime(2024, 2, 2)
        rolled = orchestrator.rollover_budget(make_snapshot(budgets=[budget]), budget.id, feb)
        result = orchestrator.update_budget(rolled.snapshot, budget.id, {"is_active": True}, now=feb)
        assert result.error_kinds == [ErrorKind.INVARIANT]
        assert orchestrator.get_budget_state(rolled.snapshot, budget.id, feb) == BudgetState.ROLLED
    
    def test_unknown_budget(self):
        orchestrator, _ = new_orchestrator()
        result = orchestrator.delete_budget(LedgerSnapshot(), "missing", now=NOW)
        assert result.error_kinds == [ErrorKind.REFERENCE]


class TestGoals:
    
    def _create(self, orchestrator, snapshot, account, **overrides):
        payload = {
            "name": "Emergency fund",
            "target_amount": "1000",
            "target_date": (NOW + timedelta(days=100)).isoformat(),
            "account_id": account.id,
        }
        payload.update(overrides)
        return orchestrator.create_goal(snapshot, payload, now=NOW)
    
    def test_create_defaults_to_zero_progress(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        result = self._create(orchestrator, snapshot, account)
        assert result.success
        assert result.entity.current_amount == Decimal("0")
        assert result.entity.is_completed is False
    
    def test_past_target_date_is_rejected(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        result = self._create(
            orchestrator, snapshot, account, target_date=(NOW - timedelta(days=1)).isoformat()
        )
        assert result.errors[0].errors == [
            "Target date should be in the future for incomplete goals"
        ]
    
    def test_completion_follows_current_amount(self):
        """Test current == target completes and one unit below reopens."""
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        goal = self._create(orchestrator, snapshot, account)
        
        done = orchestrator.update_goal(goal.snapshot, goal.entity.id, {"current_amount": "1000"}, now=NOW)
        assert done.entity.is_completed is True
        
        reopened = orchestrator.update_goal(done.snapshot, goal.entity.id, {"current_amount": "999"}, now=NOW)
        assert reopened.entity.is_completed is False
    
    def test_contributions_complete_the_goal(self):
        orchestrator, storage = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        goal = self._create(orchestrator, snapshot, account)
        
        half = orchestrator.add_contribution(goal.snapshot, goal.entity.id, "500", now=NOW)
        assert half.entity.current_amount == Decimal("500")
        assert half.entity.is_completed is False
        
        full = orchestrator.add_contribution(half.snapshot, goal.entity.id, Decimal("500"), now=NOW)
        assert full.entity.is_completed is True
        progress = orchestrator.get_goal_progress(full.snapshot, goal.entity.id, NOW)
        assert progress.status == GoalStatus.COMPLETED
        
        events = storage.get_events_by_correlation_id(full.correlation_id)
        assert AuditEventType.GOAL_COMPLETED in [e.event_type for e in events]
    
    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_non_positive_contribution_is_rejected(self, amount):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        goal = self._create(orchestrator, snapshot, account)
        result = orchestrator.add_contribution(goal.snapshot, goal.entity.id, amount, now=NOW)
        assert result.errors[0].errors == ["Contribution amount must be greater than zero"]
        assert result.snapshot is goal.snapshot
    
    def test_overdue_goal_can_still_be_renamed(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        goal = self._create(orchestrator, snapshot, account)
        later = NOW + timedelta(days=200)
        renamed = orchestrator.update_goal(goal.snapshot, goal.entity.id, {"name": "Buffer"}, now=later)
        assert renamed.success
        assert orchestrator.get_goal_progress(renamed.snapshot, goal.entity.id, later).status == GoalStatus.OVERDUE
    
    def test_slow_progress_goal_reports_without_projection(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        goal = self._create(
            orchestrator, snapshot, account,
            target_amount="30000",
            target_date=(NOW + timedelta(days=20)).isoformat(),
        )
        later = NOW + timedelta(days=1)
        result = orchestrator.add_contribution(goal.snapshot, goal.entity.id, "0.01", now=later)
        assert result.success
    
        progress = orchestrator.get_goal_progress(result.snapshot, goal.entity.id, later)
        assert progress.projected_completion_date is None
        assert progress.status == GoalStatus.BEHIND
        alerts = orchestrator.get_alerts(result.snapshot, later)
        assert [a.severity for a in alerts] == [AlertSeverity.WARNING]
    
    def test_offset_target_date_is_stored_as_local_time(self):
        orchestrator, _ = new_orchestrator()
        snapshot, account = ledger_with_account(orchestrator)
        result = self._create(orchestrator, snapshot, account, target_date="2025-01-01T00:00:00Z")
        assert result.success
        expected = datetime(2025, 1, 1, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert result.entity.target_date == expected
        assert orchestrator.get_goal_progress(result.snapshot, result.entity.id, NOW).days_remaining > 0
    
    def test_goal_requires_live_account(self):
        orchestrator, _ = new_orchestrator()
        result = self._create(orchestrator, LedgerSnapshot(), make_account())
        assert result.error_kinds == [ErrorKind.REFERENCE]


class TestApply:
    
    def test_dispatches_dict_requests(self):
        orchestrator, _ = new_orchestrator()
        result = orchestrator.apply(LedgerSnapshot(), {
            "entity": "account",
            "operation": "create",
            "payload": {"name": "Everyday", "type": "checking", "balance": "10"},
        }, now=NOW)
        assert result.success
        
        deleted = orchestrator.apply(result.snapshot, MutationRequest(
            entity=EntityKind.ACCOUNT,
            operation=Operation.DELETE,
            entity_id=result.entity.id,
            payload={"hard": True},
        ), now=NOW)
        assert deleted.snapshot.accounts == ()
    
    @pytest.mark.parametrize("request_data", [
        "create account",
        {"entity": "invoice", "operation": "create"},
        {"entity": "account", "operation": "update", "payload": {}},
    ])
    def test_malformed_requests_raise(self, request_data):
        orchestrator, _ = new_orchestrator()
        with pytest.raises(MalformedPayloadError):
            orchestrator.apply(LedgerSnapshot(), request_data, now=NOW)
    
    def test_delete_with_payload_is_malformed(self):
        orchestrator, _ = new_orchestrator()
        with pytest.raises(MalformedPayloadError):
            orchestrator.apply(LedgerSnapshot(), {
                "entity": "goal",
                "operation": "delete",
                "entity_id": "g-1",
                "payload": {"force": True},
            }, now=NOW)


class TestRefreshAndAudit:
    
    def test_refresh_repairs_stale_cache_and_is_idempotent(self):
        orchestrator, _ = new_orchestrator()
        account = make_account("100").model_copy(update={"balance": Decimal("999")})
        snapshot = make_snapshot(
            accounts=[account],
            transactions=[make_transaction(account.id, "-25")],
        )
        first = orchestrator.refresh(snapshot, NOW)
        assert first.snapshot.get_account(account.id).balance == Decimal("75")
        
        second = orchestrator.refresh(first.snapshot, NOW)
        assert second.snapshot == first.snapshot
        assert second.recompute.ok
    
    def test_every_event_of_a_mutation_shares_its_correlation_id(self):
        orchestrator, storage = new_orchestrator()
        account = make_account()
        snapshot = make_snapshot(accounts=[account], budgets=[make_budget("Food", "100")])
        result = orchestrator.create_transaction(snapshot, expense(account.id, "-90"), now=NOW)
        
        events = storage.get_events_by_correlation_id(result.correlation_id)
        types = [e.event_type for e in events]
        assert AuditEventType.TRANSACTION_CREATED in types
        assert AuditEventType.ALERT_RAISED in types
    
    def test_rejections_are_audited(self):
        orchestrator, storage = new_orchestrator()
        result = orchestrator.create_transaction(LedgerSnapshot(), expense("nope", "-1"), now=NOW)
        events = storage.get_events_by_correlation_id(result.correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.REFERENCE_ERROR]
    
    def test_progress_queries_cover_active_budgets_and_all_goals(self):
        orchestrator, _ = new_orchestrator()
        account = make_account()
        active = make_budget("Food", "100")
        switched_off = make_budget("Rent", "100", is_active=False)
        snapshot = make_snapshot(accounts=[account], budgets=[active, switched_off])
        snapshot = orchestrator.create_goal(snapshot, {
            "name": "Bike",
            "target_amount": "700",
            "target_date": "2024-07-01T00:00:00",
            "account_id": account.id,
        }, now=NOW).snapshot
        
        budgets = orchestrator.get_all_budget_progress(snapshot, NOW)
        assert [p.budget_id for p in budgets] == [active.id]
        goals = orchestrator.get_all_goal_progress(snapshot, NOW)
        assert [p.name for p in goals] == ["Bike"]
        suggestion = orchestrator.suggest_contribution(snapshot, goals[0].goal_id, NOW)
        assert suggestion.weekly == suggestion.daily * 7
        assert orchestrator.suggest_contribution(snapshot, "missing", NOW) is None
    
    def test_expired_budget_left_active_is_not_reported(self):
        """Test a December budget nobody rolled over, seen in mid January."""
        orchestrator, _ = new_orchestrator()
        account = make_account()
        december = make_budget("Food", "100", start=date(2023, 12, 1))
        snapshot = make_snapshot(
            accounts=[account],
            transactions=[make_transaction(account.id, "-150", day=date(2023, 12, 10))],
            budgets=[december],
        )
        mid_january = datetime(2024, 1, 15)
        assert orchestrator.get_alerts(snapshot, mid_january) == []
        assert orchestrator.get_all_budget_progress(snapshot, mid_january) == []
        assert orchestrator.refresh(snapshot, mid_january).alerts == []
        assert orchestrator.get_budget_state(snapshot, december.id, mid_january) == BudgetState.EXPIRED

    def test_dismissed_alerts_are_filtered(self):
        orchestrator, _ = new_orchestrator()
        account = make_account()
        budget = make_budget("Food", "100")
        snapshot = make_snapshot(
            accounts=[account],
            transactions=[make_transaction(account.id, "-95")],
            budgets=[budget],
        )
        assert len(orchestrator.get_alerts(snapshot, NOW)) == 1
        assert orchestrator.get_alerts(snapshot, NOW, dismissed_ids={budget.id}) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
