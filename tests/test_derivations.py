"""Tests for the pure derivation functions."""

import itertools

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from finance_tracker.engine import (
    account_balance,
    budget_progress,
    budget_spent,
    goal_progress,
    net_worth,
    projected_completion_date,
    refresh_account,
    required_daily_contribution,
    suggest_contribution,
)
from finance_tracker.models import BudgetStatus, GoalStatus, TransactionType

from factories import NOW, make_account, make_budget, make_goal, make_settings, make_transaction


class TestAccountBalance:
    
    def test_balance_is_opening_plus_signed_sum(self):
        account = make_account("1000")
        transactions = [
            make_transaction(account.id, "-50"),
            make_transaction(account.id, "2500", category="Salary"),
            make_transaction(account.id, "-19.99"),
        ]
        assert account_balance(account, transactions) == Decimal("3430.01")
    
    def test_other_accounts_are_ignored(self):
        account = make_account("0")
        other = make_account("0")
        transactions = [make_transaction(other.id, "-50")]
        assert account_balance(account, transactions) == Decimal("0")
    
    def test_balance_is_independent_of_insertion_order(self):
        """Test the balance for every ordering of the same transactions."""
        account = make_account("100")
        transactions = [
            make_transaction(account.id, amount)
            for amount in ("-10.10", "200", "-0.01", "-75.50")
        ]
        balances = {
            account_balance(account, order)
            for order in itertools.permutations(transactions)
        }
        assert balances == {Decimal("214.39")}
    
    def test_refresh_account_updates_cache(self):
        account = make_account("100")
        refreshed = refresh_account(account, [make_transaction(account.id, "-30")], NOW)
        assert refreshed.balance == Decimal("70")
        assert refreshed.initial_balance == Decimal("100")
        assert refreshed.updated_at == NOW
    
    def test_refresh_account_is_noop_when_consistent(self):
        account = make_account("100")
        assert refresh_account(account, [], NOW) is account
    
    def test_net_worth_converts_and_skips_archived(self):
        accounts = [
            make_account("100"),
            make_account("100", currency="EUR"),
            make_account("999", is_archived=True),
        ]
        assert net_worth(accounts, "USD") == Decimal("208.00")


class TestBudgetProgress:
    
    def test_food_budget_scenario(self):
        """Test two Food expenses against a 500 monthly budget."""
        account = make_account()
        budget = make_budget("Food", "500", start=date(2024, 1, 1))
        transactions = [
            make_transaction(account.id, "-50", day=date(2024, 1, 3)),
            make_transaction(account.id, "-75", day=date(2024, 1, 15)),
        ]
        progress = budget_progress(budget, transactions, NOW, make_settings())
        assert progress.spent == Decimal("125")
        assert progress.remaining == Decimal("375")
        assert progress.percentage == Decimal("25")
        assert progress.status == BudgetStatus.SAFE
        assert progress.days_remaining == 12
    
    def test_window_edges_are_inclusive(self):
        """Test transactions exactly on the start and end dates count."""
        budget = make_budget("Food", "500", start=date(2024, 1, 1))
        inside = [
            make_transaction("acc-1", "-10", day=date(2024, 1, 1)),
            make_transaction("acc-1", "-20", day=date(2024, 1, 31)),
        ]
        outside = [
            make_transaction("acc-1", "-100", day=date(2023, 12, 31)),
            make_transaction("acc-1", "-200", day=date(2024, 2, 1)),
        ]
        assert budget_spent(budget, inside + outside) == Decimal("30")
    
    def test_only_expenses_count(self):
        budget = make_budget("Food")
        transactions = [
            make_transaction("acc-1", "-40"),
            make_transaction("acc-1", "15", transaction_type=TransactionType.INCOME),
        ]
        assert budget_spent(budget, transactions) == Decimal("40")
    
    def test_expense_with_positive_amount_counts_as_absolute(self):
        budget = make_budget("Food")
        transactions = [
            make_transaction("acc-1", "40", transaction_type=TransactionType.EXPENSE),
        ]
        assert budget_spent(budget, transactions) == Decimal("40")
    
    @pytest.mark.parametrize("category", ["food", "FOOD", "Foods", "Groceries"])
    def test_category_match_is_exact(self, category):
        """Test that categories differing in case or spelling never match."""
        budget = make_budget("Food")
        transactions = [make_transaction("acc-1", "-40", category=category)]
        assert budget_spent(budget, transactions) == Decimal("0")
    
    def test_raw_percentage_is_uncapped(self):
        """Test that 125% stays distinguishable from 100%."""
        budget = make_budget("Food", "400")
        transactions = [make_transaction("acc-1", "-500")]
        progress = budget_progress(budget, transactions, NOW, make_settings())
        assert progress.percentage == Decimal("100")
        assert progress.raw_percentage == Decimal("125")
        assert progress.remaining == Decimal("0")
        assert progress.is_over_budget is True
        assert progress.status == BudgetStatus.DANGER
    
    def test_days_remaining_after_end_is_zero(self):
        budget = make_budget(start=date(2024, 1, 1))
        progress = budget_progress(budget, [], datetime(2024, 3, 1), make_settings())
        assert progress.days_remaining == 0


class TestGoalProgress:
    
    def test_required_daily_contribution_scenario(self):
        """Test (10000 - 2500) / 100 days == 75.00 exactly."""
        goal = make_goal(target="10000", current="2500", days_ahead=100)
        assert required_daily_contribution(goal, NOW) == Decimal("75.00")
    
    def test_required_daily_is_zero_once_achieved(self):
        goal = make_goal(target="1000", current="1000")
        assert required_daily_contribution(goal, NOW) == Decimal("0")
    
    def test_required_daily_when_due_is_whole_remainder(self):
        """Test that a past target date divides by one day."""
        goal = make_goal(target="1000", current="400", days_ahead=-5)
        assert required_daily_contribution(goal, NOW) == Decimal("600.00")
    
    def test_days_remaining_rounds_partial_days_up(self):
        goal = make_goal(days_ahead=0).model_copy(
            update={"target_date": NOW + timedelta(hours=1)}
        )
        assert goal_progress(goal, NOW).days_remaining == 1
    
    def test_no_projection_without_progress(self):
        """Test the sentinel: zero progress means no projection."""
        goal = make_goal(target="1000", current="0", created_at=NOW - timedelta(days=10))
        assert projected_completion_date(goal, NOW) is None
        progress = goal_progress(goal, NOW)
        assert progress.has_projection is False
        assert progress.is_on_track is False
    
    def test_projection_past_calendar_limit_is_unavailable(self):
        """A cent of progress on a large target would finish after year 9999."""
        goal = make_goal(
            target="30000",
            current="0.01",
            days_ahead=200,
            created_at=NOW - timedelta(days=1),
        )
        assert projected_completion_date(goal, NOW) is None
        progress = goal_progress(goal, NOW)
        assert progress.has_projection is False
        assert progress.status == GoalStatus.BEHIND
    
    def test_linear_projection(self):
        goal = make_goal(
            target="5000",
            current="1000",
            days_ahead=30,
            created_at=NOW - timedelta(days=10),
        )
        projected = projected_completion_date(goal, NOW)
        assert projected == NOW + timedelta(days=40)
        progress = goal_progress(goal, NOW)
        assert progress.is_on_track is False
        assert progress.status == GoalStatus.BEHIND
    
    def test_on_track_goal(self):
        goal = make_goal(
            target="1000",
            current="500",
            days_ahead=30,
            created_at=NOW - timedelta(days=10),
        )
        progress = goal_progress(goal, NOW)
        assert progress.projected_completion_date == NOW + timedelta(days=10)
        assert progress.status == GoalStatus.ON_TRACK
    
    def test_overdue_goal(self):
        goal = make_goal(target="1000", current="100", days_ahead=-1)
        assert goal_progress(goal, NOW).status == GoalStatus.OVERDUE
    
    def test_completed_goal(self):
        goal = make_goal(target="1000", current="1000", is_completed=True, days_ahead=-1)
        progress = goal_progress(goal, NOW)
        assert progress.status == GoalStatus.COMPLETED
        assert progress.projected_completion_date == NOW
    
    def test_percentage_capped_only_for_display(self):
        goal = make_goal(target="1000", current="1100", is_completed=True)
        progress = goal_progress(goal, NOW)
        assert progress.percentage == Decimal("110")
        assert progress.display_percentage == Decimal("100")
    
    def test_milestones(self):
        goal = make_goal(target="1000", current="500")
        milestones = goal_progress(goal, NOW).milestones
        assert [m.percentage for m in milestones] == [25, 50, 75, 100]
        assert [m.achieved for m in milestones] == [True, True, False, False]
    
    def test_contribution_suggestion(self):
        goal = make_goal(target="10000", current="2500", days_ahead=100)
        suggestion = suggest_contribution(goal, NOW)
        assert suggestion.daily == Decimal("75.00")
        assert suggestion.weekly == Decimal("525.00")
        assert suggestion.monthly == Decimal("2250.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
