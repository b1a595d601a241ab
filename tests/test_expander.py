"""Tests for the recurrence expander."""

from datetime import date
from decimal import Decimal

from moneta.models.ledger import SubscriptionType, TransactionType
from moneta.scheduler.clock import date_to_ms
from moneta.scheduler.expander import expand_due, occurrence_id

from tests.conftest import BUSINESS_ID, NOW, make_rule


class TestCatchUp:
    """A dormant rule generates one transaction per missed period."""

    def test_three_missed_months_generate_three_transactions(self):
        rule = make_rule(start_date="2024-01-20")

        result = expand_due(rule, NOW)

        dates = [tx.transaction_date for tx in result.transactions]
        assert dates == [date(2024, 1, 20), date(2024, 2, 20), date(2024, 3, 20)]

    def test_run_state_is_advanced(self):
        rule = make_rule(start_date="2024-01-20")

        result = expand_due(rule, NOW)

        assert result.rule.last_run_at == date_to_ms(date(2024, 3, 20))
        assert result.rule.next_run_at == date_to_ms(date(2024, 4, 20))
        assert result.rule.next_run_at > result.rule.last_run_at

    def test_resumes_from_next_run_at(self):
        rule = make_rule(
            start_date="2023-01-01",
            next_run_at=date_to_ms(date(2024, 3, 20)),
        )

        result = expand_due(rule, NOW)

        assert [tx.transaction_date for tx in result.transactions] == [date(2024, 3, 20)]

    def test_future_start_generates_nothing(self):
        rule = make_rule(start_date="2024-05-01")

        result = expand_due(rule, NOW)

        assert result.transactions == []
        assert result.rule.next_run_at is None

    def test_occurrence_exactly_now_is_due(self):
        rule = make_rule(next_run_at=NOW)

        result = expand_due(rule, NOW)

        assert len(result.transactions) == 1


class TestGeneratedTransactions:
    """Tests for the shape of generated transactions."""

    def test_expense_amount_is_negative(self):
        result = expand_due(make_rule(is_expense=True), NOW)
        assert all(tx.amount == Decimal("-49.00") for tx in result.transactions)

    def test_income_amount_is_positive(self):
        result = expand_due(make_rule(is_expense=False), NOW)
        assert all(tx.amount == Decimal("49.00") for tx in result.transactions)

    def test_fields_copied_from_rule(self):
        rule = make_rule()
        tx = expand_due(rule, NOW).transactions[0]

        assert tx.id == f"rec-r_hosting-{date_to_ms(date(2024, 1, 20))}"
        assert tx.recurring_id == rule.id
        assert tx.business_id == BUSINESS_ID
        assert tx.account_id == rule.account_id
        assert tx.category_id == rule.category_id
        assert tx.description == "Hosting"
        assert tx.subscription_type == SubscriptionType.RECURRING
        assert tx.created_at == NOW

    def test_missing_description_falls_back_to_kind(self):
        tx = expand_due(make_rule(description=None, is_expense=True), NOW).transactions[0]
        assert tx.description == "Expense"

        tx = expand_due(make_rule(description="", is_expense=False), NOW).transactions[0]
        assert tx.description == "Income"

    def test_transaction_type_is_passed_through(self):
        result = expand_due(make_rule(), NOW, TransactionType.PERSONAL)
        assert all(tx.type == TransactionType.PERSONAL for tx in result.transactions)


class TestEndDate:
    """Tests for end-date cutoff and deactivation."""

    def test_end_date_on_second_occurrence(self):
        """End date equal to the 2nd occurrence: two transactions, then deactivated."""
        rule = make_rule(start_date="2024-01-20", end_date="2024-02-20")

        result = expand_due(rule, NOW)

        assert len(result.transactions) == 2
        assert result.deactivated is True
        assert result.rule.active is False

    def test_deactivated_rule_produces_nothing_afterwards(self):
        rule = make_rule(start_date="2024-01-20", end_date="2024-02-20")
        first = expand_due(rule, NOW)

        again = expand_due(first.rule, NOW)

        assert again.transactions == []

    def test_end_date_in_future_keeps_rule_active(self):
        rule = make_rule(start_date="2024-01-20", end_date="2024-12-31")

        result = expand_due(rule, NOW)

        assert len(result.transactions) == 3
        assert result.rule.active is True
        assert result.deactivated is False

    def test_exhausted_rule_is_left_untouched(self):
        rule = make_rule(start_date="2024-03-01", end_date="2024-02-01")

        result = expand_due(rule, NOW)

        assert result.exhausted is True
        assert result.transactions == []
        assert result.rule == rule

    def test_unparseable_end_date_means_no_end(self):
        rule = make_rule(start_date="2024-01-20", end_date="someday")

        result = expand_due(rule, NOW)

        assert len(result.transactions) == 3
        assert result.rule.active is True


class TestInactiveAndMalformed:
    """Tests for skipped and malformed rules."""

    def test_inactive_rule_is_skipped(self):
        rule = make_rule(active=False)

        result = expand_due(rule, NOW)

        assert result.transactions == []
        assert result.rule is rule

    def test_unparseable_start_resumes_from_now(self):
        rule = make_rule(start_date="not a date")

        result = expand_due(rule, NOW)

        assert [tx.id for tx in result.transactions] == [occurrence_id(rule.id, NOW)]
        assert result.rule.last_run_at == NOW
        assert result.rule.next_run_at > NOW

    def test_nan_next_run_is_treated_as_unset(self):
        rule = make_rule(start_date="2024-03-20", next_run_at=float("nan"))

        assert rule.next_run_at is None
        result = expand_due(rule, NOW)
        assert [tx.transaction_date for tx in result.transactions] == [date(2024, 3, 20)]

    def test_garbage_last_run_is_treated_as_unset(self):
        rule = make_rule(last_run_at="NaN")
        assert rule.last_run_at is None


class TestIdempotence:
    """Expanding unchanged state twice yields the same ids."""

    def test_same_state_same_ids(self):
        rule = make_rule(start_date="2024-01-20")

        first = expand_due(rule, NOW)
        second = expand_due(rule, NOW)

        assert [tx.id for tx in first.transactions] == [tx.id for tx in second.transactions]

    def test_caller_rule_is_not_mutated(self):
        rule = make_rule(start_date="2024-01-20")
        before = rule.model_dump()

        expand_due(rule, NOW)

        assert rule.model_dump() == before

    def test_advanced_state_generates_nothing_new(self):
        rule = make_rule(start_date="2024-01-20")
        first = expand_due(rule, NOW)

        second = expand_due(first.rule, NOW)

        assert second.transactions == []
