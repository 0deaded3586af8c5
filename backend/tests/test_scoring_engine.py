"""
Tests for the rule-based scoring engine.

Test Coverage:
1. Base case and clamping
2. Payment history penalty (uncapped)
3. Utilization bands, exact boundaries, closed-card exclusion, zero limit
4. History length bands and exact year boundaries
5. Hard inquiry lookback and the 12-month boundary
6. Bankruptcy penalty by status
7. Prior score never feeds the result
8. Score categories
"""
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from bureau.models import (
    AccountStatus, AccountType, InquiryType, PaymentStatus, PublicRecordStatus, PublicRecordType,
)
from bureau.services.scoring import (
    AccountFacts, InquiryFacts, PublicRecordFacts,
    clamp_score, compute_score, score_breakdown, score_category, utilization_points,
)


NOW = datetime(2026, 10, 18, 12, 0, 0)


def card(balance, limit, open_date=None, status=AccountStatus.CURRENT, payments=()):
    return AccountFacts(
        account_type=AccountType.CREDIT_CARD,
        status=status,
        open_date=open_date or NOW - timedelta(days=30),
        current_balance=Decimal(str(balance)),
        credit_limit=Decimal(str(limit)) if limit is not None else None,
        payment_statuses=tuple(payments),
    )


def loan(open_date=None, payments=()):
    return AccountFacts(
        account_type=AccountType.LOAN,
        status=AccountStatus.CURRENT,
        open_date=open_date or NOW - timedelta(days=30),
        current_balance=Decimal("5000"),
        payment_statuses=tuple(payments),
    )


def hard_inquiry(days_ago):
    return InquiryFacts(InquiryType.HARD, NOW - timedelta(days=days_ago))


# =============================================================================
# TEST: BASE CASE AND CLAMPING
# =============================================================================

class TestBaseAndClamp:
    """Empty input and range limits."""

    def test_empty_records_score_base(self):
        assert compute_score(None, [], [], [], NOW) == 700

    def test_no_accounts_still_counts_inquiries_and_records(self):
        records = [PublicRecordFacts(PublicRecordType.BANKRUPTCY, PublicRecordStatus.FILED)]
        assert compute_score(None, [], [hard_inquiry(10)], records, NOW) == 595

    def test_fifty_defaults_clamp_to_minimum(self):
        account = loan(payments=[PaymentStatus.DEFAULT] * 50)
        breakdown = score_breakdown([account], [], [], NOW)

        assert breakdown.raw_score < 300
        assert breakdown.score == 300

    def test_clamp_bounds(self):
        assert clamp_score(120) == 300
        assert clamp_score(900) == 850
        assert clamp_score(701) == 701


# =============================================================================
# TEST: PAYMENT HISTORY
# =============================================================================

class TestPaymentHistory:
    """Every late or defaulted entry costs 15 points."""

    def test_each_negative_entry_counts(self):
        account = loan(payments=[
            PaymentStatus.ON_TIME, PaymentStatus.LATE_30, PaymentStatus.LATE_60,
            PaymentStatus.LATE_90, PaymentStatus.DEFAULT,
        ])
        breakdown = score_breakdown([account], [], [], NOW)

        assert breakdown.late_payment_count == 4
        assert breakdown.payment_history == -60

    def test_counts_across_accounts(self):
        accounts = [
            loan(payments=[PaymentStatus.LATE_30]),
            loan(payments=[PaymentStatus.LATE_30, PaymentStatus.ON_TIME]),
        ]
        assert score_breakdown(accounts, [], [], NOW).payment_history == -30


# =============================================================================
# TEST: UTILIZATION
# =============================================================================

class TestUtilization:
    """Bands are closed below and open above: [0, 0.1) [0.1, 0.3) ..."""

    @pytest.mark.parametrize("balance,expected", [
        (99, 50),
        (100, 30),
        (299, 30),
        (300, 0),
        (499, 0),
        (500, -30),
        (699, -30),
        (700, -50),
        (1000, -50),
    ])
    def test_boundaries(self, balance, expected):
        accounts = [card(balance, 600), card(0, 400)]
        assert score_breakdown(accounts, [], [], NOW).utilization == expected

    def test_ratio_is_exact_at_boundary(self):
        breakdown = score_breakdown([card(100, 1000)], [], [], NOW)
        assert breakdown.utilization_ratio == Decimal("0.1")

    def test_skipped_without_open_cards(self):
        breakdown = score_breakdown([loan()], [], [], NOW)

        assert breakdown.utilization == 0
        assert breakdown.utilization_ratio is None

    def test_closed_cards_excluded(self):
        accounts = [
            card(900, 1000, status=AccountStatus.CLOSED),
            card(50, 1000),
        ]
        assert score_breakdown(accounts, [], [], NOW).utilization == 50

    def test_all_cards_closed_skips_factor(self):
        accounts = [card(900, 1000, status=AccountStatus.CLOSED)]
        assert score_breakdown(accounts, [], [], NOW).utilization == 0

    def test_zero_combined_limit_counts_as_maxed(self):
        breakdown = score_breakdown([card(10, 0)], [], [], NOW)

        assert breakdown.utilization == -50
        assert breakdown.notes

    def test_points_for_missing_ratio(self):
        assert utilization_points(None) == -50


# =============================================================================
# TEST: HISTORY LENGTH
# =============================================================================

class TestHistoryLength:
    """Years are 365-day units; each band needs strictly more than its floor."""

    @pytest.mark.parametrize("days,expected", [
        (365, 0),
        (366, 10),
        (3 * 365, 10),
        (3 * 365 + 1, 20),
        (5 * 365, 20),
        (5 * 365 + 1, 30),
        (7 * 365, 30),
        (7 * 365 + 1, 40),
    ])
    def test_boundaries(self, days, expected):
        account = loan(open_date=NOW - timedelta(days=days))
        assert score_breakdown([account], [], [], NOW).history_length == expected

    def test_uses_oldest_account(self):
        accounts = [
            loan(open_date=NOW - timedelta(days=100)),
            loan(open_date=NOW - timedelta(days=8 * 365)),
        ]
        assert score_breakdown(accounts, [], [], NOW).history_length == 40


# =============================================================================
# TEST: INQUIRIES AND PUBLIC RECORDS
# =============================================================================

class TestInquiries:
    """Hard inquiries within twelve 30-day months cost 5 points each."""

    def test_exactly_twelve_months_counts(self):
        assert score_breakdown([], [hard_inquiry(360)], [], NOW).inquiries == -5

    def test_older_than_twelve_months_ignored(self):
        assert score_breakdown([], [hard_inquiry(361)], [], NOW).inquiries == 0

    def test_soft_inquiries_ignored(self):
        soft = InquiryFacts(InquiryType.SOFT, NOW - timedelta(days=5))
        assert score_breakdown([], [soft], [], NOW).inquiries == 0

    def test_multiple(self):
        inquiries = [hard_inquiry(1), hard_inquiry(40), hard_inquiry(200)]
        assert score_breakdown([], inquiries, [], NOW).recent_hard_inquiries == 3


class TestPublicRecords:
    """Bankruptcies cost 100 points until discharged."""

    @pytest.mark.parametrize("status,expected", [
        (PublicRecordStatus.FILED, -100),
        (PublicRecordStatus.DISMISSED, -100),
        (PublicRecordStatus.DISCHARGED, 0),
    ])
    def test_bankruptcy_by_status(self, status, expected):
        records = [PublicRecordFacts(PublicRecordType.BANKRUPTCY, status)]
        assert score_breakdown([], [], records, NOW).public_records == expected

    def test_other_record_types_not_scored(self):
        records = [PublicRecordFacts(PublicRecordType.TAX_LIEN, PublicRecordStatus.FILED)]
        assert score_breakdown([], [], records, NOW).public_records == 0


# =============================================================================
# TEST: END-TO-END AND DETERMINISM
# =============================================================================

class TestComputeScore:
    """Whole-algorithm scenarios."""

    def test_reference_scenario(self):
        """late_90 + 20% utilization + 3y history + one recent inquiry = 730"""
        account = card(
            200, 1000,
            open_date=NOW.replace(year=NOW.year - 3),
            status=AccountStatus.DELINQUENT,
            payments=[PaymentStatus.LATE_90],
        )
        breakdown = score_breakdown([account], [hard_inquiry(60)], [], NOW)

        assert breakdown.payment_history == -15
        assert breakdown.utilization == 30
        assert breakdown.history_length == 20
        assert breakdown.inquiries == -5
        assert breakdown.score == 730

    def test_prior_score_ignored(self):
        accounts = [card(50, 1000)]
        assert compute_score(300, accounts, [], [], NOW) == compute_score(850, accounts, [], [], NOW)

    def test_repeatable(self):
        accounts = [card(450, 1000, payments=[PaymentStatus.LATE_30])]
        inquiries = [hard_inquiry(30)]
        first = compute_score(None, accounts, inquiries, [], NOW)
        assert all(compute_score(first, accounts, inquiries, [], NOW) == first for _ in range(5))

    def test_breakdown_serializes(self):
        data = score_breakdown([card(100, 1000)], [], [], NOW).to_dict()
        assert data["utilization_ratio"] == "0.1"
        assert data["score"] == data["raw_score"] == 730


class TestAccountFacts:
    """Facts are read from ORM-shaped objects."""

    def test_passed_close_date_reads_as_closed(self):
        account = SimpleNamespace(
            account_type=AccountType.CREDIT_CARD,
            payment_history=[],
            close_date=NOW - timedelta(days=1),
            open_date=NOW - timedelta(days=400),
            current_balance=10.0,
            credit_limit=100.0,
        )
        facts = AccountFacts.from_account(account, NOW)

        assert facts.status == AccountStatus.CLOSED
        assert facts.current_balance == Decimal("10.0")

    def test_latest_default_wins_over_close_date(self):
        account = SimpleNamespace(
            account_type=AccountType.LOAN,
            payment_history=[SimpleNamespace(status=PaymentStatus.DEFAULT)],
            close_date=NOW - timedelta(days=1),
            open_date=NOW - timedelta(days=400),
            current_balance=10.0,
            credit_limit=None,
        )
        assert AccountFacts.from_account(account, NOW).status == AccountStatus.DEFAULT


class TestScoreCategory:

    @pytest.mark.parametrize("score,label", [
        (850, "Excellent"), (800, "Excellent"), (799, "Very Good"), (740, "Very Good"),
        (739, "Good"), (670, "Good"), (669, "Fair"), (580, "Fair"), (579, "Poor"), (300, "Poor"),
    ])
    def test_thresholds(self, score, label):
        assert score_category(score) == label
