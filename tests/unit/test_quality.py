"""
Unit Tests - Data Quality
"""
from datetime import date

import pytest
import polars as pl

from salesopt.exceptions import ConsistencyViolation
from salesopt.quality.profiler import DataProfiler
from salesopt.quality.validators import (
    ConsistencyValidator,
    ValidationStatus,
    check_duplicates,
    check_hierarchy,
    check_region_market_overlap,
    create_transactions_validator,
)
from salesopt.quality.anomaly_detector import (
    AnomalySeverity,
    AnomalyType,
    ProfitAnomalyDetector,
    yearly_sign_ratios,
)


class TestDataProfiler:
    """Tests for DataProfiler"""

    def test_null_and_distinct_counts(self):
        """Test distinct counts leave nulls out"""
        df = pl.DataFrame({"market": ["EU", None, "EU", "APAC"], "sales": [1.0, 2.0, None, 5.0]})

        profiles = DataProfiler().profile(df)

        assert profiles["market"].null_count == 1
        assert profiles["market"].distinct_count == 2
        assert profiles["sales"].null_count == 1
        assert profiles["sales"].distinct_count == 3

    def test_numeric_ranges(self):
        """Test min, mean and max on numeric columns only"""
        df = pl.DataFrame({"market": ["EU", "US"], "sales": [10.0, 30.0]})

        profiles = DataProfiler().profile(df)

        assert profiles["sales"].min == 10.0
        assert profiles["sales"].mean == 20.0
        assert profiles["sales"].max == 30.0
        assert profiles["market"].is_numeric is False

    def test_to_frame(self, generated_df):
        """Test one profile row per column"""
        profiler = DataProfiler()

        frame = profiler.to_frame(profiler.profile(generated_df))

        assert frame.height == generated_df.width
        assert frame.filter(pl.col("column_name") == "row_id").get_column("distinct_count")[0] == generated_df.height


class TestHierarchyCheck:
    """Tests for the hierarchy consistency check"""

    def test_consistent_hierarchy(self):
        """Test every child under exactly one parent"""
        df = pl.DataFrame({"market": ["EU", "EU", "APAC"], "country": ["France", "Austria", "China"]})

        check = check_hierarchy(df, "market", "country")

        assert check.passed
        assert check.inconsistency_count == 0

    def test_inconsistent_hierarchy(self):
        """Test a child under two parents is counted and its rows returned"""
        df = pl.DataFrame({
            "market": ["EU", "EMEA", "EMEA", "APAC"],
            "country": ["Austria", "Austria", "Egypt", "China"],
        })

        check = check_hierarchy(df, "market", "country")

        assert not check.passed
        assert check.inconsistency_count == 1
        assert check.details["offending_values"] == ["Austria"]
        assert check.offending_rows.height == 2
        assert isinstance(check.violation, ConsistencyViolation)

    def test_pairs_are_not_string_concatenations(self):
        """Test ('A', 'BC') and ('AB', 'C') stay distinct pairs"""
        df = pl.DataFrame({"parent": ["A", "AB"], "child": ["BC", "C"]})

        check = check_hierarchy(df, "parent", "child")

        assert check.passed

    def test_missing_column(self):
        """Test a missing column fails the check"""
        df = pl.DataFrame({"market": ["EU"]})

        check = check_hierarchy(df, "market", "country")

        assert not check.passed
        assert "not found" in check.message


class TestOtherChecks:
    """Tests for duplicate and region checks"""

    def test_duplicates(self):
        """Test full-row duplicates are grouped"""
        df = pl.DataFrame({"a": [1, 1, 2], "b": ["x", "x", "y"]})

        check = check_duplicates(df)

        assert not check.passed
        assert check.details == {"duplicate_groups": 1, "duplicate_rows": 2}

    def test_region_reuses_market_name(self):
        """Test region values equal to a market name"""
        df = pl.DataFrame({"market": ["EMEA", "EU"], "region": ["EMEA", "Central"]})

        check = check_region_market_overlap(df)

        assert not check.passed
        assert check.details["regions"] == ["EMEA"]


class TestConsistencyValidator:
    """Tests for ConsistencyValidator"""

    def test_transactions_validator_reports(self, misfiled_df):
        """Test violations are reported, not raised"""
        result = create_transactions_validator().validate(misfiled_df)

        assert result.status == ValidationStatus.VIOLATIONS
        assert result.failed("hierarchy_market_country")
        assert result.failed("hierarchy_subcategory_product_name")
        assert result.failed("region_market_overlap")
        assert not result.failed("duplicate_rows")
        assert len(result.violations) == result.total_checks - result.passed_checks

    def test_strict_mode_raises(self, misfiled_df):
        """Test strict mode raises the first violation"""
        validator = ConsistencyValidator(strict_mode=True).add_hierarchy_check("market", "country")

        with pytest.raises(ConsistencyViolation):
            validator.validate(misfiled_df)

    def test_ship_date_check(self, make_transactions):
        """Test ship dates before order dates"""
        df = make_transactions([{"order_date": date(2012, 3, 5), "ship_date": date(2012, 3, 1)}])

        result = ConsistencyValidator().add_ship_date_check().validate(df)

        assert result.failed("ship_after_order")


def _loss_frame(discounts):
    """Two years of a deep, recurring loss against a one-dollar minimum sale"""
    return pl.DataFrame({
        "order_date": [date(2012, 1, 5), date(2012, 2, 5), date(2012, 3, 5),
                       date(2013, 1, 5), date(2013, 2, 5), date(2013, 3, 5)],
        "sales": [1.0, 500.0, 300.0, 1.0, 500.0, 300.0],
        "profit": [-1000.0, 1200.0, 80.0, -1000.0, 1200.0, 80.0],
        "discount": discounts,
        "shipping_cost": [5.0] * 6,
    })


class TestProfitAnomalyDetector:
    """Tests for ProfitAnomalyDetector"""

    def test_yearly_sign_ratios(self):
        """Test |negative| / positive per order year"""
        ratios = yearly_sign_ratios(_loss_frame([0.0] * 6), "profit")

        assert ratios.get_column("order_year").to_list() == [2012, 2013]
        assert ratios.get_column("negative_positive_ratio")[0] == pytest.approx(1000 / 1280)

    def test_unexplained_loss_is_unresolvable(self):
        """Test extreme, persistent and unexplained profit"""
        detector = ProfitAnomalyDetector(magnitude_ratio=100, persistence_ratio=0.1, explained_correlation=0.8)

        report = detector.assess(_loss_frame([0.0] * 6))
        result = report.results[0]

        assert AnomalyType.EXTREME in result.anomaly_types
        assert AnomalyType.PERSISTENT in result.anomaly_types
        assert result.is_unresolvable
        assert result.severity == AnomalySeverity.CRITICAL
        assert report.is_anomalous("profit")
        assert report.unresolvable[0].field == "profit"

    def test_discount_explains_loss(self):
        """Test a correlated explanatory field resolves the anomaly"""
        detector = ProfitAnomalyDetector(magnitude_ratio=100, persistence_ratio=0.1, explained_correlation=0.8)

        report = detector.assess(_loss_frame([0.8, 0.0, 0.1, 0.8, 0.0, 0.1]))
        result = report.results[0]

        assert result.explained_by == "discount"
        assert not result.is_unresolvable
        assert not report.is_anomalous("profit")

    def test_small_losses_are_not_extreme(self, make_transactions):
        """Test ordinary losses stay within range"""
        df = make_transactions([
            {"sales": 100.0, "profit": -5.0},
            {"sales": 200.0, "profit": 30.0},
        ])

        result = ProfitAnomalyDetector().assess_metric(df)

        assert AnomalyType.EXTREME not in result.anomaly_types
        assert not result.is_unresolvable
