"""
Unit Tests - Workflow Tasks
"""
import pytest

from salesopt.decision import GateOutcome
from workflows.sales_optimization import (
    apply_corrections,
    assess_exclusions,
    build_extracts,
    evaluate_gates,
    load_transactions,
    profile_transactions,
    publish_extracts,
    run_analysis,
    validate_consistency,
)


@pytest.fixture
def source_file(tmp_path, generated_df):
    path = tmp_path / "transactions.csv"
    generated_df.write_csv(path)
    return str(path)


class TestWorkflowTasks:
    """Tests for the task functions, called without a flow run"""

    def test_tasks_chain(self, tmp_path, source_file):
        """Test each task output feeds the next"""
        df = load_transactions.fn(source_file)
        profile = profile_transactions.fn(df)
        corrected, corrections = apply_corrections.fn(df)
        revalidation = validate_consistency.fn(corrected)
        anomalies, registry = assess_exclusions.fn(corrected, revalidation)
        sections = run_analysis.fn(corrected, registry)
        decisions = evaluate_gates.fn(sections)
        model, paths = build_extracts.fn(corrected, str(tmp_path / "curated"))

        assert profile.height == df.width
        assert corrections.rows_changed > 0
        assert registry.is_excluded("region")
        assert "market_performance" in sections
        assert {r.outcome for r in decisions.results} <= {GateOutcome.PASS, GateOutcome.FAIL}
        assert set(paths) == set(model.tables())

    async def test_publish_extracts(self, tmp_path, generated_df):
        """Test publishing to a file database and closing the engine"""
        corrected, corrections = apply_corrections.fn(generated_df)
        model, _ = build_extracts.fn(corrected, str(tmp_path / "curated"))

        counts = await publish_extracts.fn(model, corrections, f"sqlite+aiosqlite:///{tmp_path}/extracts.db")

        assert counts["fact_sales"] == model.fact_sales.height
        assert counts["correction_log"] == len(corrections.records)
