"""
Unit Tests - End-to-End Pipeline
"""
import pytest
import polars as pl

from salesopt.ingestion.batch_loader import SampleStore
from salesopt.modeling.semantic import SemanticModelBuilder
from salesopt.pipeline import SalesOptimizationPipeline
from salesopt.transformation.exclusions import FieldStatus


@pytest.fixture
def source_file(tmp_path, generated_df):
    path = tmp_path / "transactions.csv"
    generated_df.write_csv(path)
    return path


class TestSalesOptimizationPipeline:
    """Tests for SalesOptimizationPipeline"""

    def test_run_from_file(self, source_file, generated_df):
        """Test every phase result is returned"""
        result = SalesOptimizationPipeline().run(source_file)

        assert result.load.rows_loaded == generated_df.height
        assert result.table.height == generated_df.height
        assert result.profile.height == generated_df.width
        assert result.completed_at >= result.started_at
        assert result.extract_paths == {}

    def test_corrections_resolve_hierarchies(self, generated_df):
        """Test the corrected hierarchies pass re-validation"""
        result = SalesOptimizationPipeline().run_frame(generated_df)

        assert result.validation.failed("hierarchy_market_country")
        assert not result.revalidation.failed("hierarchy_market_country")
        assert not result.revalidation.failed("hierarchy_subcategory_product_name")
        assert result.corrections.rows_changed > 0

    def test_ambiguous_fields_excluded(self, generated_df):
        result = SalesOptimizationPipeline().run_frame(generated_df)

        assert result.registry.status("customer_name") == FieldStatus.EXCLUDED_AMBIGUOUS
        assert result.registry.status("region") == FieldStatus.EXCLUDED_AMBIGUOUS

    def test_every_market_is_labelled(self, generated_df):
        result = SalesOptimizationPipeline().run_frame(generated_df)

        markets = set(result.table.get_column("market").unique().to_list())
        assert set(result.market_labels) == markets
        assert set(result.market_labels.values()) <= {"core", "non-core"}

    def test_input_frame_is_not_modified(self, generated_df):
        """Test corrections work on the pipeline's own copy"""
        before = generated_df.clone()

        SalesOptimizationPipeline().run_frame(generated_df)

        assert generated_df.equals(before)

    def test_sample_and_extracts_written(self, tmp_path, generated_df):
        pipeline = SalesOptimizationPipeline(
            builder=SemanticModelBuilder(output_path=str(tmp_path / "curated")),
            sample_store=SampleStore(staging_path=tmp_path / "staging", size=10, seed=3),
            write_extracts=True,
        )

        result = pipeline.run_frame(generated_df)

        assert result.sample.height == 10
        assert set(result.extract_paths) == set(result.model.tables())
        fact = pl.read_parquet(result.extract_paths["fact_sales"])
        assert fact.height == result.model.fact_sales.height
