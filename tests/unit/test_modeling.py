"""
Unit Tests - Semantic Model Extracts
"""
from datetime import date

import pytest
import polars as pl

from salesopt.modeling.semantic import SemanticModelBuilder, build_semantic_model


@pytest.fixture
def catalog_df(make_transactions):
    """Three binders, one phone, three countries in two markets"""
    return make_transactions([
        {"product_name": "C Binder", "sales": 200.0, "country": "Austria", "segment": "Home Office"},
        {"product_name": "A Binder", "sales": 100.0, "country": "France", "segment": "Corporate"},
        {"product_name": "B Binder", "sales": 300.0, "discount": 0.2},
        {
            "product_name": "Desk Phone",
            "category": "Technology",
            "subcategory": "Phones",
            "country": "China",
            "market": "APAC",
            "order_date": date(2013, 6, 30),
        },
    ])


class TestSemanticModelBuilder:
    """Tests for SemanticModelBuilder"""

    def test_product_keys(self, catalog_df):
        """Test keys number products by name inside each subcategory"""
        dim = SemanticModelBuilder().dim_product(catalog_df)
        keys = dict(zip(dim.get_column("product_name"), dim.get_column("product_key")))

        assert keys == {
            "A Binder": "OFF-BI-100001",
            "B Binder": "OFF-BI-100002",
            "C Binder": "OFF-BI-100003",
            "Desk Phone": "TEC-PH-100001",
        }
        assert dim.columns == ["product_key", "product_name", "performance", "subcategory", "category"]

    def test_product_performance_bands(self, catalog_df):
        """Test bands against the subcategory P50 and P75"""
        dim = SemanticModelBuilder().dim_product(catalog_df)
        bands = dict(zip(dim.get_column("product_name"), dim.get_column("performance")))

        # Binder averages 100 / 300 / 200 give P50 = 200 and P75 = 250
        assert bands["A Binder"] == "Low"
        assert bands["B Binder"] == "High"
        assert bands["C Binder"] == "Moderate"
        assert bands["Desk Phone"] == "High"

    def test_country_keys(self, catalog_df):
        dim = SemanticModelBuilder().dim_country_market(catalog_df)

        assert dim.rows() == [
            ("APAC-1001", "China", "APAC"),
            ("EU-1001", "Austria", "EU"),
            ("EU-1002", "France", "EU"),
        ]

    def test_country_keeps_majority_market(self, make_transactions):
        """Test a leftover conflict keeps one row per country"""
        df = make_transactions([
            {"country": "Austria", "market": "EU"},
            {"country": "Austria", "market": "EU"},
            {"country": "Austria", "market": "EMEA"},
        ])

        dim = SemanticModelBuilder().dim_country_market(df)

        assert dim.rows() == [("EU-1001", "Austria", "EU")]

    def test_segment_keys(self, catalog_df):
        dim = SemanticModelBuilder().dim_segment(catalog_df)

        assert dim.rows() == [(1, "Consumer"), (2, "Corporate"), (3, "Home Office")]

    def test_date_dimension_covers_full_years(self, catalog_df):
        """Test one row per day from the first to the last order year"""
        dim = SemanticModelBuilder().dim_date(catalog_df)

        assert dim.height == 731
        first = dim.row(0, named=True)
        assert first == {
            "calendar_date": date(2012, 1, 1),
            "day": 1,
            "month_no": 1,
            "month_name": "Jan",
            "quarter_no": "Q1",
            "year": 2012,
        }
        assert dim.get_column("calendar_date").max() == date(2013, 12, 31)

    def test_date_dimension_of_empty_table(self, make_transactions):
        dim = SemanticModelBuilder().dim_date(make_transactions([]))

        assert dim.height == 0
        assert "calendar_date" in dim.columns

    def test_fact_sales(self, catalog_df):
        """Test every transaction resolves to its dimension keys"""
        model = build_semantic_model(catalog_df)
        fact = model.fact_sales.sort("sales")

        assert fact.height == catalog_df.height
        assert fact.get_column("discounted").to_list().count("Yes") == 1
        assert fact.filter(pl.col("discount") > 0).get_column("product_key").to_list() == ["OFF-BI-100002"]
        assert fact.filter(pl.col("product_key") == "TEC-PH-100001").get_column("country_key").to_list() == [
            "APAC-1001"
        ]
        assert set(fact.get_column("order_date")) <= set(model.dim_date.get_column("calendar_date"))

    def test_write_extracts(self, tmp_path, catalog_df):
        """Test one parquet file per table"""
        builder = SemanticModelBuilder(output_path=str(tmp_path))
        model = builder.build(catalog_df)

        paths = builder.write_extracts(model)

        assert list(paths) == ["dim_product", "dim_country_market", "dim_segment", "dim_date", "fact_sales"]
        for name, path in paths.items():
            assert pl.read_parquet(path).height == model.tables()[name].height
