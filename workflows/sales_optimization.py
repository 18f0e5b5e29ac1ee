"""
Prefect Workflow Orchestration - Sales Optimization

Batch run of the sales optimization analysis:
- Load and profile the transactions extract
- Consistency checks, corrections and re-validation
- Exclusion policy, analysis sections and decision gates
- Dashboard extracts to the curated zone and the relational store

Nothing is retried; a failed load or correction fails the flow.
"""

from pathlib import Path
from typing import Dict, Optional, Tuple

import polars as pl
import structlog
from prefect import flow, task

from salesopt.analytics.aggregator import create_aggregator
from salesopt.analytics.reports import SalesAnalysis
from salesopt.config import get_settings
from salesopt.config.logging import configure_logging
from salesopt.decision.gates import DecisionGateEvaluator, DecisionReport
from salesopt.ingestion.batch_loader import SampleStore, create_transaction_loader
from salesopt.modeling.semantic import SemanticModel, SemanticModelBuilder
from salesopt.quality.anomaly_detector import AnomalyReport, ProfitAnomalyDetector
from salesopt.quality.profiler import DataProfiler
from salesopt.quality.validators import ValidationResult, create_transactions_validator
from salesopt.transformation.corrections import CorrectionResult, DataCorrector, SalesTable
from salesopt.transformation.exclusions import ExclusionPolicy, FieldRegistry

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(name="load_transactions", description="Load and type the transactions extract")
def load_transactions(source_file: str) -> pl.DataFrame:
    df, result = create_transaction_loader().load(source_file)
    logger.info(f"Loaded {result.rows_loaded} rows", file_hash=result.file_hash)
    return df


@task(name="profile_transactions", description="Per-field null, distinct and range profile")
def profile_transactions(df: pl.DataFrame) -> pl.DataFrame:
    profiler = DataProfiler()
    return profiler.to_frame(profiler.profile(df))


@task(name="validate_consistency", description="Hierarchy, duplicate and date consistency checks")
def validate_consistency(df: pl.DataFrame) -> ValidationResult:
    result = create_transactions_validator().validate(df)
    logger.info(
        f"Validation {result.status.value}: "
        f"{result.passed_checks}/{result.total_checks} checks passed"
    )
    return result


@task(name="apply_corrections", description="Apply the correction rules as one batch")
def apply_corrections(df: pl.DataFrame) -> Tuple[pl.DataFrame, CorrectionResult]:
    table = SalesTable(df)
    result = DataCorrector().apply(table)
    return table.frame, result


@task(name="assess_exclusions", description="Profit anomaly assessment and field exclusions")
def assess_exclusions(
    df: pl.DataFrame,
    validation: ValidationResult,
) -> Tuple[AnomalyReport, FieldRegistry]:
    anomalies = ProfitAnomalyDetector().assess(df)
    registry = ExclusionPolicy().evaluate(validation, anomalies)
    return anomalies, registry


@task(name="run_analysis", description="Compute the named analysis result sets")
def run_analysis(df: pl.DataFrame, registry: FieldRegistry) -> Dict[str, pl.DataFrame]:
    return SalesAnalysis(create_aggregator(registry)).run_all(df)


@task(name="evaluate_gates", description="Evaluate every decision gate")
def evaluate_gates(sections: Dict[str, pl.DataFrame]) -> DecisionReport:
    return DecisionGateEvaluator().evaluate(sections)


@task(name="build_extracts", description="Build and write the dashboard extracts")
def build_extracts(df: pl.DataFrame, output_path: Optional[str] = None) -> Tuple[SemanticModel, Dict[str, str]]:
    builder = SemanticModelBuilder(output_path)
    model = builder.build(df)
    return model, builder.write_extracts(model)


@task(name="publish_extracts", description="Replace the dashboard tables in the relational store")
async def publish_extracts(
    model: SemanticModel,
    corrections: Optional[CorrectionResult] = None,
    database_url: Optional[str] = None,
) -> Dict[str, int]:
    from salesopt.database.connection import close_database, get_db, init_database
    from salesopt.database.publisher import ExtractPublisher

    await init_database(database_url)
    try:
        async with get_db() as db:
            return await ExtractPublisher().publish(db, model, corrections)
    finally:
        await close_database()


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="sales_optimization",
    description="Cleaning, analysis and decision gates over the retail transactions",
)
async def sales_optimization(
    source_file: Optional[str] = None,
    output_path: Optional[str] = None,
    publish: bool = False,
    database_url: Optional[str] = None,
) -> dict:
    """
    Sales optimization batch run.

    Steps:
    1. Load, sample and profile the transactions
    2. Validate, correct and re-validate
    3. Assess anomalies and exclude unusable fields
    4. Analysis sections and decision gates
    5. Dashboard extracts (optionally published)
    """
    source_file = source_file or str(Path(settings.data_lake.raw_path) / settings.data_lake.source_file)
    logger.info(f"Starting sales optimization run for {source_file}")

    df = load_transactions(source_file)
    SampleStore().get(df)
    profile = profile_transactions(df)

    validation = validate_consistency(df)
    corrected, corrections = apply_corrections(df)
    revalidation = validate_consistency(corrected)

    anomalies, registry = assess_exclusions(corrected, revalidation)
    sections = run_analysis(corrected, registry)
    decisions = evaluate_gates(sections)

    model, paths = build_extracts(corrected, output_path)
    published = await publish_extracts(model, corrections, database_url) if publish else {}

    return {
        "rows": corrected.height,
        "profiled_fields": profile.height,
        "violations_before": [c.name for c in validation.checks if not c.passed],
        "violations_after": [c.name for c in revalidation.checks if not c.passed],
        "corrected_rows": corrections.rows_changed,
        "unresolvable_anomalies": [a.field for a in anomalies.unresolvable],
        "excluded_fields": sorted(registry.excluded),
        "market_labels": decisions.market_labels(),
        "extracts": paths,
        "published": published,
    }


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    import asyncio

    configure_logging()
    asyncio.run(sales_optimization())
