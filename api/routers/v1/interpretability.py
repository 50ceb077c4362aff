"""Endpoints serving precomputed interpretability artifacts and tables."""

from fastapi import APIRouter, Depends

from api.schemas.interpretability import (
    AleCurveResponse,
    CorrelationResponse,
    ImportanceEntry,
    ImportanceResponse,
    MetricsResponse,
    SummaryResponse,
    SummaryRow,
)
from api.dependencies import get_lookup
from models.qualifying.artifact_store import thaw
from models.qualifying.inference import InterpretabilityLookup

router = APIRouter()


@router.get("/importance", response_model=ImportanceResponse)
async def feature_importance(lookup: InterpretabilityLookup = Depends(get_lookup)):
    """Permutation importance, ranked descending."""
    return ImportanceResponse(
        items=[ImportanceEntry(**thaw(record)) for record in lookup.importance_ranking()]
    )


@router.get("/ale/{feature}", response_model=AleCurveResponse)
async def ale_curve(feature: str, lookup: InterpretabilityLookup = Depends(get_lookup)):
    """
    Accumulated local effect curve of one feature.

    The feature may be given by column name (``humidity``) or label (``Humidity``).
    """
    return AleCurveResponse(**thaw(lookup.ale_curve(feature)))


@router.get("/summary", response_model=SummaryResponse)
async def summary_table(lookup: InterpretabilityLookup = Depends(get_lookup)):
    """Mean, SD, min and max of the features and the target."""
    return SummaryResponse(rows=[SummaryRow(**thaw(row)) for row in lookup.summary_table()])


@router.get("/correlation", response_model=CorrelationResponse)
async def correlation_table(lookup: InterpretabilityLookup = Depends(get_lookup)):
    """Pearson correlation matrix over the features and the target."""
    return CorrelationResponse(**thaw(lookup.correlation_table()))


@router.get("/metrics", response_model=MetricsResponse)
async def metrics_table(lookup: InterpretabilityLookup = Depends(get_lookup)):
    """Cross-validated metrics of every candidate family."""
    return MetricsResponse(**thaw(lookup.metrics_table()))
