"""Response schemas for precomputed interpretability and summary tables."""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class ImportanceEntry(BaseModel):
    """Permutation importance of one feature."""

    feature: str
    label: str
    importance: float = Field(..., description="Mean increase in RMSE when the feature is permuted")
    std: float = Field(..., description="Standard deviation across permutations")
    rank: int


class ImportanceResponse(BaseModel):
    """Features ranked by descending importance."""

    items: List[ImportanceEntry]


class AleCurveResponse(BaseModel):
    """Accumulated local effect curve of one feature."""

    feature: str
    label: str
    kind: str = Field(..., description="numeric (quantile edges) or categorical (levels)")
    values: List[Union[float, str]] = Field(..., description="Bin edges or category levels")
    effects: List[float] = Field(..., description="Centred accumulated effect at each value")
    counts: List[int] = Field(..., description="Rows per interval (numeric) or per level (categorical)")


class SummaryRow(BaseModel):
    """Descriptive statistics of one variable."""

    variable: str
    label: str
    n: int
    mean: Optional[float] = None
    sd: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


class SummaryResponse(BaseModel):
    rows: List[SummaryRow]


class CorrelationResponse(BaseModel):
    """Pearson correlation matrix; undefined entries are null."""

    variables: List[str]
    labels: List[str]
    matrix: List[List[Optional[float]]]


class MetricSummary(BaseModel):
    mean: float
    std_err: float
    n: int


class CandidateMetrics(BaseModel):
    """Cross-validated metrics of one model family's best configuration."""

    family: str
    selected: bool
    hyperparameters: Dict[str, Any]
    n_trials: int
    metrics: Dict[str, MetricSummary]


class MetricsResponse(BaseModel):
    selected_family: str
    metric_names: List[str]
    candidates: List[CandidateMetrics]
