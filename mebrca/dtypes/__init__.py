"""Module providing cohort data types and data sources."""

from .cohort import (
    DEAD,
    NORMAL,
    SAMPLE_COLUMNS,
    TUMOR,
    CohortData,
    CohortFilter,
    patient_id,
)
from .sources import (
    CohortSource,
    GDCSource,
    InMemorySource,
    acquire_cohort,
    common_patients,
    gdc_filters,
    parse_gdc_hit,
    read_beta_file,
)

__all__ = [
    "CohortData",
    "CohortFilter",
    "CohortSource",
    "DEAD",
    "GDCSource",
    "InMemorySource",
    "NORMAL",
    "SAMPLE_COLUMNS",
    "TUMOR",
    "acquire_cohort",
    "common_patients",
    "gdc_filters",
    "parse_gdc_hit",
    "patient_id",
    "read_beta_file",
]
