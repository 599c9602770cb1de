"""Containers describing a cohort query and the materialized cohort data."""

import logging
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

TUMOR = "Primary Tumor"
NORMAL = "Solid Tissue Normal"
DEAD = "Dead"

SAMPLE_COLUMNS = [
    "patient_id",
    "tissue_type",
    "vital_status",
    "days_to_death",
    "days_to_last_follow_up",
    "gender",
    "tumor_stage",
]


def patient_id(barcode):
    """Returns the patient part of a TCGA barcode.

    Examples:
        >>> patient_id("TCGA-A1-A0SB-01A-11D-A142-05")
        'TCGA-A1-A0SB'
    """
    parts = str(barcode).split("-")
    if len(parts) < 3:
        msg = f"Not a valid TCGA barcode: '{barcode}'"
        raise ValueError(msg)
    return "-".join(parts[:3])


@dataclass(frozen=True)
class CohortFilter:
    """Filter for a remote cohort query.

    Attributes:
        project (str): Project identifier, e.g. 'TCGA-BRCA'.
        data_category (str): GDC data category.
        data_type (str, optional): GDC data type.
        platform (str, optional): Array or sequencing platform.
        sample_types (tuple): Sample types to include.
        workflow_type (str, optional): Analysis workflow.
        barcodes (tuple, optional): Restricts the query to these patients.
    """

    project: str
    data_category: str
    data_type: Optional[str] = None
    platform: Optional[str] = None
    sample_types: tuple = ()
    workflow_type: Optional[str] = None
    barcodes: Optional[tuple] = None

    def with_barcodes(self, barcodes):
        """Returns a copy restricted to the given patient barcodes."""
        return CohortFilter(
            project=self.project,
            data_category=self.data_category,
            data_type=self.data_type,
            platform=self.platform,
            sample_types=self.sample_types,
            workflow_type=self.workflow_type,
            barcodes=tuple(barcodes),
        )

    @classmethod
    def from_config(cls, section, **overrides):
        """Builds a filter from a config section dict."""
        params = {
            "project": section.get("project"),
            "data_category": section.get("data_category"),
            "data_type": section.get("data_type"),
            "platform": section.get("platform"),
            "sample_types": tuple(section.get("sample_types", ())),
            "workflow_type": section.get("workflow_type"),
        }
        params.update(overrides)
        return cls(**params)


@dataclass
class CohortData:
    """Methylation data and metadata of a cohort.

    Attributes:
        betas (pd.DataFrame): Beta values, probes as rows, samples as columns.
        samples (pd.DataFrame): Per sample metadata indexed by sample barcode
            with the columns in `SAMPLE_COLUMNS`.
        annotation (pd.Series): Probe id -> gene symbol string.
    """

    betas: pd.DataFrame
    samples: pd.DataFrame
    annotation: pd.Series = field(
        default_factory=lambda: pd.Series(dtype=object)
    )

    def __post_init__(self):
        missing = [c for c in SAMPLE_COLUMNS if c not in self.samples.columns]
        if missing:
            msg = f"Sample metadata is missing columns: {missing}"
            raise ValueError(msg)
        unknown = self.betas.columns.difference(self.samples.index)
        if len(unknown) > 0:
            msg = f"{len(unknown)} samples without metadata, e.g. {unknown[0]}"
            raise ValueError(msg)
        self.samples = self.samples.loc[self.betas.columns]

    @property
    def n_samples(self):
        return self.betas.shape[1]

    @property
    def n_probes(self):
        return self.betas.shape[0]

    def __repr__(self):
        return (
            f"CohortData(n_samples={self.n_samples}, "
            f"n_probes={self.n_probes}, "
            f"n_patients={self.samples['patient_id'].nunique()})"
        )
