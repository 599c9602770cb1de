"""Data sources for methylation cohorts.

The analysis only talks to a `CohortSource`. `GDCSource` queries the public
Genomic Data Commons REST API and downloads beta value files, while
`InMemorySource` serves a prepared `CohortData`, e.g. synthetic data.

Examples:
    >>> source = GDCSource(cache_dir="~/mebrca/gdc")
    >>> methylation = CohortFilter.from_config(CONFIG["cohort"])
    >>> expression = CohortFilter.from_config(
    ...     CONFIG["expression"], project="TCGA-BRCA", sample_types=())
    >>> cohort = acquire_cohort(source, methylation, expression, 100)
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd
import requests

from mebrca.dtypes.cohort import (
    SAMPLE_COLUMNS,
    CohortData,
    CohortFilter,
    patient_id,
)
from mebrca.utils.files import (
    download_file,
    download_files,
    ensure_directory_exists,
    read_table,
)
from mebrca.utils.varia import CONFIG, MEBRCA_TMP_DIR

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ["file_id", "file_name", "barcode", "patient_id"]

GDC_FIELDS = [
    "file_id",
    "file_name",
    "associated_entities.entity_submitter_id",
    "cases.submitter_id",
    "cases.samples.sample_type",
    "cases.demographic.vital_status",
    "cases.demographic.days_to_death",
    "cases.demographic.gender",
    "cases.diagnoses.days_to_last_follow_up",
    "cases.diagnoses.ajcc_pathologic_stage",
]


class CohortSource(ABC):
    """Abstract base class for a source of cohort records and data."""

    @abstractmethod
    def fetch_records(self, cohort_filter):
        """Returns all records matching the filter.

        Args:
            cohort_filter (CohortFilter): Query parameters.

        Returns:
            pd.DataFrame: One row per record with at least the columns in
                `RECORD_COLUMNS` and the sample metadata columns.
        """

    @abstractmethod
    def fetch_cohort(self, cohort_filter):
        """Materializes the records matching the filter.

        Returns:
            CohortData: Beta values, sample metadata and probe annotation.
        """


def _in_filter(field, values):
    return {"op": "in", "content": {"field": field, "value": list(values)}}


def gdc_filters(cohort_filter):
    """Translates a `CohortFilter` into a GDC API filter expression."""
    content = [
        _in_filter("cases.project.project_id", [cohort_filter.project]),
        _in_filter("data_category", [cohort_filter.data_category]),
        _in_filter("access", ["open"]),
    ]
    if cohort_filter.data_type:
        content.append(_in_filter("data_type", [cohort_filter.data_type]))
    if cohort_filter.platform:
        content.append(_in_filter("platform", [cohort_filter.platform]))
    if cohort_filter.workflow_type:
        content.append(
            _in_filter("analysis.workflow_type", [cohort_filter.workflow_type])
        )
    if cohort_filter.sample_types:
        content.append(
            _in_filter("cases.samples.sample_type", cohort_filter.sample_types)
        )
    if cohort_filter.barcodes is not None:
        content.append(_in_filter("cases.submitter_id", cohort_filter.barcodes))
    return {"op": "and", "content": content}


def _first(items):
    return items[0] if items else {}


def parse_gdc_hit(hit):
    """Flattens one GDC file hit into a record dict."""
    case = _first(hit.get("cases", []))
    sample = _first(case.get("samples", []))
    demographic = case.get("demographic", {}) or {}
    diagnosis = _first(case.get("diagnoses", []))
    entity = _first(hit.get("associated_entities", []))
    barcode = entity.get("entity_submitter_id") or case.get("submitter_id")
    return {
        "file_id": hit["file_id"],
        "file_name": hit.get("file_name", ""),
        "barcode": barcode,
        "patient_id": patient_id(barcode),
        "tissue_type": sample.get("sample_type"),
        "vital_status": demographic.get("vital_status"),
        "days_to_death": demographic.get("days_to_death"),
        "days_to_last_follow_up": diagnosis.get("days_to_last_follow_up"),
        "gender": demographic.get("gender"),
        "tumor_stage": diagnosis.get("ajcc_pathologic_stage"),
    }


def read_beta_file(path):
    """Reads a GDC beta value file (probe id and beta, no header)."""
    betas = pd.read_csv(
        path, sep="\t", header=None, index_col=0, names=["probe", "beta"]
    )
    return betas["beta"]


def read_annotation(path, probe_column, gene_column):
    """Reads a probe -> gene symbol mapping from an annotation table."""
    table = read_table(path, usecols=[probe_column, gene_column])
    return table.set_index(probe_column)[gene_column].rename("gene_symbol")


class GDCSource(CohortSource):
    """Cohort source backed by the Genomic Data Commons REST API.

    Beta value files are cached in `cache_dir` and never downloaded twice.
    Network failures are not retried unless `max_attempts` is raised.

    Args:
        cache_dir (str or Path): Directory for downloaded files.
        annotation (pd.Series or str or Path, optional): Probe annotation.
            Either a ready mapping or a path to an annotation table. If None,
            the table configured in `CONFIG['annotation']` is downloaded.
        show_progress (bool): Show download progress bars.
    """

    def __init__(
        self,
        cache_dir: Union[str, Path] = MEBRCA_TMP_DIR / "gdc",
        *,
        annotation: Optional[Union[pd.Series, str, Path]] = None,
        files_url: str = CONFIG["gdc"]["files_url"],
        data_url: str = CONFIG["gdc"]["data_url"],
        page_size: int = CONFIG["gdc"]["page_size"],
        timeout: float = CONFIG["gdc"]["timeout"],
        max_attempts: int = CONFIG["gdc"]["max_attempts"],
        show_progress: bool = True,
    ):
        self.cache_dir = Path(cache_dir).expanduser()
        self.annotation = annotation
        self.files_url = files_url
        self.data_url = data_url
        self.page_size = page_size
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.show_progress = show_progress
        ensure_directory_exists(self.cache_dir)

    def _query(self, cohort_filter, offset):
        payload = {
            "filters": gdc_filters(cohort_filter),
            "fields": ",".join(GDC_FIELDS),
            "format": "JSON",
            "size": self.page_size,
            "from": offset,
        }
        response = requests.post(
            self.files_url,
            data=json.dumps(payload),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["data"]

    def fetch_records(self, cohort_filter):
        logger.info(
            "Querying GDC: %s / %s",
            cohort_filter.project,
            cohort_filter.data_category,
        )
        hits = []
        offset = 0
        while True:
            data = self._query(cohort_filter, offset)
            hits.extend(data["hits"])
            total = data["pagination"]["total"]
            offset += len(data["hits"])
            if not data["hits"] or offset >= total:
                break
        records = pd.DataFrame(
            [parse_gdc_hit(hit) for hit in hits],
            columns=RECORD_COLUMNS + SAMPLE_COLUMNS[1:],
        )
        logger.info("Found %d records", len(records))
        return records

    def _beta_path(self, record):
        return self.cache_dir / "betas" / f"{record.file_id}.txt"

    def _get_annotation(self):
        if isinstance(self.annotation, pd.Series):
            return self.annotation
        probe_column = CONFIG["annotation"]["probe_column"]
        gene_column = CONFIG["annotation"]["gene_column"]
        if self.annotation is not None:
            path = Path(self.annotation).expanduser()
        else:
            url = CONFIG["annotation"]["url"]
            path = self.cache_dir / url.split("/")[-1]
            download_file(
                url,
                path,
                show_progress=self.show_progress,
                max_attempts=self.max_attempts,
                timeout=self.timeout,
            )
        self.annotation = read_annotation(path, probe_column, gene_column)
        return self.annotation

    def fetch_cohort(self, cohort_filter):
        records = self.fetch_records(cohort_filter)
        if records.empty:
            msg = "GDC query returned no methylation records."
            raise RuntimeError(msg)
        n_records = len(records)
        records = records.drop_duplicates(subset="barcode", keep="first")
        if len(records) < n_records:
            logger.info(
                "Dropped %d duplicated sample barcodes",
                n_records - len(records),
            )
        paths = [self._beta_path(r) for r in records.itertuples()]
        download_files(
            urls=[
                self.data_url.format(file_id=id_) for id_ in records["file_id"]
            ],
            save_paths=paths,
            show_progress=self.show_progress,
            max_attempts=self.max_attempts,
            timeout=self.timeout,
        )
        betas = pd.concat(
            [read_beta_file(path) for path in paths],
            axis=1,
            keys=list(records["barcode"]),
        )
        samples = records.set_index("barcode")[SAMPLE_COLUMNS]
        return CohortData(
            betas=betas, samples=samples, annotation=self._get_annotation()
        )


class InMemorySource(CohortSource):
    """Cohort source serving prepared data, used without network access.

    Args:
        cohort (CohortData): Methylation data of all available samples.
        expression_patients (list, optional): Patients with expression data.
            Defaults to all patients in `cohort`.
        data_category (str): Category of queries answered with the
            methylation records of `cohort`. Any other category is treated
            as the expression query.
    """

    def __init__(
        self,
        cohort,
        expression_patients=None,
        data_category=CONFIG["cohort"]["data_category"],
    ):
        self.cohort = cohort
        self.data_category = data_category
        self.expression_patients = (
            list(cohort.samples["patient_id"].unique())
            if expression_patients is None
            else list(expression_patients)
        )

    def _methylation_records(self, cohort_filter):
        samples = self.cohort.samples
        mask = np.ones(len(samples), dtype=bool)
        if cohort_filter.sample_types:
            mask &= samples["tissue_type"].isin(cohort_filter.sample_types)
        if cohort_filter.barcodes is not None:
            mask &= samples["patient_id"].isin(cohort_filter.barcodes)
        records = samples[mask].reset_index(names="barcode")
        records["file_id"] = records["barcode"]
        records["file_name"] = records["barcode"] + ".txt"
        return records[RECORD_COLUMNS + SAMPLE_COLUMNS[1:]]

    def fetch_records(self, cohort_filter):
        if cohort_filter.data_category == self.data_category:
            return self._methylation_records(cohort_filter)
        patients = self.expression_patients
        if cohort_filter.barcodes is not None:
            patients = [p for p in patients if p in cohort_filter.barcodes]
        return pd.DataFrame(
            {
                "file_id": patients,
                "file_name": patients,
                "barcode": patients,
                "patient_id": patients,
            }
        )

    def fetch_cohort(self, cohort_filter):
        records = self._methylation_records(cohort_filter)
        return CohortData(
            betas=self.cohort.betas[records["barcode"]],
            samples=self.cohort.samples.loc[records["barcode"]],
            annotation=self.cohort.annotation,
        )


def common_patients(methylation_records, expression_records, n_patients=None):
    """Returns the patients present in both record sets.

    The order of the methylation records is kept, so that the bounded subset
    (first `n_patients`) is reproducible.

    Raises:
        ValueError: If no patient has both data modalities.
    """
    expression_ids = set(expression_records["patient_id"])
    common = [
        pid
        for pid in pd.unique(methylation_records["patient_id"])
        if pid in expression_ids
    ]
    if not common:
        msg = "No patient has both methylation and expression records."
        raise ValueError(msg)
    logger.info("%d patients with methylation and expression", len(common))
    return common if n_patients is None else common[:n_patients]


def acquire_cohort(
    source,
    methylation_filter,
    expression_filter,
    n_patients=CONFIG["cohort"]["n_patients"],
):
    """Fetches methylation data for patients that also have expression data.

    Args:
        source (CohortSource): Where the data comes from.
        methylation_filter (CohortFilter): Methylation query.
        expression_filter (CohortFilter): Expression query.
        n_patients (int): Size of the patient subset.

    Returns:
        CohortData: Methylation data of the selected patients.
    """
    methylation_records = source.fetch_records(methylation_filter)
    expression_records = source.fetch_records(expression_filter)
    patients = common_patients(
        methylation_records, expression_records, n_patients
    )
    logger.info("Fetching methylation data of %d patients", len(patients))
    cohort = source.fetch_cohort(methylation_filter.with_barcodes(patients))
    logger.info("Acquired %s", cohort)
    return cohort
