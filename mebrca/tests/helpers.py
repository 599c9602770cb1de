"""Helper functions for unittests."""

import numpy as np
import pandas as pd
import requests

from mebrca.dtypes import NORMAL, TUMOR, CohortData

SHARED_SYMBOL = "BRCA1;NBR2"


def probe_ids(n_probes):
    return [f"cg{i:08d}" for i in range(n_probes)]


def make_betas(labels, n_probes=50, n_signal=5, seed=0, noise=0.05):
    """Synthetic beta values with a planted tumor/normal signal.

    The first `n_signal` probes are around 0.75 in tumor and 0.25 in normal
    samples, all other probes have a probe specific mean independent of the
    tissue.

    Returns:
        pd.DataFrame: Probes x samples.
    """
    rng = np.random.default_rng(seed)
    labels = pd.Series(labels)
    is_tumor = (labels == TUMOR).to_numpy()
    means = np.tile(rng.uniform(0.1, 0.9, size=(n_probes, 1)), len(labels))
    means[:n_signal, is_tumor] = 0.75
    means[:n_signal, ~is_tumor] = 0.25
    values = np.clip(means + rng.normal(0, noise, means.shape), 0, 1)
    return pd.DataFrame(values, index=probe_ids(n_probes), columns=labels.index)


def make_samples(n_tumor, n_normal, seed=0):
    """Synthetic sample metadata, one patient per sample."""
    rng = np.random.default_rng(seed)
    n_samples = n_tumor + n_normal
    tissue = [TUMOR] * n_tumor + [NORMAL] * n_normal
    barcodes = [
        f"TCGA-AA-{i:04d}-{'01A' if t == TUMOR else '11A'}-11D-A000-05"
        for i, t in enumerate(tissue)
    ]
    dead = rng.random(n_samples) < 0.4
    days = rng.integers(100, 4000, size=n_samples).astype(float)
    return pd.DataFrame(
        {
            "patient_id": [b[:12] for b in barcodes],
            "tissue_type": tissue,
            "vital_status": np.where(dead, "Dead", "Alive"),
            "days_to_death": np.where(dead, days, np.nan),
            "days_to_last_follow_up": np.where(dead, np.nan, days),
            "gender": rng.choice(["female", "male"], size=n_samples),
            "tumor_stage": rng.choice(["Stage I", "Stage II"], size=n_samples),
        },
        index=pd.Index(barcodes, name="barcode"),
    )


def make_annotation(n_probes):
    """Probe annotation where the first two probes share a gene symbol."""
    symbols = [f"GENE{i};GENE{i}-AS1" for i in range(n_probes)]
    symbols[0] = SHARED_SYMBOL
    symbols[1] = SHARED_SYMBOL
    if n_probes > 2:
        symbols[-1] = np.nan
    return pd.Series(symbols, index=probe_ids(n_probes), name="gene_symbol")


def make_cohort(
    n_tumor=10, n_normal=10, n_probes=50, n_signal=5, seed=0, n_missing=0
):
    """Synthetic CohortData with a planted signal.

    Args:
        n_missing (int): Number of normal samples that get a missing value
            in one background probe.
    """
    samples = make_samples(n_tumor, n_normal, seed)
    betas = make_betas(
        samples["tissue_type"], n_probes, n_signal, seed=seed
    )
    for i in range(n_missing):
        betas.iloc[n_signal + i, n_tumor + i] = np.nan
    return CohortData(
        betas=betas, samples=samples, annotation=make_annotation(n_probes)
    )


def gdc_hit(barcode, sample_type, vital_status="Alive", days=1000):
    """A GDC file hit as returned by the files endpoint."""
    dead = vital_status == "Dead"
    return {
        "file_id": f"id-{barcode}",
        "file_name": f"{barcode}.level3betas.txt",
        "associated_entities": [{"entity_submitter_id": barcode}],
        "cases": [
            {
                "submitter_id": barcode[:12],
                "samples": [{"sample_type": sample_type}],
                "demographic": {
                    "vital_status": vital_status,
                    "days_to_death": days if dead else None,
                    "gender": "female",
                },
                "diagnoses": [
                    {
                        "days_to_last_follow_up": None if dead else days,
                        "ajcc_pathologic_stage": "Stage IIA",
                    }
                ],
            }
        ],
    }


class FakeResponse:
    """Minimal stand-in for `requests.Response`."""

    def __init__(self, payload=None, content=b"", status_code=200):
        self.payload = payload
        self.content = content
        self.status_code = status_code
        self.headers = {"content-length": str(len(content))}

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            msg = f"{self.status_code} Error"
            raise requests.HTTPError(msg)

    def iter_content(self, chunk_size=8192):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False
