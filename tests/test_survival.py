"""Pytest for the Kaplan-Meier / log-rank survival analysis."""

import numpy as np
import pandas as pd
import pytest

from mebrca.analysis.genes import relevant_genes
from mebrca.analysis.survival import (
    HYPER,
    HYPO,
    P_VALUE_FILE,
    analyze_gene,
    median_groups,
    run_survival_analysis,
    survival_table,
)
from mebrca.dtypes import NORMAL, TUMOR
from mebrca.tests.helpers import make_cohort


def test_median_groups_odd_length() -> None:
    groups = median_groups(pd.Series([5.0, 1.0, 3.0, 2.0, 4.0]))
    assert list(groups) == [HYPER, HYPO, HYPER, HYPO, HYPER]


def test_median_groups_even_length() -> None:
    groups = median_groups(np.array([0.1, 0.4, 0.2, 0.3]))
    assert list(groups) == [HYPO, HYPER, HYPO, HYPER]


def test_survival_table() -> None:
    samples = pd.DataFrame(
        {
            "patient_id": ["p1", "p1", "p2", "p3", "p4"],
            "tissue_type": [TUMOR, NORMAL, TUMOR, TUMOR, TUMOR],
            "vital_status": ["Dead", "Dead", "Alive", "Alive", "Dead"],
            "days_to_death": [100, 100, None, None, None],
            "days_to_last_follow_up": [None, None, 2000, 50, None],
        },
        index=["s1", "s2", "s3", "s4", "s5"],
    )
    table = survival_table(samples)

    assert list(table.index) == ["s1", "s3", "s4"]
    assert list(table["time"]) == [100, 2000, 50]
    assert list(table["event"]) == [True, False, False]

    everything = survival_table(samples, tissue_type=None)
    assert list(everything.index) == ["s1", "s3", "s4"]


def test_survival_table_one_sample_per_patient() -> None:
    samples = pd.DataFrame(
        {
            "patient_id": ["p1", "p1"],
            "tissue_type": [TUMOR, TUMOR],
            "vital_status": ["Alive", "Alive"],
            "days_to_death": [None, None],
            "days_to_last_follow_up": [10, 10],
        },
        index=["a", "b"],
    )
    assert list(survival_table(samples).index) == ["a"]


def _survival_data(n=12):
    index = [f"s{i}" for i in range(n)]
    survival = pd.DataFrame(
        {
            "time": np.arange(1, n + 1) * 100.0,
            "event": [i % 2 == 0 for i in range(n)],
        },
        index=index,
    )
    return survival, index


def test_analyze_gene() -> None:
    survival, index = _survival_data()
    betas = pd.Series(np.linspace(0.1, 0.9, len(index)), index=index)
    result = analyze_gene("cg1", "GATA3", betas, survival)

    assert set(result.fitters) == {HYPER, HYPO}
    assert result.group_size(HYPER) == result.group_size(HYPO) == 6
    assert 0 <= result.p_value <= 1
    # Low methylation goes with short survival here
    hypo = result.fitters[HYPO].median_survival_time_
    hyper = result.fitters[HYPER].median_survival_time_
    assert hypo < hyper


def test_analyze_gene_constant_beta_raises() -> None:
    survival, index = _survival_data()
    betas = pd.Series(0.5, index=index)
    with pytest.raises(ValueError, match="empty"):
        analyze_gene("cg1", "GATA3", betas, survival)


@pytest.fixture(scope="module")
def survival_input():
    cohort = make_cohort(n_tumor=16, n_normal=6, n_probes=10)
    coefficients = pd.Series(
        [1.0, -2.0, 0.0, 0.5, 0.0, 0.0, 0.0, 0.0, 0.0, 0.3],
        index=cohort.betas.index,
    )
    genes = relevant_genes(coefficients, cohort.annotation)
    return genes, cohort.betas.T, cohort.samples


@pytest.mark.parametrize("n_jobs", [1, 2])
def test_run_survival_analysis(survival_input, tmp_path, n_jobs) -> None:
    genes, betas, samples = survival_input
    results = run_survival_analysis(
        genes,
        betas,
        samples,
        tmp_path,
        image_format="html",
        n_jobs=n_jobs,
        show_progress=False,
    )

    assert list(results) == list(genes.index)
    files = sorted(p.name for p in tmp_path.glob("*.html"))
    assert files == [
        "BRCA1_cg00000000_survival.html",
        "BRCA1_cg00000001_survival.html",
        "GENE3_survival.html",
        "cg00000009_survival.html",
    ]
    for result in results.values():
        assert result.path.exists()
        assert result.group_size(HYPER) + result.group_size(HYPO) == 16

    table = pd.read_csv(tmp_path / P_VALUE_FILE, index_col="probe")
    assert list(table.index) == list(genes.index)
    assert table["p_value"].between(0, 1).all()


def test_run_survival_analysis_is_order_stable(survival_input, tmp_path):
    genes, betas, samples = survival_input
    kwargs = {"image_format": "html", "show_progress": False}
    serial = run_survival_analysis(
        genes, betas, samples, tmp_path / "a", n_jobs=1, **kwargs
    )
    parallel = run_survival_analysis(
        genes, betas, samples, tmp_path / "b", n_jobs=2, **kwargs
    )
    assert list(serial) == list(parallel)
    for probe in serial:
        assert serial[probe].p_value == pytest.approx(parallel[probe].p_value)
        assert serial[probe].path.name == parallel[probe].path.name


def test_run_survival_analysis_without_genes(tmp_path) -> None:
    genes = pd.DataFrame(columns=["symbol"])
    results = run_survival_analysis(
        genes, pd.DataFrame(), make_cohort().samples, tmp_path
    )
    assert results == {}
