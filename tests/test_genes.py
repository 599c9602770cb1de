"""Pytest for gene selection and plot file names."""

import numpy as np
import pandas as pd
import pytest

from mebrca.analysis.genes import (
    INTERCEPT,
    leading_symbol,
    plot_filenames,
    relevant_genes,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("RPL23A;SNORD42B", "RPL23A"),
        ("C1orf159,C1orf159", "C1orf159"),
        ("HLA-DRB1", "HLA"),
        (";GATA3", "GATA3"),
        ("", None),
        (np.nan, None),
        (None, None),
    ],
)
def test_leading_symbol(raw, expected) -> None:
    assert leading_symbol(raw) == expected


def test_relevant_genes() -> None:
    coefficients = pd.Series(
        [0.3, 0.0, -1.2, 0.5, 0.0],
        index=[INTERCEPT, "cg1", "cg2", "cg3", "cg4"],
    )
    annotation = pd.Series(
        {"cg1": "GENEA", "cg2": "ESR1;ESR1-AS1", "cg4": "GENEB"}
    )
    genes = relevant_genes(coefficients, annotation)

    assert list(genes.index) == ["cg2", "cg3"]
    assert list(genes["symbol"]) == ["ESR1", "cg3"]
    assert genes.loc["cg2", "coefficient"] == -1.2
    assert pd.isna(genes.loc["cg3", "gene_symbol"])


def test_relevant_genes_empty() -> None:
    coefficients = pd.Series([0.0, 0.0], index=["cg1", "cg2"])
    assert relevant_genes(coefficients).empty


def test_plot_filenames_disambiguates_collisions() -> None:
    genes = pd.DataFrame(
        {"symbol": ["BRCA1", "GATA3", "BRCA1"]},
        index=["cg9", "cg5", "cg1"],
    )
    names = plot_filenames(genes, "_survival.png")

    assert names == {
        "cg9": "BRCA1_cg9_survival.png",
        "cg5": "GATA3_survival.png",
        "cg1": "BRCA1_cg1_survival.png",
    }
    assert len(set(names.values())) == len(names)
    # Independent of processing order
    assert plot_filenames(genes.iloc[::-1], "_survival.png") == names
