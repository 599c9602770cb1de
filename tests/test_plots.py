"""Pytest for clustering and figure generation."""

import numpy as np
import numpy.testing as npt
import pandas as pd
import plotly.graph_objects as go
from scipy.spatial.distance import squareform

from mebrca.analysis.plots import (
    cluster_order,
    correlation_distance,
    heatmap_plot,
    risk_table,
    write_figure,
    zscore_rows,
)
from mebrca.tests.helpers import make_cohort


def test_correlation_distance() -> None:
    matrix = np.array(
        [
            [1.0, 2.0, 3.0, 4.0],
            [2.0, 4.0, 6.0, 8.0],
            [4.0, 3.0, 2.0, 1.0],
            [1.0, 1.0, 1.0, 1.0],
        ]
    )
    dist = squareform(correlation_distance(matrix))

    npt.assert_allclose(dist[0, 1], 0.0, atol=1e-12)
    npt.assert_allclose(dist[0, 2], 1.0)
    # Constant row counts as uncorrelated
    npt.assert_allclose(dist[0, 3], 0.5)
    npt.assert_allclose(np.diag(dist), 0.0)


def test_cluster_order_groups_correlated_rows() -> None:
    rng = np.random.default_rng(1)
    up = np.linspace(0, 1, 8)
    matrix = np.vstack(
        [up + rng.normal(0, 0.01, 8) for _ in range(3)]
        + [up[::-1] + rng.normal(0, 0.01, 8) for _ in range(3)]
    )
    order = list(cluster_order(matrix))

    assert sorted(order) == list(range(6))
    assert set(order[:3]) in ({0, 1, 2}, {3, 4, 5})


def test_cluster_order_single_row() -> None:
    assert list(cluster_order(np.ones((1, 4)))) == [0]


def test_zscore_rows() -> None:
    z = zscore_rows(np.array([[1.0, 2.0, 3.0], [5.0, 5.0, 5.0]]))
    npt.assert_allclose(z[0], [-1.0, 0.0, 1.0])
    npt.assert_allclose(z[1], 0.0)


def test_risk_table() -> None:
    assert risk_table([10, 20, 30, 40], [0, 15, 40, 50]) == [4, 3, 1, 0]


def test_heatmap_plot(tmp_path) -> None:
    cohort = make_cohort(n_tumor=6, n_normal=5, n_probes=8)
    betas = cohort.betas.T.iloc[:, :4]
    labels = cohort.samples["tissue_type"]
    fig = heatmap_plot(betas, labels, row_names=list("ABCD"), title="Test")

    assert isinstance(fig, go.Figure)
    heatmaps = [t for t in fig.data if isinstance(t, go.Heatmap)]
    main = heatmaps[-1]
    assert np.asarray(main.z).shape == (4, 11)
    yaxis = fig.layout["yaxis" + main.yaxis[1:]]
    assert sorted(yaxis.ticktext) == list("ABCD")
    assert fig.layout.title.text == "Test"

    path = write_figure(fig, tmp_path / "plots" / "heatmap.html")
    assert path.exists()


def test_heatmap_plot_single_gene() -> None:
    cohort = make_cohort(n_tumor=3, n_normal=3, n_probes=4)
    betas = cohort.betas.T.iloc[:, :1]
    fig = heatmap_plot(betas, cohort.samples["tissue_type"])
    main = [t for t in fig.data if isinstance(t, go.Heatmap)][-1]
    assert np.asarray(main.z).shape == (1, 6)


def test_heatmap_labels_follow_sample_order() -> None:
    cohort = make_cohort(n_tumor=4, n_normal=4, n_probes=6)
    betas = cohort.betas.T.iloc[:, :3]
    labels = cohort.samples["tissue_type"].iloc[::-1]
    fig = heatmap_plot(betas, labels)
    strip, main = [t for t in fig.data if isinstance(t, go.Heatmap)]
    ticktext = list(fig.layout["xaxis" + main.xaxis[1:]].ticktext)

    expected = pd.Series(labels).loc[ticktext].tolist()
    assert list(strip.text[0]) == expected
