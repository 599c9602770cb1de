"""Contains the clustering heatmap and the survival plots."""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import plotly.colors
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from scipy.cluster.hierarchy import dendrogram, linkage
from scipy.spatial.distance import squareform

from mebrca.dtypes import NORMAL, TUMOR
from mebrca.utils import ensure_directory_exists

logger = logging.getLogger(__name__)

HEATMAP_COLORSCALE = "RdBu_r"
GROUP_COLORS = {
    "HYPER": "rgb(215, 48, 39)",
    "HYPO": "rgb(69, 117, 180)",
}
TISSUE_COLORS = {
    TUMOR: "rgb(228, 26, 28)",
    NORMAL: "rgb(55, 126, 184)",
}
# scipy places the i-th dendrogram leaf at 5 + 10 * i
LEAF_SPACING = 10


def discrete_colors(names):
    """Returns a color per category, known tissue types keep fixed colors."""
    palette = plotly.colors.qualitative.Set2
    others = [name for name in names if name not in TISSUE_COLORS]
    colors = {
        name: palette[i % len(palette)] for i, name in enumerate(others)
    }
    colors.update(
        {name: TISSUE_COLORS[name] for name in names if name in TISSUE_COLORS}
    )
    return colors


def correlation_distance(matrix):
    """Condensed (1 - Pearson r) / 2 distances between the rows of `matrix`.

    Rows without variance have an undefined correlation, which is treated as
    r = 0 (distance 0.5).
    """
    matrix = np.asarray(matrix, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = np.atleast_2d(np.corrcoef(matrix))
    corr = np.nan_to_num(corr, nan=0.0)
    dist = np.clip((1 - corr) / 2, 0, 1)
    np.fill_diagonal(dist, 0)
    return squareform(dist, checks=False)


def cluster_linkage(matrix):
    """Complete linkage clustering of the rows on the correlation distance."""
    return linkage(correlation_distance(matrix), method="complete")


def cluster_order(matrix):
    """Returns the dendrogram leaf order of the rows of `matrix`."""
    matrix = np.asarray(matrix)
    if matrix.shape[0] < 2:
        return np.arange(matrix.shape[0])
    tree = dendrogram(cluster_linkage(matrix), no_plot=True)
    return np.array(tree["leaves"])


def zscore_rows(matrix):
    """Scales each row to mean 0 and unit variance (constant rows -> 0)."""
    matrix = np.asarray(matrix, dtype=float)
    mean = matrix.mean(axis=1, keepdims=True)
    std = matrix.std(axis=1, ddof=1, keepdims=True) if matrix.shape[1] > 1 else 0
    std = np.where(std > 0, std, 1.0)
    return (matrix - mean) / std


def _dendrogram_traces(matrix, horizontal=False):
    traces = []
    if np.asarray(matrix).shape[0] < 2:
        return traces
    tree = dendrogram(cluster_linkage(matrix), no_plot=True)
    for xs, ys in zip(tree["icoord"], tree["dcoord"]):
        x, y = (ys, xs) if horizontal else (xs, ys)
        traces.append(
            go.Scatter(
                x=x,
                y=y,
                mode="lines",
                line={"color": "black", "width": 1},
                hoverinfo="skip",
                showlegend=False,
            )
        )
    return traces


def _leaf_positions(n_leaves):
    return LEAF_SPACING * np.arange(n_leaves) + LEAF_SPACING / 2


def heatmap_plot(betas, labels, row_names=None, title=""):
    """Clustered heatmap of genes x samples with a tissue side strip.

    Rows (genes) and columns (samples) are clustered independently by
    complete linkage on the (1 - Pearson r) / 2 distance of the raw beta
    values. The displayed values are z-scored per gene.

    Args:
        betas (pd.DataFrame): Samples x probes beta values of the relevant
            probes.
        labels (pd.Series): Tissue type per sample.
        row_names (list, optional): Display name per probe (gene symbol).
        title (str): Figure title.

    Returns:
        plotly.graph_objects.Figure: The heatmap.
    """
    genes = betas.T
    labels = labels.loc[genes.columns]
    row_names = list(genes.index if row_names is None else row_names)
    gene_order = cluster_order(genes.to_numpy())
    sample_order = cluster_order(genes.to_numpy().T)

    z = zscore_rows(genes.to_numpy())[np.ix_(gene_order, sample_order)]
    x_pos = _leaf_positions(len(sample_order))
    y_pos = _leaf_positions(len(gene_order))
    sample_names = genes.columns[sample_order]
    ordered_labels = labels.to_numpy()[sample_order]

    fig = make_subplots(
        rows=3,
        cols=2,
        specs=[[None, {}], [None, {}], [{}, {}]],
        column_widths=[0.15, 0.85],
        row_heights=[0.15, 0.04, 0.81],
        horizontal_spacing=0.005,
        vertical_spacing=0.005,
        shared_xaxes=True,
        shared_yaxes=True,
    )
    for trace in _dendrogram_traces(genes.to_numpy().T):
        fig.add_trace(trace, row=1, col=2)
    for trace in _dendrogram_traces(genes.to_numpy(), horizontal=True):
        fig.add_trace(trace, row=3, col=1)

    categories = list(pd.unique(ordered_labels))
    colors = discrete_colors(categories)
    codes = [categories.index(lab) for lab in ordered_labels]
    n_cat = len(categories)
    strip_scale = []
    for i, cat in enumerate(categories):
        strip_scale.append([i / n_cat, colors[cat]])
        strip_scale.append([(i + 1) / n_cat, colors[cat]])
    fig.add_trace(
        go.Heatmap(
            z=[codes],
            x=x_pos,
            zmin=-0.5,
            zmax=n_cat - 0.5,
            colorscale=strip_scale,
            showscale=False,
            text=[list(ordered_labels)],
            hovertemplate="%{text}<extra></extra>",
        ),
        row=2,
        col=2,
    )
    for cat in categories:
        fig.add_trace(
            go.Scatter(
                x=[None],
                y=[None],
                mode="markers",
                marker={"color": colors[cat], "symbol": "square", "size": 12},
                name=str(cat),
            ),
            row=1,
            col=2,
        )
    fig.add_trace(
        go.Heatmap(
            z=z,
            x=x_pos,
            y=y_pos,
            colorscale=HEATMAP_COLORSCALE,
            zmid=0,
            colorbar={"title": {"text": "z-score"}, "len": 0.8, "y": 0.4},
            customdata=[list(sample_names)] * len(gene_order),
            hovertemplate="%{customdata}<br>z = %{z:.2f}<extra></extra>",
        ),
        row=3,
        col=2,
    )
    fig.update_xaxes(
        tickvals=x_pos,
        ticktext=list(sample_names),
        tickangle=90,
        tickfont={"size": 8},
        row=3,
        col=2,
    )
    fig.update_yaxes(
        tickvals=y_pos,
        ticktext=[row_names[i] for i in gene_order],
        side="right",
        tickfont={"size": 9},
        row=3,
        col=2,
    )
    fig.update_xaxes(visible=False, autorange="reversed", row=3, col=1)
    fig.update_yaxes(visible=False, row=1, col=2)
    fig.update_yaxes(visible=False, row=2, col=2)
    fig.update_layout(
        title={"text": title},
        template="simple_white",
        width=1100,
        height=300 + 18 * len(gene_order),
        legend={"title": {"text": "Tissue"}, "x": 1.02, "y": 1},
    )
    return fig


def risk_table(durations, times):
    """Number of subjects still at risk at each time point."""
    durations = np.asarray(durations, dtype=float)
    return [int((durations >= t).sum()) for t in times]


def survival_plot(result, n_risk_times=6):
    """Kaplan-Meier curves of both methylation groups of one gene.

    Args:
        result (SurvivalResult): Fitted groups of a single gene.
        n_risk_times (int): Number of time points in the risk table.

    Returns:
        plotly.graph_objects.Figure: Survival curves, risk table and
            log-rank p-value.
    """
    groups = list(result.fitters)
    max_time = float(result.data["time"].max())
    times = np.round(np.linspace(0, max_time, n_risk_times))

    fig = make_subplots(
        rows=2,
        cols=1,
        row_heights=[0.78, 0.22],
        shared_xaxes=True,
        vertical_spacing=0.06,
    )
    for i, group in enumerate(groups):
        kmf = result.fitters[group]
        color = GROUP_COLORS.get(group, "black")
        curve = kmf.survival_function_.iloc[:, 0]
        fig.add_trace(
            go.Scatter(
                x=curve.index,
                y=curve.to_numpy(),
                mode="lines",
                line={"shape": "hv", "color": color},
                name=kmf.label,
                legendgroup=group,
            ),
            row=1,
            col=1,
        )
        group_data = result.data[result.data["group"] == group]
        censored = group_data.loc[~group_data["event"], "time"]
        if len(censored) > 0:
            fig.add_trace(
                go.Scatter(
                    x=censored,
                    y=kmf.survival_function_at_times(
                        censored.to_numpy()
                    ).to_numpy(),
                    mode="markers",
                    marker={
                        "symbol": "line-ns-open",
                        "color": color,
                        "size": 8,
                    },
                    legendgroup=group,
                    showlegend=False,
                    hoverinfo="skip",
                ),
                row=1,
                col=1,
            )
        fig.add_trace(
            go.Scatter(
                x=times,
                y=[i] * len(times),
                mode="text",
                text=[str(n) for n in risk_table(group_data["time"], times)],
                textfont={"color": color},
                showlegend=False,
                hoverinfo="skip",
            ),
            row=2,
            col=1,
        )
    fig.add_annotation(
        x=0.03,
        y=0.05,
        xref="x domain",
        yref="y domain",
        text=f"Log-rank p = {result.p_value:.3g}",
        showarrow=False,
        font={"size": 14},
    )
    fig.update_yaxes(title_text="Survival probability", range=[0, 1.05])
    fig.update_yaxes(
        tickvals=list(range(len(groups))),
        ticktext=groups,
        range=[-0.5, len(groups) - 0.5],
        title_text="At risk",
        showgrid=False,
        row=2,
        col=1,
    )
    fig.update_xaxes(title_text="Days", row=2, col=1)
    fig.update_layout(
        title={"text": f"{result.symbol} ({result.probe})"},
        template="simple_white",
        width=800,
        height=650,
    )
    return fig


def write_figure(fig, path):
    """Saves a figure as HTML or, for other suffixes, as image (kaleido)."""
    path = Path(path)
    ensure_directory_exists(path.parent)
    if path.suffix == ".html":
        fig.write_html(path)
    else:
        fig.write_image(path)
    logger.debug("Saved figure %s", path)
    return path
