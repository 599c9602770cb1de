"""Survival analysis of the relevant genes.

For every gene the tumor samples are split at the median beta value into a
hypermethylated (HYPER, >= median) and a hypomethylated (HYPO, < median)
group. A Kaplan-Meier curve is fitted per group and the groups are compared
with a log-rank test.
"""

import logging
from dataclasses import dataclass, field
from multiprocessing import Pool
from pathlib import Path

import numpy as np
import pandas as pd
from lifelines import KaplanMeierFitter
from lifelines.statistics import logrank_test
from tqdm import tqdm

from mebrca.analysis.genes import plot_filenames
from mebrca.analysis.plots import survival_plot, write_figure
from mebrca.dtypes import DEAD, TUMOR
from mebrca.utils import (
    CONFIG,
    ensure_directory_exists,
    get_optimal_core_count,
)

logger = logging.getLogger(__name__)

HYPER = "HYPER"
HYPO = "HYPO"
P_VALUE_FILE = "survival_p_values.csv"


@dataclass
class SurvivalResult:
    """Kaplan-Meier fits and log-rank test of one gene.

    Attributes:
        probe (str): Probe identifier.
        symbol (str): Gene symbol used for display and file name.
        data (pd.DataFrame): Per sample 'beta', 'time', 'event' and 'group'.
        fitters (dict): Group name -> fitted KaplanMeierFitter.
        p_value (float): Log-rank p-value of HYPER vs. HYPO.
        path (Path, optional): Where the plot was saved.
    """

    probe: str
    symbol: str
    data: pd.DataFrame
    fitters: dict = field(default_factory=dict)
    p_value: float = np.nan
    path: Path = None

    def group_size(self, group):
        return int((self.data["group"] == group).sum())


def survival_table(samples, tissue_type=TUMOR):
    """Returns overall survival time and event per patient sample.

    The time is days_to_death for deceased patients and
    days_to_last_follow_up otherwise. Only one sample of `tissue_type` per
    patient is kept; samples without a time are dropped.

    Args:
        samples (pd.DataFrame): Sample metadata.
        tissue_type (str or None): Restrict to this tissue, None keeps all.

    Returns:
        pd.DataFrame: Columns 'time' (float) and 'event' (bool), indexed like
            `samples`.
    """
    if tissue_type is not None:
        samples = samples[samples["tissue_type"] == tissue_type]
    samples = samples[~samples["patient_id"].duplicated(keep="first")]
    event = (samples["vital_status"] == DEAD).to_numpy()
    time = np.where(
        event,
        pd.to_numeric(samples["days_to_death"], errors="coerce"),
        pd.to_numeric(samples["days_to_last_follow_up"], errors="coerce"),
    )
    table = pd.DataFrame({"time": time, "event": event}, index=samples.index)
    valid = table["time"].notna()
    if (~valid).any():
        logger.info(
            "Dropped %d samples without survival time", int((~valid).sum())
        )
    return table[valid]


def median_groups(values):
    """Assigns HYPER (>= median) or HYPO (< median) to each value."""
    median = np.median(np.asarray(values, dtype=float))
    return pd.Series(
        np.where(np.asarray(values) >= median, HYPER, HYPO),
        index=getattr(values, "index", None),
        name="group",
    )


def analyze_gene(probe, symbol, betas, survival):
    """Fits Kaplan-Meier curves and a log-rank test for one gene.

    Args:
        probe (str): Probe identifier.
        symbol (str): Gene symbol.
        betas (pd.Series): Beta value of the probe per sample.
        survival (pd.DataFrame): Output of `survival_table`.

    Returns:
        SurvivalResult: The fitted groups.

    Raises:
        ValueError: If one of the groups is empty.
    """
    data = survival.join(betas.rename("beta"), how="inner").dropna()
    data["group"] = median_groups(data["beta"])
    fitters = {}
    for group in (HYPER, HYPO):
        group_data = data[data["group"] == group]
        if group_data.empty:
            msg = f"Median split of {symbol} ({probe}) left {group} empty."
            raise ValueError(msg)
        kmf = KaplanMeierFitter()
        kmf.fit(
            group_data["time"],
            event_observed=group_data["event"],
            label=f"{group} (n={len(group_data)})",
        )
        fitters[group] = kmf
    hyper = data[data["group"] == HYPER]
    hypo = data[data["group"] == HYPO]
    test = logrank_test(
        hyper["time"],
        hypo["time"],
        event_observed_A=hyper["event"],
        event_observed_B=hypo["event"],
    )
    return SurvivalResult(
        probe=probe,
        symbol=symbol,
        data=data,
        fitters=fitters,
        p_value=float(test.p_value),
    )


def _survival_task(task):
    """Analyzes one gene and saves its plot (runs in worker processes)."""
    probe, symbol, betas, survival, path, n_risk_times = task
    result = analyze_gene(probe, symbol, betas, survival)
    result.path = write_figure(survival_plot(result, n_risk_times), path)
    return result


def run_survival_analysis(
    genes,
    betas,
    samples,
    output_dir,
    *,
    image_format=CONFIG["plots"]["image_format"],
    suffix=CONFIG["plots"]["survival_suffix"],
    n_jobs=CONFIG["survival"]["n_jobs"],
    n_risk_times=CONFIG["survival"]["n_risk_times"],
    show_progress=True,
):
    """Runs the survival analysis for all relevant genes.

    Genes are independent of each other and may be processed by a pool of
    `n_jobs` processes. The returned mapping always follows the order of
    `genes`; each plot file name only depends on the gene symbol (and the
    probe id if the symbol is shared).

    Args:
        genes (pd.DataFrame): Relevant genes indexed by probe with a 'symbol'
            column.
        betas (pd.DataFrame): Samples x probes beta values.
        samples (pd.DataFrame): Sample metadata.
        output_dir (str or Path): Directory for plots and the p-value table.
        image_format (str): Plot file extension, e.g. 'png' or 'html'.
        suffix (str): Appended to the gene symbol in the file name.
        n_jobs (int): Number of processes, None chooses automatically.
        n_risk_times (int): Time points in the risk tables.
        show_progress (bool): Show a progress bar.

    Returns:
        dict: probe -> SurvivalResult in the order of `genes`.
    """
    output_dir = Path(output_dir)
    ensure_directory_exists(output_dir)
    survival = survival_table(samples)
    filenames = plot_filenames(genes, f"{suffix}.{image_format}")
    tasks = [
        (
            probe,
            symbol,
            betas[probe],
            survival,
            output_dir / filenames[probe],
            n_risk_times,
        )
        for probe, symbol in genes["symbol"].items()
    ]
    if not tasks:
        return {}

    if n_jobs is None:
        n_jobs = max(1, min(len(tasks), get_optimal_core_count()))
    n_jobs = max(1, min(n_jobs, len(tasks)))
    logger.info(
        "Survival analysis of %d genes using %d process(es)",
        len(tasks),
        n_jobs,
    )
    with tqdm(
        total=len(tasks), desc="Survival analysis", disable=not show_progress
    ) as pbar:
        if n_jobs == 1:
            results = []
            for task in tasks:
                results.append(_survival_task(task))
                pbar.update(1)
        else:
            with Pool(n_jobs) as pool:
                results = []
                for result in pool.imap_unordered(_survival_task, tasks):
                    results.append(result)
                    pbar.update(1)

    by_probe = {result.probe: result for result in results}
    ordered = {probe: by_probe[probe] for probe in genes.index}
    p_value_table(ordered).to_csv(output_dir / P_VALUE_FILE)
    return ordered


def p_value_table(results):
    """Summarizes the survival results, one row per probe."""
    return pd.DataFrame(
        [
            {
                "probe": r.probe,
                "symbol": r.symbol,
                "n_hyper": r.group_size(HYPER),
                "n_hypo": r.group_size(HYPO),
                "p_value": r.p_value,
                "file": None if r.path is None else Path(r.path).name,
            }
            for r in results.values()
        ],
        columns=["probe", "symbol", "n_hyper", "n_hypo", "p_value", "file"],
    ).set_index("probe")
