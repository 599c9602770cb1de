"""Feature matrix construction, partitioning and variance filtering."""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from mebrca.utils import CONFIG

logger = logging.getLogger(__name__)


@dataclass
class FeatureMatrix:
    """Samples x probes beta values without missing entries.

    Attributes:
        values (pd.DataFrame): Beta values, samples as rows.
        labels (pd.Series): Tissue type of each row.
    """

    values: pd.DataFrame
    labels: pd.Series

    def __post_init__(self):
        if not self.values.index.is_unique:
            msg = "Sample identifiers must be unique."
            raise ValueError(msg)
        if not self.values.columns.is_unique:
            msg = "Probe identifiers must be unique."
            raise ValueError(msg)
        if self.values.isna().to_numpy().any():
            msg = "Feature matrix contains missing values."
            raise ValueError(msg)
        self.labels = self.labels.loc[self.values.index]

    @property
    def shape(self):
        return self.values.shape

    def subset(self, ids=None, probes=None):
        """Returns a new FeatureMatrix restricted to samples and/or probes."""
        values = self.values
        if ids is not None:
            values = values.loc[list(ids)]
        if probes is not None:
            values = values[list(probes)]
        return FeatureMatrix(values, self.labels.loc[values.index])


@dataclass(frozen=True)
class Partition:
    """Disjoint train/test sample identifiers."""

    train_ids: tuple
    test_ids: tuple


def build_feature_matrix(
    betas,
    samples,
    probe_na_fraction=CONFIG["features"]["probe_na_fraction"],
):
    """Builds the samples x probes matrix used for modeling.

    Probes missing in more than `probe_na_fraction` of the samples are removed
    first. Afterwards every sample that still has a missing value is dropped;
    nothing is imputed.

    Args:
        betas (pd.DataFrame): Beta values, probes as rows, samples as columns.
        samples (pd.DataFrame): Sample metadata with a 'tissue_type' column.
        probe_na_fraction (float): Maximal fraction of missing values per
            probe. Use 1.0 to only drop samples.

    Returns:
        FeatureMatrix: Complete matrix with aligned tissue labels.
    """
    values = betas.T
    na_fraction = values.isna().mean(axis=0)
    keep_probes = na_fraction <= probe_na_fraction
    n_dropped_probes = int((~keep_probes).sum())
    if n_dropped_probes:
        logger.info(
            "Dropped %d probes with more than %.0f%% missing values",
            n_dropped_probes,
            100 * probe_na_fraction,
        )
    values = values.loc[:, keep_probes]

    complete = values.notna().all(axis=1)
    n_dropped_samples = int((~complete).sum())
    logger.info(
        "Dropped %d of %d samples with missing values",
        n_dropped_samples,
        len(values),
    )
    values = values[complete].astype(float)
    if values.empty:
        msg = "No complete samples left after removing missing values."
        raise ValueError(msg)
    labels = samples.loc[values.index, "tissue_type"].rename("tissue_type")
    return FeatureMatrix(values, labels)


def stratified_split(
    labels,
    train_size=CONFIG["features"]["train_size"],
    seed=CONFIG["features"]["seed"],
):
    """Splits samples into train and test set preserving class proportions.

    The split only depends on `seed` and the order of `labels`.

    Args:
        labels (pd.Series): Class label per sample id.
        train_size (float): Fraction of samples in the training set.
        seed (int): Random seed.

    Returns:
        Partition: Train and test sample ids, each in input order.
    """
    train_ids, test_ids = train_test_split(
        labels.index.to_numpy(),
        train_size=train_size,
        stratify=labels.to_numpy(),
        random_state=seed,
    )
    order = {id_: i for i, id_ in enumerate(labels.index)}
    return Partition(
        train_ids=tuple(sorted(train_ids, key=order.get)),
        test_ids=tuple(sorted(test_ids, key=order.get)),
    )


def interquartile_range(values):
    """Returns the interquartile range of each column."""
    q75, q25 = np.percentile(values.to_numpy(), [75, 25], axis=0)
    return pd.Series(q75 - q25, index=values.columns)


def iqr_filter(values, quantile=CONFIG["features"]["iqr_quantile"]):
    """Keeps the probes with the highest interquartile range.

    A probe is kept if its IQR is at or above the `quantile` of all probe
    IQRs (linear interpolation). With distinct IQRs and quantile 0.95 this
    keeps exactly ceil(0.05 * n_probes) probes; ties at the threshold are all
    kept.

    Args:
        values (pd.DataFrame): Samples x probes matrix.
        quantile (float): Retention cutoff in [0, 1].

    Returns:
        pd.Index: The retained probes in input order.
    """
    iqr = interquartile_range(values)
    threshold = np.quantile(iqr.to_numpy(), quantile)
    retained = iqr.index[iqr.to_numpy() >= threshold]
    logger.info(
        "IQR filter kept %d of %d probes (IQR >= %.4f)",
        len(retained),
        len(iqr),
        threshold,
    )
    return retained
