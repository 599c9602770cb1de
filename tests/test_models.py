"""Pytest for the Elastic Net and k-NN classifiers."""

import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest

from mebrca.analysis.features import build_feature_matrix, stratified_split
from mebrca.analysis.models import (
    NearestTieKNeighborsClassifier,
    fit_elastic_net,
    fit_knn,
    lambda_path,
)
from mebrca.dtypes import NORMAL, TUMOR
from mebrca.tests.helpers import make_cohort

FAST_PARMS = {"n_lambda": 20, "cv_folds": 3, "seed": 42}
SIGNAL = {f"cg{i:08d}" for i in range(5)}


@pytest.fixture(scope="module")
def split_data():
    cohort = make_cohort(n_tumor=10, n_normal=10, n_probes=50, n_signal=5)
    features = build_feature_matrix(cohort.betas, cohort.samples)
    partition = stratified_split(features.labels, 0.75, 42)
    train = features.subset(partition.train_ids)
    test = features.subset(partition.test_ids)
    return train, test


def test_lambda_path_is_decreasing() -> None:
    rng = np.random.default_rng(0)
    values = rng.random((12, 4))
    y = np.array([0, 1] * 6)
    lambdas = lambda_path(values, y, alpha=0.5, n_lambda=10)

    assert len(lambdas) == 10
    assert np.all(np.diff(lambdas) < 0)
    npt.assert_allclose(lambdas[-1] / lambdas[0], 0.01)


def test_lambda_path_without_signal_raises() -> None:
    values = np.ones((6, 3))
    with pytest.raises(ValueError, match="no information"):
        lambda_path(values, np.array([0, 1] * 3))


def test_elastic_net_recovers_planted_signal(split_data) -> None:
    train, test = split_data
    model = fit_elastic_net(train.values, train.labels, **FAST_PARMS)

    coefficients = model.coefficients
    support = set(coefficients.index[coefficients != 0])
    assert len(coefficients) == 50
    assert support
    assert support & SIGNAL
    assert model.selected_lambda in model.lambdas

    predicted = model.predict(test.values)
    accuracy = (predicted == test.labels).mean()
    baseline = test.labels.value_counts(normalize=True).max()
    assert accuracy > baseline


def test_elastic_net_support_is_reproducible(split_data) -> None:
    train, _ = split_data
    first = fit_elastic_net(train.values, train.labels, **FAST_PARMS)
    second = fit_elastic_net(train.values, train.labels, **FAST_PARMS)

    npt.assert_array_equal(
        first.coefficients != 0, second.coefficients != 0
    )
    assert first.selected_lambda == second.selected_lambda


def test_elastic_net_reports_deviance_path(split_data) -> None:
    train, _ = split_data
    model = fit_elastic_net(train.values, train.labels, **FAST_PARMS)
    deviance = model.cv_deviance

    assert len(deviance) == FAST_PARMS["n_lambda"]
    assert deviance.idxmin() == pytest.approx(model.selected_lambda)
    assert "Selected lambda" in model.info()


def test_knn_predicts_test_set(split_data) -> None:
    train, test = split_data
    signal = sorted(SIGNAL)
    model = fit_knn(train.values[signal], train.labels, n_neighbors=9)
    predicted = model.predict(test.values)

    assert list(predicted.index) == list(test.values.index)
    assert (predicted == test.labels).all()
    pd.testing.assert_series_equal(predicted, model.predict(test.values))


def test_knn_too_few_samples() -> None:
    values = pd.DataFrame({"cg1": [0.1, 0.9]})
    with pytest.raises(ValueError, match="n_neighbors"):
        fit_knn(values, pd.Series([TUMOR, NORMAL]), n_neighbors=9)


def test_knn_tie_prefers_nearest_neighbor() -> None:
    # Two neighbors of each class, the closest one is normal
    train = np.array([[0.0], [1.0], [3.0], [4.0], [100.0]])
    labels = np.array([TUMOR, NORMAL, TUMOR, NORMAL, TUMOR])
    clf = NearestTieKNeighborsClassifier(n_neighbors=4, algorithm="brute")
    clf.fit(train, labels)

    assert clf.predict(np.array([[1.2]]))[0] == NORMAL
    assert clf.predict(np.array([[-0.2]]))[0] == TUMOR
    # Same point twice gives the same label
    npt.assert_array_equal(
        clf.predict(np.array([[1.2], [1.2]])), [NORMAL, NORMAL]
    )


def test_knn_majority_wins_over_nearest() -> None:
    train = np.array([[0.0], [1.0], [1.1], [1.2]])
    labels = np.array([NORMAL, TUMOR, TUMOR, TUMOR])
    clf = NearestTieKNeighborsClassifier(n_neighbors=3, algorithm="brute")
    clf.fit(train, labels)

    assert clf.predict(np.array([[0.2]]))[0] == TUMOR


def test_elastic_net_without_convergence_raises(split_data) -> None:
    train, _ = split_data
    with pytest.raises(RuntimeError, match="converge"):
        fit_elastic_net(
            train.values, train.labels, n_lambda=5, cv_folds=3, max_iter=1
        )
