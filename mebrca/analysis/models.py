"""Contains the supervised classifiers separating tumor from normal tissue.

Two models are provided: an Elastic Net regularized logistic regression whose
penalty strength is chosen by cross-validation, and a k-nearest neighbors
classifier. Both are wrapped in a `TrainedClassifier` so the rest of the
analysis does not depend on the scikit-learn objects.
"""

import logging
import warnings
from abc import ABC, abstractmethod

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegressionCV
from sklearn.model_selection import StratifiedKFold
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from mebrca.utils import CONFIG

logger = logging.getLogger(__name__)

MODEL_CONFIG = CONFIG["models"]


class TrainedClassifier(ABC):
    """Abstract base class for a trained classifier."""

    @abstractmethod
    def predict(self, values):
        """Predicts the class of the given samples.

        Args:
            values (pd.DataFrame): Samples x probes matrix with the same
                probes the classifier was trained on.

        Returns:
            pd.Series: Predicted label per sample.
        """

    @abstractmethod
    def classes(self):
        """Returns the classes the classifier can predict."""

    def info(self):
        """Returns a short description of the classifier."""
        return _get_pipeline_description(self.model())

    def model(self):
        """Returns the fitted scikit-learn object."""
        return

    def __repr__(self):
        return self.info()


def _get_pipeline_description(clf):
    """Generates a summary string of the pipeline structure."""

    def format_non_default_params(step):
        default_params = step.__class__().get_params()
        current_params = step.get_params()
        return [
            f"- {param}: {_short(value)}"
            for param, value in current_params.items()
            if not _param_equal(default_params.get(param), value)
        ]

    lines = ["Classifier Structure:"]
    steps = clf.steps if hasattr(clf, "steps") else [("classifier", clf)]
    step_name_len = max(len(name) for name, _ in steps)
    for name, step in steps:
        lines.append(
            f"{name.capitalize():<{step_name_len}} : "
            f"{step.__class__.__name__}"
        )
        lines.extend(format_non_default_params(step))
    return "\n".join(lines)


def _param_equal(left, right):
    if left is right:
        return True
    try:
        return bool(np.all(left == right))
    except (TypeError, ValueError):
        return False


def _short(value, max_len=60):
    if isinstance(value, np.ndarray):
        return f"array of {len(value)} values"
    text = str(value)
    return text if len(text) <= max_len else text[: max_len - 3] + "..."


def _check_converged(fit, *args):
    """Calls `fit` and turns convergence warnings into errors."""
    with warnings.catch_warnings():
        warnings.simplefilter("error", category=ConvergenceWarning)
        try:
            return fit(*args)
        except ConvergenceWarning as exc:
            msg = f"Model fit did not converge: {exc}"
            raise RuntimeError(msg) from exc


def lambda_path(
    values,
    y,
    alpha=MODEL_CONFIG["alpha"],
    n_lambda=MODEL_CONFIG["n_lambda"],
    lambda_min_ratio=MODEL_CONFIG["lambda_min_ratio"],
):
    """Computes a decreasing, log spaced regularization path.

    The largest value is the smallest penalty for which all coefficients of
    the standardized problem are zero.

    Args:
        values (array-like): Samples x features matrix.
        y (array-like): Binary 0/1 response.
        alpha (float): Elastic Net mixing parameter (1 = lasso).
        n_lambda (int): Number of values on the path.
        lambda_min_ratio (float): Smallest value as fraction of the largest.

    Returns:
        np.ndarray: Penalty strengths from largest to smallest.
    """
    x_std = StandardScaler().fit_transform(np.asarray(values, dtype=float))
    y = np.asarray(y, dtype=float)
    n_samples = x_std.shape[0]
    lambda_max = np.max(np.abs(x_std.T @ (y - y.mean()))) / (
        n_samples * alpha
    )
    if lambda_max <= 0:
        msg = "Features carry no information about the response."
        raise ValueError(msg)
    return np.geomspace(lambda_max, lambda_max * lambda_min_ratio, n_lambda)


def _n_splits(y, cv_folds):
    min_count = int(np.unique(y, return_counts=True)[1].min())
    if min_count < cv_folds:
        logger.info(
            "Smallest class has %d samples, reducing folds from %d to %d",
            min_count,
            cv_folds,
            min_count,
        )
    n_splits = min(cv_folds, min_count)
    if n_splits < 2:
        msg = "Need at least 2 samples per class for cross-validation."
        raise ValueError(msg)
    return n_splits


class TrainedElasticNet(TrainedClassifier):
    """Elastic Net logistic regression refit at the selected penalty.

    Attributes:
        pipeline (Pipeline): Fitted scaler and `LogisticRegressionCV`.
        probes (pd.Index): Probes used as features.
        lambdas (np.ndarray): Penalty path that was cross-validated.
    """

    def __init__(self, pipeline, probes, lambdas):
        self.pipeline = pipeline
        self.probes = pd.Index(probes)
        self.lambdas = lambdas

    @property
    def _clf(self):
        return self.pipeline.named_steps["classifier"]

    @property
    def selected_lambda(self):
        """The penalty with minimal cross-validated deviance."""
        selected = np.ravel(self._clf.C_)[0]
        index = np.argmin(np.abs(self._clf.Cs_ - selected))
        return float(self.lambdas[index])

    @property
    def coefficients(self):
        """Coefficient per probe on the beta value scale.

        Positive weights increase the log-odds of `classes()[1]`.
        """
        scale = self.pipeline.named_steps["scaler"].scale_
        return pd.Series(
            np.ravel(self._clf.coef_) / scale,
            index=self.probes,
            name="coefficient",
        )

    @property
    def intercept(self):
        scaler = self.pipeline.named_steps["scaler"]
        weights = np.ravel(self._clf.coef_) / scaler.scale_
        intercept = np.ravel(self._clf.intercept_)[0]
        return float(intercept - np.dot(weights, scaler.mean_))

    @property
    def cv_deviance(self):
        """Mean cross-validated deviance along the penalty path."""
        # Negative mean log-loss of shape (n_folds, 1, n_lambda)
        scores = np.asarray(self._clf.scores_).reshape(-1, len(self.lambdas))
        return pd.Series(
            -2 * scores.mean(axis=0),
            index=pd.Index(self.lambdas, name="lambda"),
            name="deviance",
        )

    def predict(self, values):
        values = values[self.probes]
        return pd.Series(
            self.pipeline.predict(values), index=values.index, name="predicted"
        )

    def classes(self):
        return self._clf.classes_

    def model(self):
        return self.pipeline

    def info(self):
        n_nonzero = int((self.coefficients != 0).sum())
        return (
            f"{_get_pipeline_description(self.pipeline)}\n"
            f"Selected lambda : {self.selected_lambda:.6g}\n"
            f"Non-zero coefs  : {n_nonzero} of {len(self.probes)}"
        )


def fit_elastic_net(
    values,
    labels,
    *,
    alpha=MODEL_CONFIG["alpha"],
    n_lambda=MODEL_CONFIG["n_lambda"],
    lambda_min_ratio=MODEL_CONFIG["lambda_min_ratio"],
    cv_folds=MODEL_CONFIG["cv_folds"],
    max_iter=MODEL_CONFIG["max_iter"],
    seed=CONFIG["features"]["seed"],
    positive=CONFIG["labels"]["positive"],
):
    """Fits a cross-validated Elastic Net logistic regression.

    Features are standardized, a lambda path is generated and each value is
    evaluated by stratified k-fold cross-validation on the log-loss. The model
    is refit on all samples at the lambda with minimal deviance.

    The saga solver runs `n_lambda * cv_folds` fits. On a full 450K array
    with the defaults (100 x 10) this takes hours; a shorter path or fewer
    folds (`--n_lambda`, `--cv_folds` on the command line) trade resolution
    of the penalty for run time.

    Args:
        values (pd.DataFrame): Training samples x probes.
        labels (pd.Series): Training labels.
        alpha (float): Mixing of L1 and L2 penalty, 0.5 weighs them equally.
        n_lambda (int): Length of the penalty path.
        lambda_min_ratio (float): Smallest lambda relative to the largest.
        cv_folds (int): Number of folds, reduced to the smallest class size.
        max_iter (int): Maximal solver iterations.
        seed (int): Random seed for folds and solver.
        positive (str): Label coded as 1 when computing the lambda path.

    Returns:
        TrainedElasticNet: The fitted model.

    Raises:
        RuntimeError: If the solver did not converge.
    """
    y = np.asarray(labels)
    n_samples = len(y)
    lambdas = lambda_path(
        values, y == positive, alpha, n_lambda, lambda_min_ratio
    )
    cv = StratifiedKFold(
        n_splits=_n_splits(y, cv_folds), shuffle=True, random_state=seed
    )
    pipeline = Pipeline(
        [
            ("scaler", StandardScaler()),
            (
                "classifier",
                LogisticRegressionCV(
                    Cs=1.0 / (n_samples * lambdas),
                    cv=cv,
                    solver="saga",
                    l1_ratios=[alpha],
                    use_legacy_attributes=False,
                    scoring="neg_log_loss",
                    max_iter=max_iter,
                    random_state=seed,
                ),
            ),
        ]
    )
    logger.info(
        "Fitting Elastic Net on %d samples x %d probes...",
        n_samples,
        values.shape[1],
    )
    _check_converged(pipeline.fit, values, y)
    trained = TrainedElasticNet(pipeline, values.columns, lambdas)
    logger.info(
        "Selected lambda %.4g with %d non-zero coefficients",
        trained.selected_lambda,
        int((trained.coefficients != 0).sum()),
    )
    return trained


class NearestTieKNeighborsClassifier(KNeighborsClassifier):
    """k-NN classifier with nearest neighbor priority on vote ties.

    The majority label among the k nearest training samples is predicted. If
    several labels share the highest vote count, the one that occurs first
    when the neighbors are ordered by distance wins.
    """

    def fit(self, X, y):
        super().fit(X, y)
        self.train_labels_ = np.asarray(y)
        return self

    def predict(self, X):
        neighbors = self.kneighbors(X, return_distance=False)
        predictions = []
        for row in neighbors:
            neighbor_labels = self.train_labels_[row]
            votes = pd.Series(neighbor_labels).value_counts()
            winners = set(votes.index[votes == votes.max()])
            predictions.append(
                next(lab for lab in neighbor_labels if lab in winners)
            )
        return np.array(predictions)


class TrainedKNN(TrainedClassifier):
    """Fitted k-nearest neighbor classifier."""

    def __init__(self, clf, probes):
        self.clf = clf
        self.probes = pd.Index(probes)

    def predict(self, values):
        values = values[self.probes]
        return pd.Series(
            self.clf.predict(values.to_numpy()),
            index=values.index,
            name="predicted",
        )

    def classes(self):
        return self.clf.classes_

    def model(self):
        return self.clf


def fit_knn(values, labels, n_neighbors=MODEL_CONFIG["n_neighbors"]):
    """Stores the training samples in a Euclidean k-NN classifier."""
    if n_neighbors > len(values):
        msg = (
            f"n_neighbors (={n_neighbors}) exceeds the number of training "
            f"samples (={len(values)})."
        )
        raise ValueError(msg)
    clf = NearestTieKNeighborsClassifier(
        n_neighbors=n_neighbors, algorithm="brute", metric="euclidean"
    )
    clf.fit(values.to_numpy(), np.asarray(labels))
    logger.info("Fitted %d-NN on %d samples", n_neighbors, len(values))
    return TrainedKNN(clf, values.columns)
