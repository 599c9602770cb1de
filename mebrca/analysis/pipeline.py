"""Tumor vs. normal methylation analysis of a breast cancer cohort.

The ``MethylSurvivalAnalysis`` class runs the analysis stage by stage:

    acquire -> build_features -> split -> fit_models -> evaluate
            -> select_genes -> make_heatmap -> survival

Every stage stores its output as attribute and can also be called on its own.
All parameters are explicit; the defaults come from the package config.

Example:
    >>> from mebrca import GDCSource, MethylSurvivalAnalysis
    >>> analysis = MethylSurvivalAnalysis(
    ...     GDCSource(cache_dir="~/mebrca/gdc"),
    ...     output_dir="~/mebrca/results",
    ... )
    >>> analysis.run()
    >>> analysis.evaluation
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import plotly

from mebrca.analysis.evaluation import confusion_matrix, evaluation_table
from mebrca.analysis.features import (
    build_feature_matrix,
    iqr_filter,
    stratified_split,
)
from mebrca.analysis.genes import relevant_genes
from mebrca.analysis.models import fit_elastic_net, fit_knn
from mebrca.analysis.plots import heatmap_plot, write_figure
from mebrca.analysis.survival import run_survival_analysis
from mebrca.dtypes import CohortFilter, acquire_cohort
from mebrca.utils import (
    CONFIG,
    MEBRCA_TMP_DIR,
    Timer,
    ensure_directory_exists,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path(MEBRCA_TMP_DIR, "analysis")
ELASTIC_NET_ALL = "elastic_net_all"
ELASTIC_NET_FILTERED = "elastic_net_filtered"
KNN = "knn"
VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


class MethylSurvivalAnalysis:
    """Classification, gene selection and survival analysis of a cohort.

    Args:
        source (CohortSource): Where the cohort is fetched from.
        output_dir (str or Path): Directory for the heatmap, survival plots
            and tables.
        methylation_filter (CohortFilter, optional): Methylation query,
            defaults to `CONFIG['cohort']`.
        expression_filter (CohortFilter, optional): Expression query used to
            find patients with both modalities, defaults to
            `CONFIG['expression']` for the same project.
        n_patients (int): Number of common patients to analyze.
        seed (int): Seed for the split, cross-validation folds and solver.
        train_size (float): Fraction of samples used for training.
        probe_na_fraction (float): Probes with more missing values are
            removed before incomplete samples are dropped.
        iqr_quantile (float): Probes with an IQR at or above this quantile
            are kept for the filtered models.
        alpha (float): Elastic Net mixing parameter.
        n_lambda (int): Length of the Elastic Net penalty path.
        lambda_min_ratio (float): Smallest penalty relative to the largest.
        cv_folds (int): Cross-validation folds for the penalty selection.
        max_iter (int): Maximal solver iterations.
        n_neighbors (int): k of the k-NN classifier.
        image_format (str): Extension of the saved figures ('png', 'svg',
            'pdf' or 'html').
        n_jobs (int): Processes used for the survival analysis.
        show_progress (bool): Show progress bars.
        verbose (int): 0 = warnings, 1 = info, 2 = debug.
    """

    def __init__(
        self,
        source,
        *,
        output_dir=DEFAULT_OUTPUT_DIR,
        methylation_filter=None,
        expression_filter=None,
        n_patients=CONFIG["cohort"]["n_patients"],
        seed=CONFIG["features"]["seed"],
        train_size=CONFIG["features"]["train_size"],
        probe_na_fraction=CONFIG["features"]["probe_na_fraction"],
        iqr_quantile=CONFIG["features"]["iqr_quantile"],
        alpha=CONFIG["models"]["alpha"],
        n_lambda=CONFIG["models"]["n_lambda"],
        lambda_min_ratio=CONFIG["models"]["lambda_min_ratio"],
        cv_folds=CONFIG["models"]["cv_folds"],
        max_iter=CONFIG["models"]["max_iter"],
        n_neighbors=CONFIG["models"]["n_neighbors"],
        image_format=CONFIG["plots"]["image_format"],
        n_jobs=CONFIG["survival"]["n_jobs"],
        show_progress=True,
        verbose=1,
    ):
        self.source = source
        self.output_dir = Path(output_dir).expanduser()
        self.methylation_filter = (
            methylation_filter or CohortFilter.from_config(CONFIG["cohort"])
        )
        self.expression_filter = expression_filter or CohortFilter.from_config(
            CONFIG["expression"],
            project=self.methylation_filter.project,
            sample_types=self.methylation_filter.sample_types,
        )
        self.n_patients = n_patients
        self.seed = seed
        self.train_size = train_size
        self.probe_na_fraction = probe_na_fraction
        self.iqr_quantile = iqr_quantile
        self.alpha = alpha
        self.n_lambda = n_lambda
        self.lambda_min_ratio = lambda_min_ratio
        self.cv_folds = cv_folds
        self.max_iter = max_iter
        self.n_neighbors = n_neighbors
        self.image_format = image_format
        self.n_jobs = n_jobs
        self.show_progress = show_progress

        self.cohort = None
        self.features = None
        self.partition = None
        self.filtered_probes = None
        self.models = {}
        self.predictions = {}
        self.confusion = {}
        self.genes = {}
        self.heatmap = None
        self.survival_results = {}

        ensure_directory_exists(self.output_dir)

        main_logger = logging.getLogger("mebrca")
        main_logger.setLevel(VERBOSITY_LEVELS.get(verbose, logging.INFO))
        for handler in main_logger.handlers:
            handler.setLevel(VERBOSITY_LEVELS.get(verbose, logging.INFO))

    def _require(self, attr, stage):
        if getattr(self, attr) is None:
            msg = f"Run '{stage}' first."
            raise RuntimeError(msg)
        return getattr(self, attr)

    def acquire(self):
        """Fetches methylation data of patients with expression data."""
        self.cohort = acquire_cohort(
            self.source,
            self.methylation_filter,
            self.expression_filter,
            self.n_patients,
        )
        return self.cohort

    def build_features(self):
        """Builds the complete samples x probes matrix and its labels."""
        cohort = self._require("cohort", "acquire")
        self.features = build_feature_matrix(
            cohort.betas, cohort.samples, self.probe_na_fraction
        )
        logger.info(
            "Feature matrix: %d samples x %d probes", *self.features.shape
        )
        return self.features

    def split(self):
        """Splits the samples into a stratified training and test set."""
        features = self._require("features", "build_features")
        self.partition = stratified_split(
            features.labels, self.train_size, self.seed
        )
        logger.info(
            "Training on %d, testing on %d samples",
            len(self.partition.train_ids),
            len(self.partition.test_ids),
        )
        return self.partition

    def fit_models(self):
        """Fits Elastic Net on all and on IQR-filtered probes, and k-NN."""
        features = self._require("features", "build_features")
        partition = self._require("partition", "split")
        train = features.subset(partition.train_ids)
        elastic_net_parms = {
            "alpha": self.alpha,
            "n_lambda": self.n_lambda,
            "lambda_min_ratio": self.lambda_min_ratio,
            "cv_folds": self.cv_folds,
            "max_iter": self.max_iter,
            "seed": self.seed,
        }
        self.models[ELASTIC_NET_ALL] = fit_elastic_net(
            train.values, train.labels, **elastic_net_parms
        )
        self.filtered_probes = iqr_filter(features.values, self.iqr_quantile)
        train_filtered = train.subset(probes=self.filtered_probes)
        self.models[ELASTIC_NET_FILTERED] = fit_elastic_net(
            train_filtered.values, train_filtered.labels, **elastic_net_parms
        )
        self.models[KNN] = fit_knn(
            train_filtered.values, train_filtered.labels, self.n_neighbors
        )
        return self.models

    def evaluate(self):
        """Predicts the test set and derives the confusion matrices."""
        features = self._require("features", "build_features")
        partition = self._require("partition", "split")
        if not self.models:
            msg = "Run 'fit_models' first."
            raise RuntimeError(msg)
        test = features.subset(partition.test_ids)
        for name, model in self.models.items():
            predicted = model.predict(test.values)
            self.predictions[name] = predicted
            self.confusion[name] = confusion_matrix(predicted, test.labels)
            logger.info("%s:\n%s", name, self.confusion[name])
        evaluation = self.evaluation
        evaluation.to_csv(self.output_dir / "evaluation.csv")
        return evaluation

    @property
    def evaluation(self):
        """Precision, specificity, sensitivity and accuracy per model."""
        return evaluation_table(self.confusion)

    def select_genes(self):
        """Extracts the non-zero Elastic Net probes of both models.

        The genes of the model fitted on the IQR-filtered probes are used
        downstream (`relevant_genes`); those of the model on all probes are
        kept for comparison.
        """
        if not self.models:
            msg = "Run 'fit_models' first."
            raise RuntimeError(msg)
        annotation = self._require("cohort", "acquire").annotation
        for name in (ELASTIC_NET_ALL, ELASTIC_NET_FILTERED):
            self.genes[name] = relevant_genes(
                self.models[name].coefficients, annotation
            )
            self.genes[name].to_csv(self.output_dir / f"genes_{name}.csv")
        return self.relevant_genes

    @property
    def relevant_genes(self):
        """Relevant gene set used for clustering and survival analysis.

        Genes of the filtered Elastic Net model, or of the model on all
        probes if the filtered model selected none.
        """
        if not self.genes:
            msg = "Run 'select_genes' first."
            raise RuntimeError(msg)
        genes = self.genes[ELASTIC_NET_FILTERED]
        if genes.empty:
            logger.warning(
                "Filtered Elastic Net selected no probes, using the model "
                "on all probes."
            )
            genes = self.genes[ELASTIC_NET_ALL]
        if genes.empty:
            msg = "Elastic Net selected no probes."
            raise ValueError(msg)
        return genes

    def make_heatmap(self):
        """Clusters all samples by the relevant genes and saves a heatmap."""
        features = self._require("features", "build_features")
        genes = self.relevant_genes
        self.heatmap = heatmap_plot(
            features.values[genes.index],
            features.labels,
            row_names=list(genes["symbol"]),
            title="Relevant genes",
        )
        path = self.output_dir / (
            f"{CONFIG['plots']['heatmap_file']}.{self.image_format}"
        )
        write_figure(self.heatmap, path)
        logger.info("Heatmap saved to %s", path)
        return self.heatmap

    def survival(self):
        """Kaplan-Meier analysis for each relevant gene."""
        features = self._require("features", "build_features")
        cohort = self._require("cohort", "acquire")
        self.survival_results = run_survival_analysis(
            self.relevant_genes,
            features.values,
            cohort.samples.loc[features.values.index],
            self.output_dir,
            image_format=self.image_format,
            n_jobs=self.n_jobs,
            show_progress=self.show_progress,
        )
        return self.survival_results

    @property
    def p_values(self):
        """Log-rank p-value per probe, in gene order."""
        return pd.Series(
            {probe: r.p_value for probe, r in self.survival_results.items()},
            name="p_value",
            dtype=float,
        )

    def run(self):
        """Runs all stages in order."""
        timer = Timer()
        for stage in (
            self.acquire,
            self.build_features,
            self.split,
            self.fit_models,
            self.evaluate,
            self.select_genes,
            self.make_heatmap,
            self.survival,
        ):
            stage()
            timer.stop(stage.__name__)
        logger.info("Analysis completed. Results in %s", self.output_dir)
        return self

    def __repr__(self):
        title = f"{self.__class__.__name__}()"
        header = title + "\n" + "*" * len(title)
        lines = [header]

        def format_value(value):
            if isinstance(value, (pd.DataFrame, pd.Series, pd.Index)):
                return str(value)
            if isinstance(value, np.ndarray):
                return f"{value}\n\n[{len(value)} items]"
            if isinstance(value, plotly.graph_objs.Figure):
                return f"Figure({len(value.data)} traces)"
            text = str(value)
            return text[:80] + ("..." if len(text) > 80 else "")

        for attr, value in sorted(self.__dict__.items()):
            lines.append(f"{attr}:\n{format_value(value)}")
        return "\n\n".join(lines)
