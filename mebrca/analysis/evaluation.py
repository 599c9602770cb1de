"""Confusion matrices and derived classification metrics.

"Primary Tumor" is the positive class. A metric whose denominator is zero is
reported as NaN.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix as sk_confusion_matrix

from mebrca.utils import CONFIG

logger = logging.getLogger(__name__)


def _ratio(numerator, denominator):
    return numerator / denominator if denominator else np.nan


@dataclass(frozen=True)
class ConfusionMatrix:
    """2x2 table of predicted vs. actual labels."""

    tp: int
    fp: int
    fn: int
    tn: int
    positive: str = CONFIG["labels"]["positive"]
    negative: str = CONFIG["labels"]["negative"]

    @property
    def precision(self):
        return _ratio(self.tp, self.tp + self.fp)

    @property
    def specificity(self):
        return _ratio(self.tn, self.tn + self.fp)

    @property
    def sensitivity(self):
        return _ratio(self.tp, self.tp + self.fn)

    @property
    def accuracy(self):
        return _ratio(self.tp + self.tn, self.tp + self.fp + self.fn + self.tn)

    def table(self):
        """Returns the counts with predictions as rows, truth as columns."""
        return pd.DataFrame(
            [[self.tp, self.fp], [self.fn, self.tn]],
            index=pd.Index([self.positive, self.negative], name="predicted"),
            columns=pd.Index([self.positive, self.negative], name="actual"),
        )

    def metrics(self):
        return {
            "precision": self.precision,
            "specificity": self.specificity,
            "sensitivity": self.sensitivity,
            "accuracy": self.accuracy,
        }

    def __str__(self):
        lines = [str(self.table()), ""]
        lines.extend(f"{k:<11} : {v:.4f}" for k, v in self.metrics().items())
        return "\n".join(lines)


def confusion_matrix(
    predicted,
    actual,
    positive=CONFIG["labels"]["positive"],
    negative=CONFIG["labels"]["negative"],
):
    """Cross-tabulates predicted against actual labels.

    Args:
        predicted (pd.Series): Predicted label per sample.
        actual (pd.Series): True label per sample. Series are aligned on
            their index, arrays are compared position-wise.
        positive (str): Label counted as positive.
        negative (str): Label counted as negative.

    Returns:
        ConfusionMatrix: The counts.
    """
    if isinstance(predicted, pd.Series) and isinstance(actual, pd.Series):
        actual = actual.loc[predicted.index]
    predicted = np.asarray(predicted)
    actual = np.asarray(actual)
    if len(predicted) != len(actual):
        msg = "Predicted and actual labels must have the same length."
        raise ValueError(msg)
    unknown = set(predicted) | set(actual)
    unknown -= {positive, negative}
    if unknown:
        msg = f"Unexpected labels: {sorted(unknown)}"
        raise ValueError(msg)
    # sklearn: rows are actual, columns are predicted
    (tp, fn), (fp, tn) = sk_confusion_matrix(
        actual, predicted, labels=[positive, negative]
    )
    return ConfusionMatrix(
        tp=int(tp),
        fp=int(fp),
        fn=int(fn),
        tn=int(tn),
        positive=positive,
        negative=negative,
    )


def evaluation_table(results):
    """Summarizes several confusion matrices, one row per model name."""
    return pd.DataFrame(
        {name: cm.metrics() for name, cm in results.items()}
    ).T.rename_axis("model")
