# ABOUTME: Scores predicted success rates against observed answers.
# ABOUTME: Computes AUC, Brier score, log loss, and expected calibration error for replays.

from typing import Callable, Dict, Iterable, Mapping

import numpy as np
import pandas as pd
from sklearn.metrics import log_loss, roc_auc_score


def _auc(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    # Undefined with a single observed class.
    if len(np.unique(y_true)) < 2:
        return 0.0
    return float(roc_auc_score(y_true, y_pred))


def _brier(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.mean((y_pred - y_true) ** 2))


def _log_loss(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(log_loss(y_true, y_pred, labels=[0.0, 1.0]))


def _calibration_ece(y_true: np.ndarray, y_pred: np.ndarray, num_bins: int = 10) -> float:
    """Weighted gap between observed accuracy and mean prediction over equal-width bins."""
    total = len(y_true)
    # A prediction of exactly 1.0 belongs to the top bin.
    bin_ids = np.minimum((y_pred * num_bins).astype(int), num_bins - 1)
    gap = 0.0
    for bin_id in np.unique(bin_ids):
        in_bin = bin_ids == bin_id
        gap += in_bin.sum() / total * abs(y_true[in_bin].mean() - y_pred[in_bin].mean())
    return float(gap)


SCORERS: Dict[str, Callable[[np.ndarray, np.ndarray], float]] = {
    "auc": _auc,
    "brier": _brier,
    "log_loss": _log_loss,
    "calibration_ece": _calibration_ece,
}


def evaluate_predictions(predictions: pd.DataFrame, metrics: Iterable[str]) -> Mapping[str, float]:
    """
    Score a replay predictions frame.

    Parameters
    ----------
    predictions : pd.DataFrame
        Needs 'y_true' (0/1 outcome) and 'y_pred' (predicted success rate).
    metrics : Iterable[str]
        Any of SCORERS' keys.
    """

    metrics = list(metrics)
    unknown = [m for m in metrics if m not in SCORERS]
    if unknown:
        raise ValueError(f"Unsupported metric '{unknown[0]}'.")

    if predictions is None or len(predictions) == 0:
        return {metric: np.nan for metric in metrics}

    y_true = predictions["y_true"].to_numpy(dtype=float)
    y_pred = np.clip(predictions["y_pred"].to_numpy(dtype=float), 0.0, 1.0)
    return {metric: SCORERS[metric](y_true, y_pred) for metric in metrics}
