from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.linear_model import SGDClassifier
from sklearn.preprocessing import MinMaxScaler


def create_price_sequences(
    prices: Sequence[float], lookback: int, horizon: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build sliding windows of ``lookback`` prices and binary up/down targets.

    The target for the window ending at ``i`` is 1 when ``prices[i + horizon]``
    is strictly above ``prices[i]``, else 0.

    Returns:
        Tuple[np.ndarray, np.ndarray]: ``(sequences, targets)`` with shapes
        ``(n, lookback)`` and ``(n,)``.
    """
    arr = np.asarray(prices, dtype=float)
    if lookback <= 0 or horizon <= 0:
        return np.empty((0, max(lookback, 0))), np.empty(0)

    sequences: List[np.ndarray] = []
    targets: List[float] = []
    for i in range(lookback - 1, arr.size - horizon):
        sequences.append(arr[i - lookback + 1 : i + 1])
        targets.append(1.0 if arr[i + horizon] > arr[i] else 0.0)
    if not sequences:
        return np.empty((0, lookback)), np.empty(0)
    return np.vstack(sequences), np.asarray(targets, dtype=float)


class SequenceScaler:
    """
    Min-max scaling over every price in the training windows.

    One range is shared by all window positions, so a window keeps its shape
    after scaling. Prices outside the fitted range map outside [0, 1].
    """

    def __init__(self) -> None:
        self._scaler = MinMaxScaler()

    def fit(self, sequences: np.ndarray) -> "SequenceScaler":
        self._scaler.fit(np.asarray(sequences, dtype=float).reshape(-1, 1))
        return self

    def transform(self, sequences: np.ndarray) -> np.ndarray:
        seqs = np.asarray(sequences, dtype=float)
        if seqs.ndim == 1:
            seqs = seqs.reshape(1, -1)
        return self._scaler.transform(seqs.reshape(-1, 1)).reshape(seqs.shape)


@dataclass
class PricePredictor:
    """
    Logistic-regression classifier for "will price be higher after the horizon".

    Trained with SGD on log loss so ``epochs`` and ``learning_rate`` map onto
    passes and step size. Training data with a single direction yields that
    direction with certainty.

    Attributes:
        lookback (int): Input window length.
        epochs (int): Passes over the training windows.
        learning_rate (float): Constant SGD step size.
        trained (bool): Whether ``fit`` has run.
    """

    lookback: int
    epochs: int = 10
    learning_rate: float = 0.01
    trained: bool = False
    scaler: SequenceScaler = field(default_factory=SequenceScaler, repr=False)
    classifier: Optional[SGDClassifier] = field(default=None, repr=False)
    constant: Optional[float] = None

    def fit(self, sequences: np.ndarray, targets: np.ndarray) -> "PricePredictor":
        """
        Fit the scaler and the classifier on raw price windows.

        Args:
            sequences (np.ndarray): Price windows, shape ``(n, lookback)``.
            targets (np.ndarray): 0/1 labels, shape ``(n,)``.
        """
        X = self.scaler.fit(sequences).transform(sequences)
        y = np.asarray(targets, dtype=int)
        labels = np.unique(y)
        if labels.size == 1:
            self.constant = float(labels[0])
        else:
            self.classifier = SGDClassifier(
                loss="log_loss",
                learning_rate="constant",
                eta0=float(self.learning_rate),
                max_iter=max(1, int(self.epochs)),
                tol=None,
                random_state=0,
            ).fit(X, y)
        self.trained = True
        return self

    def predict_proba(self, window: np.ndarray) -> float:
        """Probability that price rises after the horizon; 0.5 before ``fit``."""
        if not self.trained:
            return 0.5
        if self.constant is not None:
            return self.constant
        X = self.scaler.transform(window)
        up = list(self.classifier.classes_).index(1)
        return float(self.classifier.predict_proba(X)[0, up])


__all__ = ["PricePredictor", "SequenceScaler", "create_price_sequences"]
