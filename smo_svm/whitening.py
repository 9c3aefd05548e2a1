"""
Min-max нормализация признаков (whitening).

Статистики (min, max) по каждому признаку считаются один раз на
обучающей выборке и повторно применяются к каждому запросу.

Признак с нулевым размахом (max == min) отображается в 0.
"""

import warnings
from dataclasses import dataclass

import numpy as np

from .kernels import as_matrix, frozen_array
from .exceptions import InvalidInput


@dataclass(frozen=True, eq=False)
class WhiteningStats:
    """Статистики нормализации по признакам."""
    min: np.ndarray
    max: np.ndarray

    @property
    def n_features(self) -> int:
        return self.min.shape[0]

    @property
    def constant_features(self) -> np.ndarray:
        """Индексы признаков с нулевым размахом."""
        return np.flatnonzero(self.max == self.min)

    def to_dict(self) -> dict:
        return {"min": self.min.tolist(), "max": self.max.tolist()}

    @classmethod
    def from_dict(cls, d: dict) -> 'WhiteningStats':
        return cls(min=frozen_array(d["min"]),
                   max=frozen_array(d["max"]))


def fit_whitening(features) -> WhiteningStats:
    """Считает min/max по каждому признаку."""
    X = as_matrix(features)
    if X.shape[0] == 0:
        raise InvalidInput("Нельзя вычислить статистики по пустой выборке")
    stats = WhiteningStats(min=X.min(axis=0), max=X.max(axis=0))

    constant = stats.constant_features
    if len(constant) > 0:
        warnings.warn(
            f"Признаки {constant.tolist()} имеют нулевой размах и будут отображены в 0"
        )
    return stats


def apply_whitening(stats: WhiteningStats, x) -> np.ndarray:
    """
    Применяет (v - min) / (max - min) к вектору или матрице.

    Args:
        stats: Статистики из fit_whitening
        x: Вектор (n_features,) или матрица (n_samples, n_features)

    Returns:
        Нормализованный массив той же формы
    """
    v = np.asarray(x, dtype=np.float64)
    if v.ndim not in (1, 2) or v.shape[-1] != stats.n_features:
        raise InvalidInput(
            f"Ожидалась размерность {stats.n_features}, получена форма {v.shape}"
        )

    span = stats.max - stats.min
    zero_span = span == 0
    safe_span = np.where(zero_span, 1.0, span)
    out = (v - stats.min) / safe_span
    return np.where(zero_span, 0.0, out)
