"""
Экспорт и загрузка обученной модели SVM.

Model: неизменяемый снимок, достаточный для предсказаний без обучающей
выборки: опции, смещение, статистики нормализации и либо вектор весов
(линейное ядро), либо набор опорных векторов (остальные ядра).

Форматы хранения:
- словарь, совместимый с JSON, с меткой {"name": "SVM", ...}
- архив numpy .npz (опции сохраняются JSON-строкой)
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .exceptions import InvalidInput, InvalidState
from .kernels import frozen_array
from .options import SVMOptions
from .smo_solver import SupportVector
from .whitening import WhiteningStats

MODEL_NAME = "SVM"


class ModelState(Enum):
    UNTRAINED = "untrained"
    TRAINED = "trained"
    LOADED = "loaded"


@dataclass(frozen=True, eq=False)
class Model:
    """Снимок обученной модели."""
    options: SVMOptions
    bias: float
    n_features: int
    whitening_stats: Optional[WhiteningStats] = None
    weights: Optional[np.ndarray] = None
    support_vectors: Optional[Tuple[SupportVector, ...]] = None

    def __post_init__(self):
        linear = self.options.make_kernel().is_linear
        if linear and (self.weights is None or self.support_vectors is not None):
            raise InvalidInput("Линейная модель должна содержать только weights")
        if not linear and (self.support_vectors is None or self.weights is not None):
            raise InvalidInput("Нелинейная модель должна содержать только support_vectors")
        if self.options.whitening != (self.whitening_stats is not None):
            raise InvalidInput("whitening_stats должны присутствовать тогда и только тогда, когда whitening=True")
        if self.n_features < 1:
            raise InvalidInput(f"n_features должно быть >= 1, получено {self.n_features}")
        if not np.isfinite(self.bias):
            raise InvalidInput(f"Некорректное смещение: {self.bias}")

        expected = (self.n_features,)
        if self.weights is not None and np.shape(self.weights) != expected:
            raise InvalidInput(
                f"Размерность weights {np.shape(self.weights)} не совпадает с n_features={self.n_features}"
            )
        if self.whitening_stats is not None:
            stats = self.whitening_stats
            if np.shape(stats.min) != expected or np.shape(stats.max) != expected:
                raise InvalidInput(
                    f"Размерность whitening_stats {np.shape(stats.min)}/{np.shape(stats.max)} "
                    f"не совпадает с n_features={self.n_features}"
                )
        for k, sv in enumerate(self.support_vectors or ()):
            if np.shape(sv.feature) != expected:
                raise InvalidInput(
                    f"Опорный вектор {k}: размерность {np.shape(sv.feature)} "
                    f"не совпадает с n_features={self.n_features}"
                )
            if sv.label not in (-1, 1):
                raise InvalidInput(f"Опорный вектор {k}: метка {sv.label} не из {{-1, +1}}")
            if not sv.alpha >= 0:
                raise InvalidInput(f"Опорный вектор {k}: α = {sv.alpha} < 0")

    @property
    def is_linear(self) -> bool:
        return self.weights is not None

    def to_dict(self) -> dict:
        d = {
            "name": MODEL_NAME,
            "options": self.options.to_dict(),
            "bias": self.bias,
            "n_features": self.n_features,
        }
        if self.whitening_stats is not None:
            d["whitening_stats"] = self.whitening_stats.to_dict()
        if self.weights is not None:
            d["weights"] = self.weights.tolist()
        if self.support_vectors is not None:
            d["support_vectors"] = [sv.to_dict() for sv in self.support_vectors]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> 'Model':
        if not isinstance(d, dict) or d.get("name") != MODEL_NAME:
            raise InvalidInput("expecting a SVM model")
        try:
            stats = d.get("whitening_stats")
            weights = d.get("weights")
            svs = d.get("support_vectors")
            return cls(
                options=SVMOptions.from_dict(d["options"]),
                bias=float(d["bias"]),
                n_features=int(d["n_features"]),
                whitening_stats=WhiteningStats.from_dict(stats) if stats is not None else None,
                weights=frozen_array(weights) if weights is not None else None,
                support_vectors=tuple(SupportVector.from_dict(sv) for sv in svs) if svs is not None else None,
            )
        except InvalidInput:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"Повреждённая модель SVM: {type(e).__name__}: {e}") from e


def export_model(svm) -> Model:
    """
    Снимок обученной или загруженной модели.

    Raises:
        InvalidState: модель не обучена и не загружена
    """
    if svm.state not in (ModelState.TRAINED, ModelState.LOADED):
        raise InvalidState("Нельзя экспортировать модель до обучения или загрузки")

    stats = svm.whitening_stats
    if stats is not None:
        stats = WhiteningStats(min=frozen_array(stats.min), max=frozen_array(stats.max))

    if svm.kernel.is_linear:
        return Model(
            options=svm.options,
            bias=svm.bias,
            n_features=svm.n_features,
            whitening_stats=stats,
            weights=frozen_array(svm.weights),
        )

    support_vectors = tuple(
        SupportVector(
            feature=frozen_array(sv.feature),
            label=sv.label,
            alpha=sv.alpha,
            original_index=sv.original_index,
        )
        for sv in svm.support_vector_set
    )
    return Model(
        options=svm.options,
        bias=svm.bias,
        n_features=svm.n_features,
        whitening_stats=stats,
        support_vectors=support_vectors,
    )


# =============================================================================
# Сохранение в .npz
# =============================================================================

def save_model(model: Model, path) -> None:
    """Сохраняет модель в архив numpy .npz."""
    arrays = {
        "name": np.array(MODEL_NAME),
        "options": np.array(json.dumps(model.options.to_dict())),
        "bias": np.array(model.bias, dtype=np.float64),
        "n_features": np.array(model.n_features, dtype=np.int64),
    }
    if model.whitening_stats is not None:
        arrays["whitening_min"] = model.whitening_stats.min
        arrays["whitening_max"] = model.whitening_stats.max
    if model.weights is not None:
        arrays["weights"] = model.weights
    if model.support_vectors is not None:
        svs = model.support_vectors
        arrays["sv_features"] = np.array([sv.feature for sv in svs], dtype=np.float64).reshape(len(svs), model.n_features)
        arrays["sv_labels"] = np.array([sv.label for sv in svs], dtype=np.float64)
        arrays["sv_alphas"] = np.array([sv.alpha for sv in svs], dtype=np.float64)
        arrays["sv_indices"] = np.array([sv.original_index for sv in svs], dtype=np.int64)
    np.savez(path, **arrays)


def _model_from_archive(data) -> Model:
    stats = None
    if "whitening_min" in data.files:
        stats = WhiteningStats(min=frozen_array(data["whitening_min"]), max=frozen_array(data["whitening_max"]))

    weights = frozen_array(data["weights"]) if "weights" in data.files else None

    support_vectors = None
    if "sv_features" in data.files:
        support_vectors = tuple(
            SupportVector(
                feature=frozen_array(feature),
                label=float(label),
                alpha=float(alpha),
                original_index=int(index),
            )
            for feature, label, alpha, index in zip(
                data["sv_features"], data["sv_labels"], data["sv_alphas"], data["sv_indices"]
            )
        )

    return Model(
        options=SVMOptions.from_dict(json.loads(data["options"].item())),
        bias=float(data["bias"]),
        n_features=int(data["n_features"]),
        whitening_stats=stats,
        weights=weights,
        support_vectors=support_vectors,
    )


def read_model(path) -> Model:
    """
    Читает модель, сохранённую save_model.

    Raises:
        InvalidInput: архив не содержит модель SVM или повреждён
    """
    with np.load(path, allow_pickle=False) as data:
        if "name" not in data.files or data["name"].item() != MODEL_NAME:
            raise InvalidInput("expecting a SVM model")
        try:
            return _model_from_archive(data)
        except InvalidInput:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"Повреждённый архив модели SVM: {type(e).__name__}: {e}") from e
