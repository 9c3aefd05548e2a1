"""
Функции ядра для SMO SVM.

Поддерживаемые ядра:
    linear:      K(x1, x2) = x1^T x2
    polynomial:  K(x1, x2) = (x1^T x2 + 1)^d          (d = param, по умолчанию 2)
    radial:      K(x1, x2) = exp(-||x1 - x2||² / 2σ²)  (σ = param, по умолчанию 2)

Вычислительное ядро скомпилировано Numba. fastmath не используется:
элементы матрицы Грама и попарные вызовы должны совпадать бит в бит.
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

import numpy as np
from numba import njit

from .exceptions import InvalidInput, UnknownKernel


class KernelKind(IntEnum):
    LINEAR = 0
    POLYNOMIAL = 1
    RADIAL = 2


# Имена ядер, принимаемые на входе (без учёта регистра)
KERNEL_ALIASES = {
    "linear": KernelKind.LINEAR,
    "lineal": KernelKind.LINEAR,
    "polynomial": KernelKind.POLYNOMIAL,
    "poly": KernelKind.POLYNOMIAL,
    "radial": KernelKind.RADIAL,
    "rbf": KernelKind.RADIAL,
}

CANONICAL_NAMES = {
    KernelKind.LINEAR: "linear",
    KernelKind.POLYNOMIAL: "polynomial",
    KernelKind.RADIAL: "radial",
}

DEFAULT_KERNEL_PARAM = 2.0


# =============================================================================
# Numba-функции ядра
# =============================================================================

@njit(cache=True)
def _dot(x1: np.ndarray, x2: np.ndarray) -> float:
    s = 0.0
    for k in range(x1.shape[0]):
        s += x1[k] * x2[k]
    return s


@njit(cache=True)
def _squared_distance(x1: np.ndarray, x2: np.ndarray) -> float:
    s = 0.0
    for k in range(x1.shape[0]):
        d = x1[k] - x2[k]
        s += d * d
    return s


@njit(cache=True)
def kernel_value(x1: np.ndarray, x2: np.ndarray, kind: int, param: float) -> float:
    """Значение ядра для двух векторов, kind: код KernelKind."""
    if kind == 0:
        return _dot(x1, x2)
    elif kind == 1:
        return (_dot(x1, x2) + 1.0) ** param
    else:
        return math.exp(_squared_distance(x1, x2) / (-2.0 * param * param))


@njit(cache=True)
def gram_matrix(X: np.ndarray, kind: int, param: float) -> np.ndarray:
    """
    Полная матрица Грама K[i, j] = K(x_i, x_j).

    Диагональ и внедиагональные элементы считаются одной и той же
    функцией kernel_value; нижний треугольник зеркалит верхний.
    """
    n = X.shape[0]
    K = np.empty((n, n), dtype=np.float64)
    for i in range(n):
        for j in range(i, n):
            K[i, j] = kernel_value(X[i], X[j], kind, param)
            K[j, i] = K[i, j]
    return K


@njit(cache=True)
def kernel_row(X: np.ndarray, x: np.ndarray, kind: int, param: float) -> np.ndarray:
    """Строка ядра: row[i] = K(x, X[i])."""
    n = X.shape[0]
    row = np.empty(n, dtype=np.float64)
    for i in range(n):
        row[i] = kernel_value(x, X[i], kind, param)
    return row


# =============================================================================
# Python-обёртки
# =============================================================================

def as_vector(x) -> np.ndarray:
    v = np.ascontiguousarray(x, dtype=np.float64)
    if v.ndim != 1:
        raise InvalidInput(f"Ожидался вектор, получен массив формы {v.shape}")
    return v


def as_matrix(X) -> np.ndarray:
    try:
        M = np.ascontiguousarray(X, dtype=np.float64)
    except ValueError as e:
        # рваные списки векторов разной длины
        raise InvalidInput(f"Векторы признаков разной размерности: {e}") from e
    if M.ndim != 2:
        raise InvalidInput(f"Ожидалась матрица (n_samples, n_features), получена форма {M.shape}")
    return M


def frozen_array(a) -> np.ndarray:
    """Копия массива float64, доступная только для чтения."""
    out = np.array(a, dtype=np.float64, copy=True)
    out.flags.writeable = False
    return out


def resolve_kind(name: Union[str, KernelKind]) -> KernelKind:
    if isinstance(name, KernelKind):
        return name
    if not isinstance(name, str):
        raise UnknownKernel(name)
    kind = KERNEL_ALIASES.get(name.lower())
    if kind is None:
        raise UnknownKernel(name)
    return kind


@dataclass(frozen=True)
class Kernel:
    """
    Закрытый вариант ядра {Linear, Polynomial(degree), Radial(sigma)}.

    Создаётся один раз через Kernel.from_name и вызывается единообразно
    солвером и предиктором.
    """
    kind: KernelKind
    param: float = DEFAULT_KERNEL_PARAM

    @classmethod
    def from_name(cls, name: Union[str, KernelKind] = "linear",
                  param: Optional[float] = None) -> 'Kernel':
        kind = resolve_kind(name)
        if param is None:
            param = DEFAULT_KERNEL_PARAM
        param = float(param)
        if kind == KernelKind.POLYNOMIAL and param <= 0:
            raise InvalidInput(f"Степень полиномиального ядра должна быть > 0, получено {param}")
        if kind == KernelKind.RADIAL and param <= 0:
            raise InvalidInput(f"sigma радиального ядра должна быть > 0, получено {param}")
        return cls(kind=kind, param=param)

    @property
    def name(self) -> str:
        return CANONICAL_NAMES[self.kind]

    @property
    def is_linear(self) -> bool:
        return self.kind == KernelKind.LINEAR

    def __call__(self, x1, x2) -> float:
        v1 = as_vector(x1)
        v2 = as_vector(x2)
        if v1.shape[0] != v2.shape[0]:
            raise InvalidInput(
                f"Векторы должны быть одной длины: {v1.shape[0]} != {v2.shape[0]}"
            )
        return float(kernel_value(v1, v2, int(self.kind), self.param))

    def gram(self, X) -> np.ndarray:
        return gram_matrix(as_matrix(X), int(self.kind), self.param)

    def row(self, X, x) -> np.ndarray:
        return kernel_row(as_matrix(X), as_vector(x), int(self.kind), self.param)


def kernel(x1, x2, kind: Union[str, KernelKind] = "linear",
           param: Optional[float] = None) -> float:
    """
    Значение ядра для двух векторов.

    Args:
        x1, x2: Векторы одной длины
        kind: Имя ядра ('linear', 'polynomial', 'radial' и синонимы)
        param: Степень (polynomial) или sigma (radial)

    Returns:
        K(x1, x2)

    Raises:
        UnknownKernel: неизвестное имя ядра
    """
    return Kernel.from_name(kind, param)(x1, x2)


def compute_gram(X, kind: Union[str, KernelKind] = "linear",
                 param: Optional[float] = None) -> np.ndarray:
    """Матрица Грама (n_samples, n_samples) для набора векторов X."""
    return Kernel.from_name(kind, param).gram(X)
