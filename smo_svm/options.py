"""
Конфигурация SMO SVM.

Все параметры имеют значения по умолчанию. Источник случайности не входит
в сохраняемые опции: он передаётся в SVM отдельно (random_state).
"""

from dataclasses import asdict, dataclass, fields, replace
from typing import Optional, Union

import numpy as np

from .exceptions import InvalidInput
from .kernels import Kernel


@dataclass(frozen=True)
class SVMOptions:
    """
    Параметры обучения.

    Args:
        C: Параметр регуляризации (верхняя граница α)
        tol: Допуск для проверки KKT условий
        alpha_tol: Порог α, выше которого пример считается опорным вектором
        max_passes: Число подряд идущих проходов без изменений для сходимости
        max_iterations: Максимум внешних итераций (проходов по выборке)
        alpha_change_tol: Минимальное |Δα_j|, считающееся изменением
        kernel: Имя ядра ('linear', 'polynomial', 'radial')
        kernel_param: Степень (polynomial) или sigma (radial); None: значение по умолчанию
        whitening: Применять min-max нормализацию признаков
    """
    C: float = 1.0
    tol: float = 1e-4
    alpha_tol: float = 1e-6
    max_passes: int = 10
    max_iterations: int = 10000
    alpha_change_tol: float = 1e-3
    kernel: str = "linear"
    kernel_param: Optional[float] = None
    whitening: bool = True

    def __post_init__(self):
        if self.C <= 0:
            raise InvalidInput(f"C должно быть > 0, получено {self.C}")
        if self.tol < 0:
            raise InvalidInput(f"tol должно быть >= 0, получено {self.tol}")
        if self.alpha_tol < 0:
            raise InvalidInput(f"alpha_tol должно быть >= 0, получено {self.alpha_tol}")
        if self.alpha_change_tol < 0:
            raise InvalidInput(f"alpha_change_tol должно быть >= 0, получено {self.alpha_change_tol}")
        if self.max_passes < 1:
            raise InvalidInput(f"max_passes должно быть >= 1, получено {self.max_passes}")
        if self.max_iterations < 1:
            raise InvalidInput(f"max_iterations должно быть >= 1, получено {self.max_iterations}")
        # Проверяем имя и параметр ядра сразу, а не при обучении
        self.make_kernel()

    def make_kernel(self) -> Kernel:
        return Kernel.from_name(self.kernel, self.kernel_param)

    def with_overrides(self, **overrides) -> 'SVMOptions':
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise InvalidInput(f"Неизвестные параметры: {sorted(unknown)}")
        return replace(self, **overrides)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> 'SVMOptions':
        return cls().with_overrides(**d)


RandomState = Union[None, int, np.random.Generator]


def resolve_random_source(random_state: RandomState = None):
    """
    Возвращает источник случайности с методом integers(low, high).

    None: новый np.random.default_rng() (не глобальное состояние numpy),
    int: генератор с этим seed, иначе объект используется как есть.
    """
    if random_state is None:
        return np.random.default_rng()
    if isinstance(random_state, (int, np.integer)):
        return np.random.default_rng(int(random_state))
    if not hasattr(random_state, "integers"):
        raise InvalidInput(
            f"random_state должен быть None, int или np.random.Generator, "
            f"получено {type(random_state).__name__}"
        )
    return random_state
