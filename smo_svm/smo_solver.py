"""
Упрощённый Sequential Minimal Optimization (SMO) солвер для бинарного SVM.

Алгоритм основан на работе:
- Platt, J. (1998). "Sequential Minimal Optimization: A Fast Algorithm for Training SVMs"
- упрощённый вариант со случайным выбором второго индекса (CS229, "The Simplified SMO Algorithm")

Двойственная задача:
    max_α Σ_i α_i - 1/2 Σ_i Σ_j α_i α_j y_i y_j K(x_i,x_j)

    s.t. Σ_i α_i y_i = 0
         0 ≤ α_i ≤ C

Внешний цикл проходит по всем примерам, нарушающим KKT условия; вторая
переменная выбирается равномерно случайно через переданный источник
случайности. Обучение сходится, когда max_passes проходов подряд не
изменили ни одной пары, и завершается NonConvergent, если раньше
исчерпан лимит max_iterations.

Матрица Грама предвычисляется целиком: O(N²) памяти.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from tqdm.auto import tqdm

from .exceptions import InvalidInput, NonConvergent, NumericDegeneracy
from .kernels import Kernel, as_matrix, frozen_array
from .options import SVMOptions, resolve_random_source

# Минимальная ширина отрезка [L, H], при которой шаг имеет смысл
BOUNDS_EPS = 1e-4


@dataclass(frozen=True, eq=False)
class SupportVector:
    """Опорный вектор: нормализованный признак, метка, α и исходный индекс."""
    feature: np.ndarray
    label: float
    alpha: float
    original_index: int

    def to_dict(self) -> dict:
        return {
            "feature": self.feature.tolist(),
            "label": self.label,
            "alpha": self.alpha,
            "original_index": self.original_index,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'SupportVector':
        return cls(
            feature=frozen_array(d["feature"]),
            label=float(d["label"]),
            alpha=float(d["alpha"]),
            original_index=int(d["original_index"]),
        )


@dataclass(frozen=True, eq=False)
class SMOResult:
    """Результат работы SMO солвера."""
    alpha: np.ndarray                      # Множители Лагранжа
    b: float                               # Смещение (bias)
    n_iterations: int                      # Количество внешних итераций
    n_support_vectors: int                 # Количество опорных векторов
    converged: bool                        # Сходимость достигнута
    objective_value: float                 # Значение целевой функции
    n_skipped_pairs: int                   # Пары, пропущенные из-за вырожденности
    support_vectors: Tuple[SupportVector, ...]
    weights: Optional[np.ndarray] = None   # Только для линейного ядра

    @property
    def support_vector_indices(self) -> np.ndarray:
        return np.array([sv.original_index for sv in self.support_vectors], dtype=np.int64)


# =============================================================================
# Вспомогательные функции
# =============================================================================

def validate_training_data(features, labels) -> Tuple[np.ndarray, np.ndarray]:
    """
    Проверяет обучающую выборку и приводит её к float64.

    Raises:
        InvalidInput: разная длина, N < 2, разная размерность, метки вне {-1, +1}
    """
    try:
        n_labels = len(labels)
        n_features = len(features)
    except TypeError as e:
        raise InvalidInput(f"Ожидались последовательности признаков и меток: {e}") from e

    if n_features != n_labels:
        raise InvalidInput(
            f"Число векторов признаков ({n_features}) не совпадает с числом меток ({n_labels})"
        )
    if n_labels < 2:
        raise InvalidInput(f"Нужно минимум 2 примера, получено {n_labels}")

    X = as_matrix(features)
    y = np.asarray(labels, dtype=np.float64)
    if y.ndim != 1:
        raise InvalidInput(f"Метки должны быть вектором, получена форма {y.shape}")
    bad = ~np.isin(y, (-1.0, 1.0))
    if np.any(bad):
        raise InvalidInput(f"Метки должны быть из {{-1, +1}}, найдено: {np.unique(y[bad]).tolist()}")
    return X, y


def compute_bounds(alpha_i: float, alpha_j: float, y_i: float, y_j: float,
                   C: float) -> Tuple[float, float]:
    """
    Вычисляет границы L и H для α_j при оптимизации пары (i, j).
    """
    if y_i == y_j:
        # α_i + α_j = const
        L = max(0.0, alpha_i + alpha_j - C)
        H = min(C, alpha_i + alpha_j)
    else:
        # α_j - α_i = const
        L = max(0.0, alpha_j - alpha_i)
        H = min(C, C + alpha_j - alpha_i)
    return L, H


def select_bias(b1: float, b2: float, alpha_i: float, alpha_j: float, C: float) -> float:
    """b1, если α_i строго внутри (0, C); иначе b2, если α_j внутри; иначе среднее."""
    if 0 < alpha_i < C:
        return b1
    if 0 < alpha_j < C:
        return b2
    return (b1 + b2) / 2


def dual_objective(alpha: np.ndarray, y: np.ndarray, K: np.ndarray) -> float:
    """f(α) = Σ_i α_i - 1/2 Σ_i Σ_j α_i α_j y_i y_j K_ij"""
    ay = alpha * y
    return float(np.sum(alpha) - 0.5 * np.dot(ay, np.dot(K, ay)))


def compute_weights(X: np.ndarray, y: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """Вектор весов w = Σ α_i y_i x_i (только для линейного ядра)."""
    return np.sum((alpha * y).reshape(-1, 1) * X, axis=0)


def reduce_support_vectors(X: np.ndarray, y: np.ndarray, alpha: np.ndarray,
                           alpha_tol: float) -> Tuple[SupportVector, ...]:
    """Оставляет только примеры с α > alpha_tol, собирая новый неизменяемый набор."""
    return tuple(
        SupportVector(
            feature=X[i].copy(),
            label=float(y[i]),
            alpha=float(alpha[i]),
            original_index=int(i),
        )
        for i in np.flatnonzero(alpha > alpha_tol)
    )


# =============================================================================
# Основной класс солвера
# =============================================================================

class SMOSolver:
    """
    Решение двойственной задачи SVM упрощённым методом SMO.

    Матрица Грама предвычисляется один раз; ошибка E_i считается по строке
    K[i, :] с текущими α и b.
    """

    def __init__(
        self,
        kernel: Optional[Kernel] = None,
        C: float = 1.0,
        tol: float = 1e-4,
        alpha_tol: float = 1e-6,
        max_passes: int = 10,
        max_iterations: int = 10000,
        alpha_change_tol: float = 1e-3,
        random_state=None,
        verbose: bool = False
    ):
        """
        Args:
            kernel: Ядро (по умолчанию линейное)
            C: Параметр регуляризации
            tol: Допуск для проверки KKT условий
            alpha_tol: Порог α для опорных векторов
            max_passes: Проходов без изменений для сходимости
            max_iterations: Максимальное количество внешних итераций
            alpha_change_tol: Минимальное изменение α_j для обновления
            random_state: None, seed или np.random.Generator
            verbose: Выводить отладочную информацию
        """
        if C <= 0:
            raise InvalidInput(f"C должно быть > 0, получено {C}")
        if max_passes < 1:
            raise InvalidInput(f"max_passes должно быть >= 1, получено {max_passes}")
        if max_iterations < 1:
            raise InvalidInput(f"max_iterations должно быть >= 1, получено {max_iterations}")

        self.kernel = kernel if kernel is not None else Kernel.from_name("linear")
        self.C = C
        self.tol = tol
        self.alpha_tol = alpha_tol
        self.max_passes = max_passes
        self.max_iterations = max_iterations
        self.alpha_change_tol = alpha_change_tol
        self.rng = resolve_random_source(random_state)
        self.verbose = verbose

    @classmethod
    def from_options(cls, options: SVMOptions, random_state=None,
                     verbose: bool = False) -> 'SMOSolver':
        return cls(
            kernel=options.make_kernel(),
            C=options.C,
            tol=options.tol,
            alpha_tol=options.alpha_tol,
            max_passes=options.max_passes,
            max_iterations=options.max_iterations,
            alpha_change_tol=options.alpha_change_tol,
            random_state=random_state,
            verbose=verbose,
        )

    def _select_second_index(self, i: int, n_samples: int) -> int:
        """Равномерно выбирает j != i одним обращением к источнику случайности."""
        j = int(self.rng.integers(0, n_samples - 1))
        if j >= i:
            j += 1
        return j

    def _take_step(
        self,
        i: int,
        j: int,
        alpha: np.ndarray,
        y: np.ndarray,
        K: np.ndarray,
        b: float,
        E_i: float,
        E_j: float
    ) -> Optional[float]:
        """
        Оптимизация пары (α_i, α_j). Изменяет alpha на месте.

        Returns:
            Новое значение b или None, если изменение α_j слишком мало

        Raises:
            NumericDegeneracy: L == H или eta >= 0
        """
        C = self.C
        alpha_i_old = alpha[i]
        alpha_j_old = alpha[j]
        y_i, y_j = y[i], y[j]

        L, H = compute_bounds(alpha_i_old, alpha_j_old, y_i, y_j, C)
        if abs(L - H) < BOUNDS_EPS:
            raise NumericDegeneracy(f"L == H для пары ({i}, {j})")

        # η = 2·K_ij - K_ii - K_jj, для шага нужна η < 0
        eta = 2.0 * K[i, j] - K[i, i] - K[j, j]
        if eta >= 0:
            raise NumericDegeneracy(f"eta = {eta} >= 0 для пары ({i}, {j})")

        alpha_j_new = alpha_j_old - y_j * (E_i - E_j) / eta
        if alpha_j_new > H:
            alpha_j_new = H
        elif alpha_j_new < L:
            alpha_j_new = L

        if abs(alpha_j_new - alpha_j_old) < self.alpha_change_tol:
            return None

        alpha_i_new = alpha_i_old + y_i * y_j * (alpha_j_old - alpha_j_new)
        if alpha_i_new > C:
            alpha_i_new = C
        elif alpha_i_new < 0:
            alpha_i_new = 0.0

        delta_i = alpha_i_new - alpha_i_old
        delta_j = alpha_j_new - alpha_j_old

        b1 = b - E_i - y_i * delta_i * K[i, i] - y_j * delta_j * K[i, j]
        b2 = b - E_j - y_i * delta_i * K[i, j] - y_j * delta_j * K[j, j]

        alpha[i] = alpha_i_new
        alpha[j] = alpha_j_new
        return select_bias(b1, b2, alpha_i_new, alpha_j_new, C)

    def solve(self, X, y) -> SMOResult:
        """
        Решает двойственную задачу SVM методом SMO.

        Args:
            X: Матрица признаков (n_samples, n_features), уже нормализованная
            y: Метки классов, значения {-1, +1}

        Returns:
            SMOResult с решением

        Raises:
            InvalidInput: некорректная выборка
            NonConvergent: лимит max_iterations исчерпан
        """
        X, y = validate_training_data(X, y)
        n_samples = X.shape[0]

        alpha = np.zeros(n_samples, dtype=np.float64)
        b = 0.0
        K = self.kernel.gram(X)

        if self.verbose:
            print(f"SMO solver started: {n_samples} samples, {X.shape[1]} features")
            print(f"  Kernel: {self.kernel.name} (param={self.kernel.param})")
            print(f"  C={self.C}, tol={self.tol}, max_passes={self.max_passes}")

        C = self.C
        tol = self.tol
        stalled_passes = 0
        n_iter = 0
        n_skipped = 0
        converged = False

        iterator = tqdm(range(self.max_iterations), desc="SMO") if self.verbose else range(self.max_iterations)
        for iteration in iterator:
            n_iter = iteration + 1
            num_changed = 0

            for i in range(n_samples):
                E_i = float(np.dot(alpha * y, K[i])) + b - y[i]
                r_i = y[i] * E_i

                # Проверка KKT условий
                if not ((r_i < -tol and alpha[i] < C) or (r_i > tol and alpha[i] > 0)):
                    continue

                j = self._select_second_index(i, n_samples)
                E_j = float(np.dot(alpha * y, K[j])) + b - y[j]

                try:
                    b_new = self._take_step(i, j, alpha, y, K, b, E_i, E_j)
                except NumericDegeneracy:
                    n_skipped += 1
                    continue

                if b_new is None:
                    continue
                b = b_new
                num_changed += 1

            if num_changed == 0:
                stalled_passes += 1
            else:
                stalled_passes = 0

            if stalled_passes >= self.max_passes:
                converged = True
                break

        if not converged:
            raise NonConvergent(n_iter, stalled_passes, self.max_passes)

        support_vectors = reduce_support_vectors(X, y, alpha, self.alpha_tol)
        weights = compute_weights(X, y, alpha) if self.kernel.is_linear else None
        obj = dual_objective(alpha, y, K)

        if self.verbose:
            print(f"SMO finished: {n_iter} iterations, {len(support_vectors)} support vectors, "
                  f"skipped pairs={n_skipped}")
            print(f"  Objective value: {obj:.6f}")

        return SMOResult(
            alpha=alpha,
            b=float(b),
            n_iterations=n_iter,
            n_support_vectors=len(support_vectors),
            converged=converged,
            objective_value=obj,
            n_skipped_pairs=n_skipped,
            support_vectors=support_vectors,
            weights=weights,
        )


def solve_svm_dual(
    X,
    y,
    kernel: str = "linear",
    kernel_param: Optional[float] = None,
    C: float = 1.0,
    tol: float = 1e-4,
    max_passes: int = 10,
    max_iterations: int = 10000,
    random_state=None,
    verbose: bool = False
) -> Tuple[Optional[np.ndarray], float, np.ndarray]:
    """
    Решает двойственную задачу и возвращает вектор весов w, смещение b и α.

    Обёртка без нормализации признаков; w равен None для нелинейного ядра.

    Returns:
        w: Вектор весов (n_features,) или None
        b: Смещение (скаляр)
        alpha: Множители Лагранжа (n_samples,)
    """
    solver = SMOSolver(
        kernel=Kernel.from_name(kernel, kernel_param),
        C=C,
        tol=tol,
        max_passes=max_passes,
        max_iterations=max_iterations,
        random_state=random_state,
        verbose=verbose
    )
    result = solver.solve(X, y)
    return result.weights, result.b, result.alpha
