"""
Бинарный SVM классификатор, обучаемый упрощённым SMO.

Жизненный цикл:
    UNTRAINED --train--> TRAINED
    SVM.load(model) --> LOADED

Предсказания доступны в состояниях TRAINED и LOADED. Неудачный train
(InvalidInput, NonConvergent) оставляет объект в прежнем состоянии.

Решающая функция:
    линейное ядро:  f(x) = w^T x + b
    иначе:          f(x) = Σ_i α_i y_i K(x, sv_i) + b
Класс: +1 при f(x) >= 0, иначе -1.
"""

import warnings
from typing import Optional, Tuple, Union

import numpy as np
from sklearn.metrics import accuracy_score

from .exceptions import InvalidInput, InvalidState
from .kernels import as_vector
from .model_store import Model, ModelState, export_model
from .options import SVMOptions
from .smo_solver import SMOResult, SMOSolver, SupportVector, validate_training_data
from .whitening import WhiteningStats, apply_whitening, fit_whitening


class SVM:
    """
    Бинарный SVM с ядрами linear / polynomial / radial.

    Пример:
        svm = SVM(kernel="rbf", kernel_param=0.5, random_state=0)
        svm.train(features, labels)
        svm.predict([[0, 1], [1, 1]])
    """

    def __init__(
        self,
        options: Optional[SVMOptions] = None,
        *,
        random_state=None,
        verbose: bool = False,
        **overrides
    ):
        """
        Args:
            options: Готовый SVMOptions (по умолчанию SVMOptions())
            random_state: None, seed или np.random.Generator для выбора второго индекса
            verbose: Выводить ход обучения
            **overrides: Отдельные поля SVMOptions (C=..., kernel=..., ...)
        """
        base = options if options is not None else SVMOptions()
        self.options = base.with_overrides(**overrides) if overrides else base
        self.kernel = self.options.make_kernel()
        self.random_state = random_state
        self.verbose = verbose

        self.state = ModelState.UNTRAINED
        self.bias = 0.0
        self.n_features = None
        self.whitening_stats = None
        self._weights = None
        self._support_vectors = None
        self._sv_features = None
        self._sv_coef = None
        self._result = None

    def __repr__(self):
        return f"SVM(kernel={self.kernel.name!r}, C={self.options.C}, state={self.state.value})"

    # -------------------------------------------------------------------------
    # Установка состояния
    # -------------------------------------------------------------------------

    def _install(
        self,
        state: ModelState,
        bias: float,
        n_features: int,
        whitening_stats: Optional[WhiteningStats],
        weights: Optional[np.ndarray],
        support_vectors: Optional[Tuple[SupportVector, ...]],
        result: Optional[SMOResult]
    ) -> None:
        # Все поля заменяются целиком, после того как новое состояние полностью собрано
        sv_features = sv_coef = None
        if support_vectors is not None:
            sv_features = np.array([sv.feature for sv in support_vectors], dtype=np.float64)
            sv_features = sv_features.reshape(len(support_vectors), n_features)
            sv_coef = np.array([sv.alpha * sv.label for sv in support_vectors], dtype=np.float64)

        self.state = state
        self.bias = float(bias)
        self.n_features = n_features
        self.whitening_stats = whitening_stats
        self._weights = weights
        self._support_vectors = support_vectors
        self._sv_features = sv_features
        self._sv_coef = sv_coef
        self._result = result

    def train(self, features, labels) -> 'SVM':
        """
        Обучение SVM методом SMO.

        Args:
            features: Матрица признаков (n_samples, n_features)
            labels: Метки классов, значения {-1, +1}

        Returns:
            self

        Raises:
            InvalidInput: некорректная выборка
            NonConvergent: SMO не сошёлся за max_iterations
        """
        X, y = validate_training_data(features, labels)

        stats = fit_whitening(X) if self.options.whitening else None
        X_train = apply_whitening(stats, X) if stats is not None else X

        solver = SMOSolver.from_options(self.options, random_state=self.random_state, verbose=self.verbose)
        result = solver.solve(X_train, y)

        if result.n_support_vectors == 0:
            warnings.warn("No support vectors found! Model may be degenerate.")

        self._install(
            state=ModelState.TRAINED,
            bias=result.b,
            n_features=X.shape[1],
            whitening_stats=stats,
            weights=result.weights,
            support_vectors=result.support_vectors,
            result=result,
        )
        return self

    fit = train

    @classmethod
    def load(cls, model: Union[Model, dict]) -> 'SVM':
        """Создаёт SVM в состоянии LOADED из экспортированной модели."""
        if isinstance(model, dict):
            model = Model.from_dict(model)
        if not isinstance(model, Model):
            raise InvalidInput(f"Ожидался Model или dict, получено {type(model).__name__}")

        svm = cls(model.options)
        svm._install(
            state=ModelState.LOADED,
            bias=model.bias,
            n_features=model.n_features,
            whitening_stats=model.whitening_stats,
            weights=model.weights,
            support_vectors=model.support_vectors,
            result=None,
        )
        return svm

    def export(self) -> Model:
        return export_model(self)

    # -------------------------------------------------------------------------
    # Предсказание
    # -------------------------------------------------------------------------

    def _require_ready(self, action: str) -> None:
        if self.state == ModelState.UNTRAINED:
            raise InvalidState(f"Нельзя вызвать {action} до обучения или загрузки модели")

    def margin_one(self, x) -> float:
        """Значение решающей функции для одного вектора."""
        self._require_ready("margin")
        v = as_vector(x)
        if v.shape[0] != self.n_features:
            raise InvalidInput(f"Ожидалась размерность {self.n_features}, получено {v.shape[0]}")
        if self.whitening_stats is not None:
            v = apply_whitening(self.whitening_stats, v)

        if self._weights is not None:
            return self.bias + float(np.dot(self._weights, v))
        return self.bias + float(np.dot(self._sv_coef, self.kernel.row(self._sv_features, v)))

    def predict_one(self, x) -> int:
        # f(x) == 0 относится к классу +1
        return 1 if self.margin_one(x) >= 0 else -1

    def margin(self, x) -> Union[float, np.ndarray]:
        """
        Значение решающей функции.

        Args:
            x: Вектор (n_features,) или набор векторов (n_samples, n_features)

        Returns:
            float для одного вектора, массив (n_samples,) для набора
        """
        self._require_ready("margin")
        try:
            arr = np.asarray(x, dtype=np.float64)
        except ValueError as e:
            raise InvalidInput(f"Векторы признаков разной размерности: {e}") from e

        # [] это пустой набор векторов, а не вектор размерности 0
        if arr.ndim == 1 and arr.shape[0] == 0:
            return np.empty(0, dtype=np.float64)
        if arr.ndim == 1:
            return self.margin_one(arr)
        if arr.ndim == 2:
            return np.array([self.margin_one(row) for row in arr], dtype=np.float64)
        raise InvalidInput(f"Ожидался вектор или матрица, получена форма {arr.shape}")

    decision_function = margin

    def predict(self, x) -> Union[int, np.ndarray]:
        """Предсказание класса {-1, +1} для вектора или набора векторов."""
        m = self.margin(x)
        if isinstance(m, np.ndarray):
            return np.where(m >= 0, 1, -1)
        return 1 if m >= 0 else -1

    def score(self, features, labels) -> float:
        """Доля верных предсказаний."""
        return float(accuracy_score(np.asarray(labels), self.predict(features)))

    # -------------------------------------------------------------------------
    # Доступ к результатам обучения
    # -------------------------------------------------------------------------

    @property
    def weights(self) -> Optional[np.ndarray]:
        """Вектор весов (только линейное ядро), None для остальных."""
        self._require_ready("weights")
        return None if self._weights is None else self._weights.copy()

    @property
    def support_vector_set(self) -> Tuple[SupportVector, ...]:
        if self._support_vectors is None:
            if self.state == ModelState.LOADED:
                raise InvalidState("linear model loaded without support vectors")
            self._require_ready("support_vector_set")
        return self._support_vectors

    def support_vectors(self) -> np.ndarray:
        """Исходные индексы опорных векторов."""
        return np.array([sv.original_index for sv in self.support_vector_set], dtype=np.int64)

    @property
    def alphas(self) -> np.ndarray:
        """Множители Лагранжа по всем обучающим примерам (только после train)."""
        if self.state != ModelState.TRAINED:
            raise InvalidState("Множители Лагранжа доступны только после train")
        return self._result.alpha.copy()

    @property
    def threshold(self) -> float:
        self._require_ready("threshold")
        return self.bias

    @property
    def training_result(self) -> SMOResult:
        if self.state != ModelState.TRAINED:
            raise InvalidState("Результат SMO доступен только после train")
        return self._result


def load_model(model: Union[Model, dict]) -> SVM:
    """Загружает SVM из Model или словаря Model.to_dict()."""
    return SVM.load(model)
