"""
Иерархия исключений SMO SVM.

Фатальные ошибки (InvalidInput, UnknownKernel, NonConvergent, InvalidState)
пробрасываются вызывающему коду. NumericDegeneracy обрабатывается внутри
цикла SMO: пара пропускается, обучение продолжается.
"""


class SVMError(Exception):
    """Базовый класс всех ошибок пакета."""


class InvalidInput(SVMError, ValueError):
    """Некорректные данные: размеры, метки, параметры."""


class UnknownKernel(SVMError, ValueError):
    """Запрошено неподдерживаемое ядро."""

    def __init__(self, name):
        super().__init__(f"Неизвестное ядро: {name!r}")
        self.name = name


class NumericDegeneracy(SVMError, ArithmeticError):
    """Вырожденная пара (L == H или eta >= 0), шаг невозможен."""


class NonConvergent(SVMError, RuntimeError):
    """SMO не сошёлся за max_iterations внешних итераций."""

    def __init__(self, n_iterations: int, stalled_passes: int, max_passes: int):
        super().__init__(
            f"SMO не сошёлся за {n_iterations} итераций "
            f"(stalled passes: {stalled_passes}/{max_passes})"
        )
        self.n_iterations = n_iterations
        self.stalled_passes = stalled_passes
        self.max_passes = max_passes


class InvalidState(SVMError, RuntimeError):
    """Операция недопустима в текущем состоянии модели."""
