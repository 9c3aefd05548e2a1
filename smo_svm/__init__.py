from .exceptions import (
    SVMError,
    InvalidInput,
    UnknownKernel,
    NumericDegeneracy,
    NonConvergent,
    InvalidState,
)

from .kernels import (
    Kernel,
    KernelKind,
    kernel,
    compute_gram,
)

from .whitening import WhiteningStats, fit_whitening, apply_whitening

from .options import SVMOptions, resolve_random_source

from .smo_solver import (
    SMOSolver,
    SMOResult,
    SupportVector,
    solve_svm_dual,
)

from .model_store import (
    Model,
    ModelState,
    export_model,
    save_model,
    read_model,
)

from .svm import SVM, load_model

__version__ = "0.1.0"

__all__ = [
    # Errors
    "SVMError",
    "InvalidInput",
    "UnknownKernel",
    "NumericDegeneracy",
    "NonConvergent",
    "InvalidState",
    # Kernels
    "Kernel",
    "KernelKind",
    "kernel",
    "compute_gram",
    # Whitening
    "WhiteningStats",
    "fit_whitening",
    "apply_whitening",
    # Options
    "SVMOptions",
    "resolve_random_source",
    # SMO
    "SMOSolver",
    "SMOResult",
    "SupportVector",
    "solve_svm_dual",
    # Model store
    "Model",
    "ModelState",
    "export_model",
    "save_model",
    "read_model",
    # Classifier
    "SVM",
    "load_model",
]
