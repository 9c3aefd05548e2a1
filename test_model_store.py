"""
Тесты экспорта, загрузки и сохранения модели.

Проверяет:
1. Загруженная модель даёт те же margin и predict, что и исходная
2. Сериализацию в JSON-словарь и в архив .npz
3. Проверку метки модели ("expecting a SVM model")
4. Неизменяемость экспортированного снимка
"""

import copy
import dataclasses
import json
import os
import tempfile

import numpy as np
import pytest
from sklearn.datasets import make_blobs

import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from smo_svm import (
    SVM,
    SVMOptions,
    Model,
    ModelState,
    InvalidInput,
    InvalidState,
    SupportVector,
    load_model,
    save_model,
    read_model,
)


def create_blobs(n_samples=40, seed=1):
    X, y = make_blobs(
        n_samples=n_samples,
        centers=[[-2.0, -2.0], [2.0, 2.0]],
        cluster_std=1.2,
        random_state=seed
    )
    return X, np.where(y == 1, 1, -1)


def make_queries(seed=7):
    rng = np.random.default_rng(seed)
    return rng.uniform(-4.0, 4.0, size=(25, 2))


KERNEL_CONFIGS = [
    ("linear", None),
    ("radial", 0.5),
    ("polynomial", 3),
]


def test_export_load_round_trip():
    """margin и predict загруженной модели совпадают с обученной."""
    print("\n" + "="*60)
    print("Test: Export / Load Round Trip")
    print("="*60)

    X, y = create_blobs()
    queries = make_queries()

    for name, param in KERNEL_CONFIGS:
        trained = SVM(kernel=name, kernel_param=param, random_state=0).train(X, y)
        loaded = SVM.load(trained.export())

        assert loaded.state == ModelState.LOADED
        assert np.array_equal(loaded.margin(queries), trained.margin(queries)), f"{name}: margins differ"
        assert np.array_equal(loaded.predict(queries), trained.predict(queries)), f"{name}: predictions differ"
        # на собственной обучающей выборке
        assert np.array_equal(loaded.margin(X), trained.margin(X)), f"{name}: training margins differ"
        assert np.array_equal(loaded.predict(X), trained.predict(X)), f"{name}: training predictions differ"
        print(f"  {name}: OK")

    print("\n[PASS] Round trip test passed!")


def test_linear_separable_after_load():
    """Загруженная модель из линейно разделимого примера (параметры по умолчанию)."""
    X = [[0, 1], [4, 6], [2, 0]]
    y = [-1, 1, -1]

    for seed in range(10):
        svm = SVM(tol=0.01, random_state=seed)
        svm.train(X, y)

        loaded = load_model(svm.export())
        assert loaded.predict([[2, 6]])[0] == 1, f"seed={seed}: wrong prediction after load"
        assert loaded.predict([2, 6]) == 1
        assert np.array_equal(loaded.predict(X), svm.predict(X))

        from_json = load_model(json.loads(json.dumps(svm.export().to_dict())))
        assert from_json.predict([2, 6]) == 1, f"seed={seed}: wrong prediction after JSON round trip"


def test_linear_model_contents():
    """Линейная модель хранит только веса."""
    print("\n" + "="*60)
    print("Test: Linear Model Contents")
    print("="*60)

    X, y = create_blobs()
    svm = SVM(random_state=0).train(X, y)
    model = svm.export()

    assert model.is_linear
    assert model.support_vectors is None
    assert model.weights.shape == (2,)
    assert np.array_equal(model.weights, svm.weights)
    assert model.bias == svm.bias
    assert model.whitening_stats is not None

    loaded = SVM.load(model)
    with pytest.raises(InvalidState, match="linear model loaded without support vectors"):
        loaded.support_vectors()
    with pytest.raises(InvalidState):
        loaded.alphas
    with pytest.raises(InvalidState):
        loaded.training_result

    # экспорт загруженной модели снова возможен
    again = loaded.export()
    assert np.array_equal(again.weights, model.weights)

    print("\n[PASS] Linear model contents test passed!")


def test_kernel_model_contents():
    """Нелинейная модель хранит опорные векторы с исходными индексами."""
    print("\n" + "="*60)
    print("Test: Kernel Model Contents")
    print("="*60)

    X, y = create_blobs()
    svm = SVM(kernel="rbf", kernel_param=0.5, random_state=0).train(X, y)
    model = svm.export()

    assert not model.is_linear
    assert model.weights is None
    assert len(model.support_vectors) == len(svm.support_vectors())

    for sv in model.support_vectors:
        assert sv.alpha > svm.options.alpha_tol
        assert sv.label == y[sv.original_index]

    loaded = SVM.load(model)
    assert np.array_equal(loaded.support_vectors(), svm.support_vectors())

    print("\n[PASS] Kernel model contents test passed!")


def test_json_persistence():
    """Словарь модели переживает json.dumps / json.loads."""
    print("\n" + "="*60)
    print("Test: JSON Persistence")
    print("="*60)

    X, y = create_blobs()
    queries = make_queries()

    for name, param in KERNEL_CONFIGS:
        trained = SVM(kernel=name, kernel_param=param, random_state=0).train(X, y)
        payload = json.dumps(trained.export().to_dict())
        data = json.loads(payload)

        assert data["name"] == "SVM"
        loaded = load_model(data)
        assert np.array_equal(loaded.predict(queries), trained.predict(queries)), f"{name}: predictions differ"
        assert np.allclose(loaded.margin(queries), trained.margin(queries), rtol=0, atol=1e-12)

    print("\n[PASS] JSON persistence test passed!")


def test_npz_persistence():
    """Сохранение и чтение архива .npz."""
    print("\n" + "="*60)
    print("Test: NPZ Persistence")
    print("="*60)

    X, y = create_blobs()
    queries = make_queries()

    with tempfile.TemporaryDirectory() as tmpdir:
        for name, param in KERNEL_CONFIGS:
            trained = SVM(kernel=name, kernel_param=param, random_state=0).train(X, y)
            path = os.path.join(tmpdir, f"svm_{name}.npz")
            save_model(trained.export(), path)

            loaded = SVM.load(read_model(path))
            assert np.array_equal(loaded.margin(queries), trained.margin(queries)), f"{name}: margins differ"
            assert loaded.options == trained.options
            print(f"  {name}: saved to {os.path.basename(path)}")

        # без нормализации
        plain = SVM(whitening=False, random_state=0).train(X, y)
        path = os.path.join(tmpdir, "svm_plain.npz")
        save_model(plain.export(), path)
        model = read_model(path)
        assert model.whitening_stats is None
        assert np.array_equal(SVM.load(model).margin(queries), plain.margin(queries))

    print("\n[PASS] NPZ persistence test passed!")


def test_wrong_model_name():
    """Загрузка чужой модели."""
    print("\n" + "="*60)
    print("Test: Wrong Model Name")
    print("="*60)

    X, y = create_blobs()
    data = SVM(random_state=0).train(X, y).export().to_dict()

    data["name"] = "KNN"
    with pytest.raises(InvalidInput, match="expecting a SVM model"):
        Model.from_dict(data)
    with pytest.raises(InvalidInput, match="expecting a SVM model"):
        load_model(data)

    del data["name"]
    with pytest.raises(InvalidInput):
        SVM.load(data)

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "other.npz")
        np.savez(path, name=np.array("KNN"))
        with pytest.raises(InvalidInput, match="expecting a SVM model"):
            read_model(path)

    print("\n[PASS] Wrong model name test passed!")


def test_inconsistent_model():
    """Снимок с противоречивым содержимым не создаётся."""
    linear = SVMOptions(whitening=False)
    rbf = SVMOptions(kernel="rbf", whitening=False)

    with pytest.raises(InvalidInput):
        Model(options=rbf, bias=0.0, n_features=2, weights=np.zeros(2))
    with pytest.raises(InvalidInput):
        Model(options=linear, bias=0.0, n_features=2)
    with pytest.raises(InvalidInput):
        Model(options=linear, bias=0.0, n_features=3, weights=np.zeros(2))
    with pytest.raises(InvalidInput):
        Model(options=SVMOptions(), bias=0.0, n_features=2, weights=np.zeros(2))


def test_malformed_model():
    """Повреждённый снимок отклоняется с InvalidInput, а не с KeyError / ValueError numpy."""
    print("\n" + "="*60)
    print("Test: Malformed Model")
    print("="*60)

    xor = SVM(kernel="rbf", kernel_param=0.5, random_state=0)
    xor.train([[0, 0], [0, 1], [1, 1], [1, 0]], [1, -1, 1, -1])
    good = xor.export().to_dict()

    def broken(change):
        d = copy.deepcopy(good)
        change(d)
        return d

    cases = {
        "wrong feature length": lambda d: d["support_vectors"][0].update(feature=[0, 0, 0]),
        "ragged feature": lambda d: d["support_vectors"][0].update(feature=[0, [1, 2]]),
        "label outside {-1, +1}": lambda d: d["support_vectors"][0].update(label=0),
        "negative alpha": lambda d: d["support_vectors"][0].update(alpha=-0.5),
        "missing alpha": lambda d: d["support_vectors"][0].pop("alpha"),
        "missing bias": lambda d: d.pop("bias"),
        "missing options": lambda d: d.pop("options"),
        "missing n_features": lambda d: d.pop("n_features"),
        "non-numeric bias": lambda d: d.update(bias="abc"),
        "options not a dict": lambda d: d.update(options=[1, 2]),
        "wrong whitening length": lambda d: d["whitening_stats"].update(min=[0, 0, 0]),
        "missing whitening max": lambda d: d["whitening_stats"].pop("max"),
    }
    for name, change in cases.items():
        with pytest.raises(InvalidInput):
            SVM.load(broken(change))
        print(f"  {name}: rejected")

    # исходный словарь по-прежнему загружается
    points = [[0, 0], [0, 1], [1, 1], [1, 0]]
    assert np.array_equal(SVM.load(good).predict(points), xor.predict(points))

    # прямое создание снимка с опорным вектором другой размерности
    rbf = SVMOptions(kernel="rbf", whitening=False)
    with pytest.raises(InvalidInput):
        Model(options=rbf, bias=0.0, n_features=2,
              support_vectors=(SupportVector(np.zeros(3), 1.0, 0.5, 0),))

    # архив .npz без обязательных полей
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "partial.npz")
        np.savez(path, name=np.array("SVM"), options=np.array(json.dumps(SVMOptions().to_dict())))
        with pytest.raises(InvalidInput):
            read_model(path)

    print("\n[PASS] Malformed model test passed!")


def test_model_is_immutable():
    """Экспортированный снимок не зависит от дальнейшей жизни SVM."""
    print("\n" + "="*60)
    print("Test: Model Immutability")
    print("="*60)

    X, y = create_blobs()
    svm = SVM(random_state=0).train(X, y)
    model = svm.export()

    with pytest.raises(dataclasses.FrozenInstanceError):
        model.bias = 1.0
    assert not model.weights.flags.writeable
    with pytest.raises(ValueError):
        model.weights[0] = 100.0

    weights_before = model.weights.copy()
    svm.train(X[:20], y[:20])
    assert np.array_equal(model.weights, weights_before), "Model changed after retraining"

    # снимки, восстановленные из словаря и из .npz, тоже только для чтения
    rbf = SVM(kernel="rbf", kernel_param=0.5, random_state=0).train(X, y)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "rbf.npz")
        save_model(rbf.export(), path)
        restored = [
            Model.from_dict(model.to_dict()),
            Model.from_dict(rbf.export().to_dict()),
            read_model(path),
        ]

    for snapshot in restored:
        stats = snapshot.whitening_stats
        assert not stats.min.flags.writeable, "Whitening min is writeable"
        assert not stats.max.flags.writeable, "Whitening max is writeable"
        with pytest.raises(ValueError):
            stats.min[0] = 100.0
        if snapshot.weights is not None:
            assert not snapshot.weights.flags.writeable
        for sv in snapshot.support_vectors or ():
            assert not sv.feature.flags.writeable, "Support vector feature is writeable"

    print("\n[PASS] Model immutability test passed!")


def run_all_tests():
    """Запуск всех тестов."""
    print("\n" + "="*70)
    print("  Model Store Test Suite")
    print("="*70)

    tests = [
        ("Export / Load Round Trip", test_export_load_round_trip),
        ("Linear Separable After Load", test_linear_separable_after_load),
        ("Linear Model Contents", test_linear_model_contents),
        ("Kernel Model Contents", test_kernel_model_contents),
        ("JSON Persistence", test_json_persistence),
        ("NPZ Persistence", test_npz_persistence),
        ("Wrong Model Name", test_wrong_model_name),
        ("Inconsistent Model", test_inconsistent_model),
        ("Malformed Model", test_malformed_model),
        ("Model Immutability", test_model_is_immutable),
    ]

    passed = 0
    failed = 0
    for name, test_func in tests:
        try:
            test_func()
            passed += 1
        except AssertionError as e:
            failed += 1
            print(f"\n[FAIL] {name}: {e}")

    print(f"\nTotal: {passed} passed, {failed} failed")
    return passed, failed


if __name__ == "__main__":
    passed, failed = run_all_tests()
    sys.exit(0 if failed == 0 else 1)
