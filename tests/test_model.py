"""Тесты DetectorModel и его сохранения."""

import joblib
import numpy as np
import pytest

from hogsvm.errors import ModelFormatError
from hogsvm.model import DetectorModel, dumps_model, load_model, loads_model, save_model
from hogsvm.structures import WindowSize


class TestDetectorModel:
    """Тесты DetectorModel."""

    def test_decision_function(self):
        model = DetectorModel(WindowSize(16, 16), [1.0, -2.0, 0.5])
        scores = model.decision_function([[1.0, 1.0], [2.0, 0.0]])
        np.testing.assert_allclose(scores, [-0.5, 2.5])

    def test_single_vector(self):
        model = DetectorModel((16, 16), [1.0, 1.0, 0.0])
        assert model.decision_function([3.0, 4.0]).shape == (1,)
        assert model.feature_length == 2
        assert model.bias == 0.0
        assert model.window_size == WindowSize(16, 16)


class TestPersistence:
    """Тесты dumps/loads и save/load."""

    def test_bytes_preserve_model(self, constant_model):
        model = constant_model(bias=0.25)
        restored = loads_model(dumps_model(model))

        assert restored.window_size == model.window_size
        np.testing.assert_array_equal(restored.weights, model.weights)
        assert tuple(restored.hog_params['blockSize']) == (16, 16)

    def test_file(self, constant_model, tmp_path):
        path = tmp_path / "models" / "detector.joblib"
        save_model(constant_model(), str(path))
        assert load_model(str(path)).feature_length == 3780

    def test_garbage_bytes(self):
        with pytest.raises(ModelFormatError):
            loads_model(b"definitely not a model")

    def test_wrong_payload(self, tmp_path):
        path = tmp_path / "other.joblib"
        joblib.dump({"something": "else"}, str(path))
        with pytest.raises(ModelFormatError):
            load_model(str(path))

    def test_weight_length_mismatch(self):
        """Модель, чьи веса не совпадают с длиной HOG для ее окна, не загружается."""
        model = DetectorModel(WindowSize(64, 128), np.zeros(10, dtype=np.float32))
        with pytest.raises(ModelFormatError):
            loads_model(dumps_model(model))
