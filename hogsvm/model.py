# hogsvm/model.py

# Обученный детектор и его сохранение.
# DetectorModel - размер окна, параметры HOG и плотный вектор весов линейного SVM
# в формате cv2.HOGDescriptor.setSVMDetector: сначала веса признаков, последним - свободный член.

import io
import logging
import os
from dataclasses import dataclass, field

import joblib  # Сохранение и загрузка модели
import numpy as np

from hogsvm import config
from hogsvm.errors import ConfigurationError, ModelFormatError
from hogsvm.feature_extraction import build_hog_descriptor
from hogsvm.structures import WindowSize

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass(eq=False)
class DetectorModel:
    window_size: WindowSize
    weights: np.ndarray
    hog_params: dict = field(default_factory=lambda: dict(config.HOG_PARAMS))

    def __post_init__(self):
        self.window_size = WindowSize(int(self.window_size[0]), int(self.window_size[1]))
        self.weights = np.asarray(self.weights, dtype=np.float32).reshape(-1)

    @property
    def feature_length(self):
        return self.weights.shape[0] - 1

    @property
    def coef(self):
        return self.weights[:-1]

    @property
    def bias(self):
        return float(self.weights[-1])

    def decision_function(self, features):
        """Значения решающей функции для матрицы признаков (N, feature_length)."""
        features = np.atleast_2d(np.asarray(features, dtype=np.float32))
        return features @ self.coef + self.bias


# --- Сериализация ---

def _to_payload(model):
    # В параметрах HOG кортежи превращаем в списки, чтобы payload не зависел от типов OpenCV
    hog_params = {key: list(value) if isinstance(value, tuple) else value
                  for key, value in model.hog_params.items()}
    return {
        'format_version': FORMAT_VERSION,
        'window_size': [model.window_size.width, model.window_size.height],
        'weights': model.weights,
        'hog_params': hog_params,
    }


def _from_payload(payload):
    if not isinstance(payload, dict) or payload.get('format_version') != FORMAT_VERSION:
        raise ModelFormatError("Неизвестный формат модели")
    try:
        window_size = WindowSize(*(int(v) for v in payload['window_size']))
        weights = np.asarray(payload['weights'], dtype=np.float32).reshape(-1)
        hog_params = {key: tuple(value) if isinstance(value, list) else value
                      for key, value in payload['hog_params'].items()}
    except (KeyError, TypeError, ValueError) as e:
        raise ModelFormatError(f"Поврежденная модель: {e}") from e

    try:
        expected = build_hog_descriptor(window_size, hog_params).getDescriptorSize() + 1
    except (ConfigurationError, KeyError) as e:
        raise ModelFormatError(f"Некорректные параметры HOG в модели: {e}") from e
    if weights.shape[0] != expected:
        raise ModelFormatError(f"Длина вектора весов {weights.shape[0]}, ожидалось {expected}")

    return DetectorModel(window_size=window_size, weights=weights, hog_params=hog_params)


def dumps_model(model):
    """Сериализует модель в байты (joblib)."""
    buffer = io.BytesIO()
    joblib.dump(_to_payload(model), buffer)
    return buffer.getvalue()


def loads_model(data):
    """
    Восстанавливает модель из байтов, записанных dumps_model.

    Raises:
        ModelFormatError: Если данные повреждены или модель не согласована с параметрами HOG.
    """
    try:
        payload = joblib.load(io.BytesIO(data))
    except Exception as e:
        raise ModelFormatError(f"Не удалось прочитать модель: {e}") from e
    return _from_payload(payload)


def save_model(model, model_path):
    os.makedirs(os.path.dirname(os.path.abspath(model_path)), exist_ok=True)
    with open(model_path, 'wb') as f:
        f.write(dumps_model(model))
    logger.info("Модель сохранена в %s", model_path)


def load_model(model_path):
    with open(model_path, 'rb') as f:
        model = loads_model(f.read())
    logger.info("Модель загружена из %s (окно %dx%d)", model_path, *model.window_size)
    return model
