"""Общие фикстуры: синтетические картинки с объектами и фоном."""

import cv2
import numpy as np
import pytest

from hogsvm.model import DetectorModel
from hogsvm.feature_extraction import HogFeatureExtractor
from hogsvm.structures import AnnotatedBox, AnnotatedImage, WindowSize


def draw_object(width, height, box, seed=0):
    """Шумный серый фон и светлый эллипс с темным контуром внутри рамки (x, y, w, h)."""
    rng = np.random.default_rng(seed)
    image = rng.integers(60, 90, size=(height, width, 3), dtype=np.uint8)
    x, y, w, h = box
    center = (x + w // 2, y + h // 2)
    axes = (w // 2 - 4, h // 2 - 4)
    cv2.ellipse(image, center, axes, 0, 0, 360, (230, 230, 230), -1)
    cv2.ellipse(image, center, axes, 0, 0, 360, (10, 10, 10), 3)
    return image


def draw_background(width, height, seed=0):
    """Фон: плавный градиент с шумом, без объектов."""
    rng = np.random.default_rng(seed)
    gradient = np.linspace(40, 200, width, dtype=np.float32)[None, :].repeat(height, axis=0)
    noise = rng.normal(0, 12, size=(height, width)).astype(np.float32)
    gray = np.clip(gradient + noise, 0, 255).astype(np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def write_object_images(tmp_path):
    """Пишет картинки с одним объектом в tmp_path и возвращает записи аннотаций."""

    def _write(count, box=(50, 40, 100, 200), size=(300, 300), ignored=()):
        records = []
        for i in range(count):
            path = tmp_path / f"object_{i}.png"
            cv2.imwrite(str(path), draw_object(size[0], size[1], box, seed=i))
            x, y, w, h = box
            boxes = [AnnotatedBox(top=y, left=x, width=w, height=h)]
            boxes.extend(AnnotatedBox(top=iy, left=ix, width=iw, height=ih, ignore=True)
                         for ix, iy, iw, ih in ignored)
            records.append(AnnotatedImage(path=str(path), boxes=tuple(boxes)))
        return records

    return _write


@pytest.fixture
def backgrounds():
    """Три фоновые картинки 640x480."""
    return [draw_background(640, 480, seed=i) for i in range(3)]


@pytest.fixture
def constant_model():
    """Фабрика моделей с нулевыми весами: решающая функция везде равна `bias`."""

    def _make(window_size=(64, 128), bias=1.0):
        window_size = WindowSize(*window_size)
        length = HogFeatureExtractor(window_size).feature_length
        weights = np.zeros(length + 1, dtype=np.float32)
        weights[-1] = bias
        return DetectorModel(window_size, weights)

    return _make
