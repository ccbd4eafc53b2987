# hogsvm/detection.py

import logging
import os

import cv2          # Пирамида изображений и отрисовка рамок
import numpy as np

from hogsvm import config
from hogsvm import utils
from hogsvm.errors import ConfigurationError, ModelFormatError
from hogsvm.feature_extraction import HogFeatureExtractor
from hogsvm.model import load_model
from hogsvm.structures import Detection

logger = logging.getLogger(__name__)


class SlidingWindowDetector:
    """
    Многомасштабный детектор скользящим окном поверх HOG + линейного SVM.

    Окно размера модели проходит по изображению с шагом `stride` на каждом
    уровне пирамиды (масштабы 1, scale, scale^2, ... пока окно помещается).
    Каждое окно с положительным значением решающей функции - сырое
    срабатывание; затем жадный NMS оставляет по одному на объект.
    """

    def __init__(self, model, extractor=None, batch_size=config.DETECTION_BATCH_SIZE):
        self.model = model
        self.extractor = extractor or HogFeatureExtractor(model.window_size, model.hog_params)
        if self.extractor.feature_length != model.feature_length:
            raise ConfigurationError(
                f"Длина HOG ({self.extractor.feature_length}) не совпадает с длиной весов модели "
                f"({model.feature_length})"
            )
        self.batch_size = batch_size

    def scan(self, image, stride=config.DETECTION_STRIDE, scale=config.DETECTION_PYRAMID_SCALE):
        """
        Сырые срабатывания до NMS, в координатах исходного изображения.

        Args:
            image (np.ndarray): BGR или серое изображение.
            stride (int): Шаг окна в пикселях (на каждом уровне пирамиды).
            scale (float): Множитель между уровнями пирамиды (> 1).

        Returns:
            list[Detection]: Окна с решающей функцией > 0.
        """
        if stride < 1:
            raise ValueError(f"Шаг окна должен быть >= 1, получено {stride}")
        if scale <= 1.0:
            raise ValueError(f"Множитель пирамиды должен быть > 1, получено {scale}")

        gray = np.ascontiguousarray(utils.to_gray(image))
        img_h, img_w = gray.shape[:2]
        win_w, win_h = self.model.window_size

        detections = []
        current = 1.0
        while True:
            level_w = int(round(img_w / current))
            level_h = int(round(img_h / current))
            # Окно больше не помещается - пирамида закончилась
            if level_w < win_w or level_h < win_h:
                break

            if level_w == img_w and level_h == img_h:
                level = gray
            else:
                level = cv2.resize(gray, (level_w, level_h), interpolation=cv2.INTER_LINEAR)

            locations = [(x, y)
                         for y in range(0, level_h - win_h + 1, stride)
                         for x in range(0, level_w - win_w + 1, stride)]

            for start in range(0, len(locations), self.batch_size):
                batch = locations[start:start + self.batch_size]
                scores = self.model.decision_function(self.extractor.compute_windows(level, batch))
                for (x, y), score in zip(batch, scores):
                    if score > 0:
                        detections.append(Detection(
                            x=int(round(x * current)),
                            y=int(round(y * current)),
                            width=int(round(win_w * current)),
                            height=int(round(win_h * current)),
                            score=float(score),
                        ))

            current *= scale

        return detections

    def detect(self, image, stride=config.DETECTION_STRIDE, scale=config.DETECTION_PYRAMID_SCALE,
               nms_threshold=config.NMS_THRESHOLD):
        """
        Основная функция детекции.

        Args:
            image (np.ndarray): Входное изображение.
            stride (int): Шаг скользящего окна.
            scale (float): Коэффициент пирамиды изображений.
            nms_threshold (float): Порог доли перекрытия для NMS.

        Returns:
            list[Detection]: Рамки после NMS, от самой уверенной к наименее уверенной.
                             Пустой список - нормальный результат (окно не помещается
                             или ни одно окно не прошло порог).
        """
        raw = self.scan(image, stride=stride, scale=scale)
        if not raw:
            return []

        keep = utils.non_max_suppression([d.as_xyxy() for d in raw], [d.score for d in raw], nms_threshold)
        logger.debug("Срабатываний до NMS: %d, после: %d", len(raw), len(keep))
        return [raw[i] for i in keep]


def load_detector(model_path):
    """
    Загружает сохраненную модель и создает по ней детектор.

    Returns:
        SlidingWindowDetector: Готовый детектор.
        None: Если файла нет или он поврежден (ошибка пишется в лог).
    """
    if not os.path.exists(model_path):
        logger.error("Файл модели не найден: %s", model_path)
        return None
    try:
        return SlidingWindowDetector(load_model(model_path))
    except (OSError, ModelFormatError, ConfigurationError) as e:
        logger.error("Не удалось загрузить детектор из %s: %s", model_path, e)
        return None


def draw_detections(image, detections, label="Detections"):
    """
    Рисует рамки детекций и счетчик на копии изображения.

    Returns:
        np.ndarray: Копия картинки с зелеными рамками и подписью `label: N`.
    """
    output_image = image.copy()
    if output_image.ndim == 2:
        output_image = cv2.cvtColor(output_image, cv2.COLOR_GRAY2BGR)

    for det in detections:
        x, y, w, h = det.as_xywh()
        if w > 0 and h > 0:
            cv2.rectangle(output_image, (x, y), (x + w, y + h), (0, 255, 0), 2)

    cv2.putText(output_image, f"{label}: {len(detections)}", (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 255), 2)
    return output_image
