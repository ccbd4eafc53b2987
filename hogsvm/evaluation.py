# hogsvm/evaluation.py

import logging
import math
from dataclasses import dataclass

from tqdm import tqdm

from hogsvm import config
from hogsvm import utils
from hogsvm.data_preparation import read_image
from hogsvm.errors import DivisionUndefined
from hogsvm.structures import EvaluationResult

logger = logging.getLogger(__name__)


@dataclass
class EvaluationStats:
    """Счетчики, накапливаемые за один проход оценки."""

    true_pos: int = 0
    pos_predict: int = 0
    pos_actual: int = 0

    def add_image(self, detections, ground_truth, iou_threshold=config.IOU_MATCH_THRESHOLD):
        """
        Учитывает одну картинку.

        Каждая рамка разметки дает не больше одного true positive: если ее
        максимальный IoU с детекциями больше порога. Одна детекция может
        "закрыть" сразу несколько рамок - взаимно-однозначного сопоставления нет.
        """
        self.pos_predict += len(detections)
        self.pos_actual += len(ground_truth)

        detected = [d.as_xyxy() for d in detections]
        for box in ground_truth:
            if utils.max_iou(box.as_xyxy(), detected) > iou_threshold:
                self.true_pos += 1

    def result(self):
        precision = _metric("precision", self.true_pos, self.pos_predict)
        recall = _metric("recall", self.true_pos, self.pos_actual)
        if math.isnan(precision) or math.isnan(recall):
            f1 = math.nan
        else:
            f1 = _metric("f1", 2 * precision * recall, precision + recall)
        return EvaluationResult(
            true_pos=self.true_pos,
            pos_predict=self.pos_predict,
            pos_actual=self.pos_actual,
            precision=precision,
            recall=recall,
            f1=f1,
        )


def safe_ratio(numerator, denominator):
    """
    Raises:
        DivisionUndefined: Если знаменатель равен нулю.
    """
    if denominator == 0:
        raise DivisionUndefined(f"{numerator} / 0")
    return numerator / denominator


def _metric(name, numerator, denominator):
    try:
        return float(safe_ratio(numerator, denominator))
    except DivisionUndefined as e:
        logger.warning("Метрика %s не определена: %s", name, e)
        return math.nan


def evaluate(detector, records, load_image=read_image, stride=config.DETECTION_STRIDE,
             scale=config.DETECTION_PYRAMID_SCALE, iou_threshold=config.IOU_MATCH_THRESHOLD):
    """
    Прогоняет детектор по размеченным картинкам и считает precision / recall / F1.

    Args:
        detector (SlidingWindowDetector): Обученный детектор.
        records (list[AnnotatedImage]): Разметка тестового набора.
        load_image (callable): Чтение картинки; None - картинка пропускается.
        stride (int): Шаг окна детектора.
        scale (float): Коэффициент пирамиды.
        iou_threshold (float): Рамка засчитывается, если IoU строго больше порога.

    Returns:
        EvaluationResult: Счетчики и метрики; неопределенные метрики - NaN.
    """
    stats = EvaluationStats()
    for record in tqdm(records, desc="Оценка"):
        image = load_image(record.path)
        if image is None:
            continue
        detections = detector.detect(image, stride=stride, scale=scale)
        stats.add_image(detections, record.active_boxes(), iou_threshold=iou_threshold)

    result = stats.result()
    logger.info("TP: %d, предсказано: %d, в разметке: %d",
                result.true_pos, result.pos_predict, result.pos_actual)
    return result
