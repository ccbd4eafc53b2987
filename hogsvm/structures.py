# hogsvm/structures.py

# Структуры данных пайплайна:
#   AnnotatedBox / AnnotatedImage - разметка из файла аннотаций
#   Sample - кусок картинки с меткой (позитив / негатив)
#   WindowSize - размер окна детектора, общий для всего обучения
#   Detection - рамка с уверенностью SVM
#   EvaluationResult - счетчики и метрики оценки

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

POSITIVE = 1
NEGATIVE = 0


class WindowSize(NamedTuple):
    """Размер окна (ширина, высота) - в том же порядке, что ждет OpenCV."""

    width: int
    height: int


@dataclass(frozen=True)
class AnnotatedBox:
    top: int
    left: int
    width: int
    height: int
    ignore: bool = False

    def as_xywh(self):
        return self.left, self.top, self.width, self.height

    def as_xyxy(self):
        return self.left, self.top, self.left + self.width, self.top + self.height


@dataclass(frozen=True)
class AnnotatedImage:
    """Одна запись аннотации: путь к картинке и ее рамки."""

    path: str
    boxes: tuple[AnnotatedBox, ...] = ()

    def active_boxes(self):
        """Рамки без флага ignore."""
        return [box for box in self.boxes if not box.ignore]


@dataclass
class Sample:
    image: np.ndarray
    """Пиксели (BGR или оттенки серого)."""

    label: int
    """POSITIVE или NEGATIVE."""


@dataclass(frozen=True)
class Detection:
    x: int
    y: int
    width: int
    height: int
    score: float
    """Значение решающей функции SVM (> 0 для срабатывания)."""

    def as_xywh(self):
        return self.x, self.y, self.width, self.height

    def as_xyxy(self):
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass(frozen=True)
class EvaluationResult:
    true_pos: int
    pos_predict: int
    pos_actual: int
    precision: float
    recall: float
    f1: float
    """NaN, если метрика не определена (нулевой знаменатель)."""
