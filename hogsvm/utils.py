# hogsvm/utils.py

import cv2          # OpenCV для ресайза и перевода в оттенки серого
import numpy as np  # NumPy для векторного NMS

# --- Функции для работы с рамками (Bounding Boxes) ---
# Везде ниже рамка - это [xmin, ymin, xmax, ymax], где xmax = xmin + ширина.


def calculate_iou(boxA, boxB):
    """
    Вычисляет Intersection over Union (IoU) для двух рамок.

    Площади считаются как ширина * высота (без +1), пересечение -
    как у прямоугольников OpenCV.

    Args:
        boxA (sequence): Первая рамка [xmin, ymin, xmax, ymax].
        boxB (sequence): Вторая рамка [xmin, ymin, xmax, ymax].

    Returns:
        float: IoU от 0.0 до 1.0. 0.0, если объединение имеет нулевую площадь.
    """
    xA = max(boxA[0], boxB[0])
    yA = max(boxA[1], boxB[1])
    xB = min(boxA[2], boxB[2])
    yB = min(boxA[3], boxB[3])

    interArea = max(0, xB - xA) * max(0, yB - yA)

    boxAArea = (boxA[2] - boxA[0]) * (boxA[3] - boxA[1])
    boxBArea = (boxB[2] - boxB[0]) * (boxB[3] - boxB[1])

    denominator = float(boxAArea + boxBArea - interArea)
    if denominator <= 0:
        return 0.0

    return interArea / denominator


def max_iou(box, candidates):
    """Максимальный IoU рамки `box` со списком рамок `candidates` (0.0 для пустого списка)."""
    best = 0.0
    for candidate in candidates:
        best = max(best, calculate_iou(box, candidate))
    return best


def non_max_suppression(boxes, scores, threshold=0.3):
    """
    Жадный Non-Maximum Suppression.

    Индексы сортируются по возрастанию уверенности. На каждом шаге берется
    самая уверенная из оставшихся рамок, а все остальные, у которых доля
    перекрытия с ней больше `threshold`, удаляются. Доля перекрытия -
    площадь пересечения, деленная на площадь *проверяемой* (другой) рамки.
    Площади считаются в пикселях включительно: (x2 - x1 + 1) * (y2 - y1 + 1).

    Args:
        boxes (list or np.ndarray): Рамки [[xmin, ymin, xmax, ymax], ...].
        scores (list or np.ndarray): Уверенность для каждой рамки.
        threshold (float): Порог доли перекрытия.

    Returns:
        list: Индексы оставленных рамок, от самой уверенной к наименее уверенной.
    """
    if len(boxes) == 0:
        return []

    boxes = np.asarray(boxes, dtype=np.int64)
    scores = np.asarray(scores, dtype=np.float64)
    if len(boxes) != len(scores):
        raise ValueError(f"Число рамок ({len(boxes)}) не совпадает с числом оценок ({len(scores)})")

    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]

    area = (x2 - x1 + 1) * (y2 - y1 + 1)

    # По возрастанию: самая уверенная рамка всегда в конце списка
    idxs = np.argsort(scores, kind='stable')

    pick = []
    while len(idxs) > 0:
        last = len(idxs) - 1
        i = idxs[last]
        pick.append(int(i))

        others = idxs[:last]
        xx1 = np.maximum(x1[i], x1[others])
        yy1 = np.maximum(y1[i], y1[others])
        xx2 = np.minimum(x2[i], x2[others])
        yy2 = np.minimum(y2[i], y2[others])

        w = np.maximum(0, xx2 - xx1 + 1)
        h = np.maximum(0, yy2 - yy1 + 1)

        overlap = (w * h) / area[others]

        idxs = np.delete(idxs, np.concatenate(([last], np.where(overlap > threshold)[0])))

    return pick


def clip_box(box, img_width, img_height):
    """
    Обрезает рамку (x, y, w, h) границами изображения.

    Returns:
        tuple or None: Рамка (x, y, w, h) внутри картинки; None, если от нее ничего не осталось.
    """
    x, y, w, h = box
    xmin = max(0, x)
    ymin = max(0, y)
    xmax = min(img_width, x + w)
    ymax = min(img_height, y + h)
    if xmax <= xmin or ymax <= ymin:
        return None
    return xmin, ymin, xmax - xmin, ymax - ymin


def crop(image, box):
    """Копия области (x, y, w, h) изображения. Рамка должна лежать внутри картинки."""
    x, y, w, h = box
    return image[y:y + h, x:x + w].copy()


# --- Вспомогательные функции для изображений ---

def to_gray(image):
    """Переводит BGR/BGRA картинку в оттенки серого; серую возвращает как есть."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if image.shape[2] == 1:
        return image[:, :, 0]
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def resize_to_window(image, window_size, inter=cv2.INTER_AREA):
    """
    Приводит картинку ровно к размеру окна.

    Args:
        image (np.ndarray): Входное изображение.
        window_size (tuple): Размер (ширина, высота).
        inter (int): Метод интерполяции OpenCV.

    Returns:
        np.ndarray: Картинка размера окна (та же, если размер уже совпадает).
    """
    width, height = window_size
    if image.shape[1] == width and image.shape[0] == height:
        return image
    return cv2.resize(image, (int(width), int(height)), interpolation=inter)
