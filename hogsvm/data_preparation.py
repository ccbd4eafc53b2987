# hogsvm/data_preparation.py

import logging
import math
import os
import random  # Случайные места для негативных окон

import cv2
from tqdm import tqdm

from hogsvm import config
from hogsvm import utils
from hogsvm.errors import ConfigurationError
from hogsvm.structures import NEGATIVE, POSITIVE, Sample, WindowSize

logger = logging.getLogger(__name__)


# --- Чтение изображений ---

def read_image(image_path):
    """
    Читает картинку в BGR. Битые и отсутствующие файлы не роняют пайплайн:
    пишем предупреждение и возвращаем None, вызывающий код пропускает картинку.
    """
    image = cv2.imread(image_path)
    if image is None:
        logger.warning("Не удалось прочитать изображение %s. Пропускаем.", image_path)
    return image


def load_images(dirname):
    """
    Рекурсивно обходит папку и читает все картинки (например, фоновый набор для негативов).

    Args:
        dirname (str): Корневая папка.

    Returns:
        list[np.ndarray]: Успешно прочитанные картинки, в порядке отсортированных путей.
    """
    if not os.path.isdir(dirname):
        logger.warning("Папка с изображениями не найдена: %s", dirname)
        return []

    paths = []
    for root, _dirs, files in os.walk(dirname):
        paths.extend(os.path.join(root, f) for f in files)
    paths.sort()

    images = []
    for path in tqdm(paths, desc=f"Чтение {os.path.basename(dirname)}"):
        image = read_image(path)
        if image is not None:
            images.append(image)

    logger.info("Размер негативного набора: %d", len(images))
    return images


# --- Выбор размера окна ---

def collect_boxes(records):
    """Все рамки без флага ignore из списка записей аннотаций."""
    return [box for record in records for box in record.active_boxes()]


def window_grid(hog_params=None):
    """
    Шаг сетки окна по осям (ширина, высота): НОК cellSize и blockStride.

    Raises:
        ConfigurationError: Если блок HOG не ложится на эту сетку - тогда ни одно
                            окно на сетке не согласовано с шагом блока.
    """
    params = config.HOG_PARAMS if hog_params is None else hog_params
    grid = tuple(math.lcm(int(cell), int(stride))
                 for cell, stride in zip(params['cellSize'], params['blockStride']))
    for step, block in zip(grid, params['blockSize']):
        if int(block) % step != 0:
            raise ConfigurationError(
                f"Блок HOG {tuple(params['blockSize'])} не кратен шагу сетки окна {grid}"
            )
    return grid


def choose_window_size(boxes, hog_params=None, block_unit=config.WINDOW_BLOCK_UNIT):
    """
    Вычисляет единый размер окна детектора по размеченным рамкам.

    Средний размер рамки (целочисленное деление) округляется вниз и вверх
    до сетки HOG: small = mean // unit * step, big = (mean // unit + 1) * step,
    для ширины и высоты независимо. step - шаг сетки из `window_grid`,
    unit - `block_unit` или, если он не задан, тот же step.
    Из двух кандидатов берется тот, чье соотношение сторон ближе к среднему;
    при равенстве - меньший. Каждая сторона не меньше блока HOG.

    Args:
        boxes (iterable[AnnotatedBox]): Рамки; рамки с ignore=True не учитываются.
        hog_params (dict): Параметры HOG (по умолчанию config.HOG_PARAMS).
        block_unit (int): Делитель среднего размера; None - равен шагу сетки.

    Returns:
        WindowSize: Размер окна (ширина, высота).

    Raises:
        ConfigurationError: Если нет ни одной рамки без ignore
                            или параметры HOG не задают сетку окна.
    """
    params = config.HOG_PARAMS if hog_params is None else hog_params
    step_w, step_h = window_grid(params)
    unit_w, unit_h = (step_w, step_h) if block_unit is None else (block_unit, block_unit)
    min_w, min_h = (int(v) for v in params['blockSize'])

    active = [box for box in boxes if not box.ignore]
    if not active:
        raise ConfigurationError("Нет ни одной рамки без ignore - размер окна не определен")

    count = len(active)
    mean_w = sum(box.width for box in active) // count
    mean_h = sum(box.height for box in active) // count
    if mean_w <= 0 or mean_h <= 0:
        raise ConfigurationError(f"Вырожденный средний размер рамки: {mean_w}x{mean_h}")
    logger.info("Средняя рамка: %dx%d", mean_w, mean_h)

    small = WindowSize(max(mean_w // unit_w * step_w, min_w),
                       max(mean_h // unit_h * step_h, min_h))
    big = WindowSize(max((mean_w // unit_w + 1) * step_w, min_w),
                     max((mean_h // unit_h + 1) * step_h, min_h))

    orig_ratio = mean_w / mean_h
    small_ratio = small.width / small.height
    big_ratio = big.width / big.height

    if abs(orig_ratio - small_ratio) > abs(orig_ratio - big_ratio):
        window_size = big
    else:
        window_size = small

    logger.info("Размер окна: %dx%d", window_size.width, window_size.height)
    return window_size


# --- Нарезка сэмплов ---

def harvest_positive_samples(records, load_image=read_image):
    """
    Вырезает позитивные сэмплы: по одному на каждую рамку без ignore.
    Размер кропа не меняется - к размеру окна все приводится при вычислении HOG.

    Args:
        records (list[AnnotatedImage]): Записи аннотаций.
        load_image (callable): Чтение картинки по пути; None - картинка пропускается.

    Returns:
        list[Sample]: Позитивные сэмплы.
    """
    samples = []
    for record in tqdm(records, desc="Позитивные сэмплы"):
        boxes = record.active_boxes()
        if not boxes:
            continue

        image = load_image(record.path)
        if image is None:
            continue
        img_h, img_w = image.shape[:2]

        for box in boxes:
            clipped = utils.clip_box(box.as_xywh(), img_w, img_h)
            if clipped is None:
                logger.warning("Рамка %s лежит вне изображения %s. Пропускаем.", box.as_xywh(), record.path)
                continue
            samples.append(Sample(image=utils.crop(image, clipped), label=POSITIVE))

    logger.info("Позитивных сэмплов: %d", len(samples))
    return samples


def sample_negative_windows(images, window_size, rng=None):
    """
    Вырезает по одному случайному окну размера `window_size` из каждой фоновой картинки.
    Картинки, которые не больше окна строго по обеим сторонам, пропускаются.

    Args:
        images (list[np.ndarray]): Фоновые картинки.
        window_size (WindowSize): Размер окна.
        rng (random.Random): Источник случайности; по умолчанию - с сидом из конфига.

    Returns:
        list[Sample]: Негативные сэмплы.
    """
    if rng is None:
        rng = random.Random(config.RANDOM_SEED)
    win_w, win_h = window_size

    samples = []
    for image in images:
        img_h, img_w = image.shape[:2]
        if img_w <= win_w or img_h <= win_h:
            continue

        # Левый верхний угол: от 0 до (размер_картинки - размер_окна - 1)
        nx = rng.randint(0, img_w - win_w - 1)
        ny = rng.randint(0, img_h - win_h - 1)
        samples.append(Sample(image=utils.crop(image, (nx, ny, win_w, win_h)), label=NEGATIVE))

    logger.info("Негативных сэмплов: %d (из %d картинок)", len(samples), len(images))
    return samples
