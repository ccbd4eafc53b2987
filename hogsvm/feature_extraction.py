# hogsvm/feature_extraction.py

import logging

import cv2          # OpenCV: HOG дескриптор
import numpy as np
from joblib import Parallel, delayed  # Параллельный расчет HOG по сэмплам
from tqdm import tqdm

from hogsvm import config
from hogsvm import utils
from hogsvm.errors import ConfigurationError
from hogsvm.structures import POSITIVE

logger = logging.getLogger(__name__)


def build_hog_descriptor(window_size, hog_params=None):
    """
    Создает cv2.HOGDescriptor для заданного окна.

    Args:
        window_size (tuple): Размер окна (ширина, высота).
        hog_params (dict): Параметры HOG (как config.HOG_PARAMS, без winSize).

    Returns:
        cv2.HOGDescriptor: Готовый дескриптор.

    Raises:
        ConfigurationError: Если окно не ложится на сетку блоков HOG.
    """
    params = config.HOG_PARAMS if hog_params is None else hog_params
    win_size = (int(window_size[0]), int(window_size[1]))
    block_size = tuple(params['blockSize'])
    block_stride = tuple(params['blockStride'])
    cell_size = tuple(params['cellSize'])

    # Без этого длина вектора признаков не определена
    for dim in (0, 1):
        if win_size[dim] < block_size[dim] or (win_size[dim] - block_size[dim]) % block_stride[dim] != 0:
            raise ConfigurationError(
                f"Окно {win_size} не согласовано с блоком {block_size} и шагом блока {block_stride}"
            )

    return cv2.HOGDescriptor(
        win_size, block_size, block_stride, cell_size,
        params['nbins'], params['derivAperture'],
        params['winSigma'], params['histogramNormType'],
        params['L2HysThreshold'], params['gammaCorrection'],
        params['nlevels'], params['signedGradients']
    )


class HogFeatureExtractor:
    """
    Превращает окно изображения в вектор HOG-признаков фиксированной длины.

    Все векторы одного экстрактора имеют длину `feature_length`, которая
    определяется размером окна и параметрами HOG.
    """

    def __init__(self, window_size, hog_params=None):
        self.window_size = (int(window_size[0]), int(window_size[1]))
        self.hog_params = dict(config.HOG_PARAMS if hog_params is None else hog_params)
        self.descriptor = build_hog_descriptor(self.window_size, self.hog_params)
        self.feature_length = int(self.descriptor.getDescriptorSize())

    def compute(self, image, flip=False):
        """
        HOG одного сэмпла: ресайз к окну, оттенки серого, при `flip` - зеркальное отражение.

        Returns:
            np.ndarray: Плоский float32 вектор длины `feature_length`.
        """
        gray = utils.to_gray(utils.resize_to_window(image, self.window_size))
        if flip:
            gray = cv2.flip(gray, 1)
        hog_features = self.descriptor.compute(gray)
        if hog_features is None:
            raise ValueError(f"HOG не вычислился для окна {gray.shape[1]}x{gray.shape[0]}")
        return hog_features.reshape(-1).astype(np.float32)

    def _describe(self, sample, use_flip):
        vectors = [self.compute(sample.image)]
        if use_flip and sample.label == POSITIVE:
            vectors.append(self.compute(sample.image, flip=True))
        return vectors

    def compute_samples(self, samples, use_flip=False, n_jobs=1):
        """
        Считает HOG для всех сэмплов и собирает матрицу признаков и вектор меток.

        При `use_flip` каждый позитив дает два вектора: исходный и зеркальный.
        Порядок строк совпадает с порядком сэмплов и при n_jobs > 1.

        Args:
            samples (list[Sample]): Сэмплы.
            use_flip (bool): Добавлять зеркальные копии позитивов.
            n_jobs (int): Число потоков (joblib).

        Returns:
            tuple: (features float32 (N, feature_length), labels int32 (N,))
        """
        if n_jobs == 1:
            described = [self._describe(s, use_flip) for s in tqdm(samples, desc="Вычисление HOG")]
        else:
            described = Parallel(n_jobs=n_jobs, prefer="threads")(
                delayed(self._describe)(s, use_flip) for s in samples
            )

        features = []
        labels = []
        for sample, vectors in zip(samples, described):
            features.extend(vectors)
            labels.extend([sample.label] * len(vectors))

        if not features:
            return np.empty((0, self.feature_length), dtype=np.float32), np.empty(0, dtype=np.int32)

        logger.debug("Длина вектора признаков HOG: %d, векторов: %d", self.feature_length, len(features))
        return np.vstack(features).astype(np.float32), np.asarray(labels, dtype=np.int32)

    def compute_windows(self, gray, locations):
        """
        HOG сразу для нескольких окон одной серой картинки.

        Args:
            gray (np.ndarray): Изображение uint8 в оттенках серого.
            locations (list[tuple]): Левые верхние углы окон (x, y); каждое окно целиком внутри картинки.

        Returns:
            np.ndarray: float32 (len(locations), feature_length), строки в порядке `locations`.
        """
        if not locations:
            return np.empty((0, self.feature_length), dtype=np.float32)
        descriptors = self.descriptor.compute(
            gray,
            winStride=tuple(self.hog_params['blockStride']),
            padding=(0, 0),
            locations=[(int(x), int(y)) for x, y in locations],
        )
        return np.asarray(descriptors, dtype=np.float32).reshape(len(locations), self.feature_length)
