# hogsvm/training.py

import enum
import logging
import warnings

import cv2
import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.svm import LinearSVC  # Линейный SVM
from tqdm import tqdm

from hogsvm import config
from hogsvm import utils
from hogsvm.data_preparation import (choose_window_size, collect_boxes, harvest_positive_samples,
                                     read_image, sample_negative_windows)
from hogsvm.detection import SlidingWindowDetector
from hogsvm.errors import ConfigurationError, InsufficientDataError, TrainingError
from hogsvm.feature_extraction import HogFeatureExtractor
from hogsvm.model import DetectorModel
from hogsvm.structures import NEGATIVE, POSITIVE, Sample, WindowSize

logger = logging.getLogger(__name__)


class LinearSvmClassifier:
    """
    Обертка над sklearn LinearSVC, которая отдает веса в формате детектора:
    веса признаков подряд, последним элементом - свободный член.
    """

    def __init__(self, C=config.SVM_C, dual=config.SVM_DUAL, max_iter=config.SVM_MAX_ITER, tol=config.SVM_TOL):
        self.C = C
        self.dual = dual
        self.max_iter = max_iter
        self.tol = tol

    def fit(self, features, labels):
        """
        Обучает SVM на парах (признаки, метка).

        Args:
            features (np.ndarray): Матрица признаков (N, D).
            labels (np.ndarray): Метки POSITIVE / NEGATIVE длины N.

        Returns:
            np.ndarray: float32 вектор длины D + 1.

        Raises:
            TrainingError: Нет сэмплов одного из классов, неизвестные метки
                           или SVM не сошелся за max_iter итераций.
        """
        features = np.asarray(features, dtype=np.float32)
        labels = np.asarray(labels)
        if features.ndim != 2 or features.shape[0] != labels.shape[0]:
            raise TrainingError(f"Признаки {features.shape} не соответствуют меткам {labels.shape}")

        unknown = set(np.unique(labels).tolist()) - {POSITIVE, NEGATIVE}
        if unknown:
            raise TrainingError(f"Неизвестные метки: {sorted(unknown)}")
        n_pos = int(np.sum(labels == POSITIVE))
        n_neg = int(np.sum(labels == NEGATIVE))
        if n_pos < 1 or n_neg < 1:
            raise TrainingError(f"Нужны сэмплы обоих классов (позитивных: {n_pos}, негативных: {n_neg})")

        svm = LinearSVC(C=self.C, dual=self.dual, max_iter=self.max_iter, tol=self.tol)
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            try:
                svm.fit(features, labels)
            except ConvergenceWarning as e:
                raise TrainingError(f"SVM не сошелся за {self.max_iter} итераций") from e
            except ValueError as e:
                raise TrainingError(f"Ошибка обучения SVM: {e}") from e

        # classes_ отсортированы: [NEGATIVE, POSITIVE], значит coef_ смотрит в сторону позитивов
        return np.append(svm.coef_.ravel(), svm.intercept_).astype(np.float32)


class TrainerState(enum.Enum):
    IDLE = "idle"
    FEATURES_EXTRACTED = "features_extracted"
    SOFT_TRAINED = "soft_trained"
    HARD_MINED = "hard_mined"
    FEATURES_REEXTRACTED = "features_reextracted"
    FINAL_TRAINED = "final_trained"


class BootstrappedTrainer:
    """
    Обучение с бутстрэппингом: HOG → мягкое обучение SVM → поиск hard negatives
    на фоновых картинках → повторный HOG → финальное обучение.

    Обучение "все или ничего": если любой этап падает, добытые негативы
    откатываются, модель не устанавливается, тренер возвращается в IDLE.
    """

    def __init__(self, window_size, positives, negatives, background_images, hog_params=None,
                 classifier=None, use_flip=config.USE_FLIP, mining_rounds=config.MINING_ROUNDS,
                 stride=config.DETECTION_STRIDE, scale=config.DETECTION_PYRAMID_SCALE,
                 nms_threshold=config.NMS_THRESHOLD, n_jobs=config.FEATURE_N_JOBS):
        if mining_rounds < 1:
            raise ConfigurationError(f"Нужен хотя бы один раунд поиска hard negatives, получено {mining_rounds}")

        self.window_size = WindowSize(*window_size)
        self.extractor = HogFeatureExtractor(self.window_size, hog_params)
        self.classifier = classifier or LinearSvmClassifier()
        self.positives = list(positives)
        self.negatives = list(negatives)
        self.background_images = list(background_images)

        self.use_flip = use_flip
        self.mining_rounds = mining_rounds
        self.stride = stride
        self.scale = scale
        self.nms_threshold = nms_threshold
        self.n_jobs = n_jobs

        self.state = TrainerState.IDLE
        self.features = None
        self.labels = None
        self.interim_model = None
        self.model = None
        self.detector = None

    @classmethod
    def from_dataset(cls, records, background_images, rng=None, load_image=read_image, **kwargs):
        """
        Готовит тренер по аннотациям и фоновым картинкам: выбирает размер окна,
        режет позитивы по рамкам и по одному случайному негативу с каждого фона.

        Args:
            records (list[AnnotatedImage]): Аннотации обучающего набора.
            background_images (list[np.ndarray]): Фоновые картинки.
            rng (random.Random): Источник случайности для негативов.
            load_image (callable): Чтение картинки по пути.
            **kwargs: Остальные параметры конструктора.
        """
        # Окно считается по той же сетке HOG, с которой потом строится экстрактор
        window_size = choose_window_size(collect_boxes(records), hog_params=kwargs.get('hog_params'))
        positives = harvest_positive_samples(records, load_image=load_image)
        negatives = sample_negative_windows(background_images, window_size, rng=rng)
        return cls(window_size, positives, negatives, background_images, **kwargs)

    @property
    def pos_count(self):
        return len(self.positives)

    @property
    def neg_count(self):
        return len(self.negatives)

    def _require(self, *states):
        if self.state not in states:
            expected = ", ".join(s.name for s in states)
            raise RuntimeError(f"Недопустимый переход из {self.state.name}; ожидалось: {expected}")

    # --- Этапы ---

    def extract_features(self):
        """
        Считает HOG по всем текущим сэмплам. Результат заменяет прошлую матрицу признаков.

        Raises:
            InsufficientDataError: Нет позитивов или негативов (ничего не меняется).
        """
        self._require(TrainerState.IDLE, TrainerState.HARD_MINED)
        if self.pos_count == 0 or self.neg_count == 0:
            raise InsufficientDataError(
                f"Нет данных для обучения (позитивов: {self.pos_count}, негативов: {self.neg_count})"
            )

        self.features, self.labels = self.extractor.compute_samples(
            self.positives + self.negatives, use_flip=self.use_flip, n_jobs=self.n_jobs
        )
        logger.info("Признаков: %d, длина вектора: %d", self.features.shape[0], self.features.shape[1])

        if self.state is TrainerState.IDLE:
            self.state = TrainerState.FEATURES_EXTRACTED
        else:
            self.state = TrainerState.FEATURES_REEXTRACTED

    def soft_train(self):
        """Мягкое обучение: промежуточная модель для поиска hard negatives."""
        self._require(TrainerState.FEATURES_EXTRACTED, TrainerState.FEATURES_REEXTRACTED)
        logger.info("Обучение SVM (промежуточная модель, C=%s)...", self.classifier.C)
        weights = self.classifier.fit(self.features, self.labels)
        self.interim_model = DetectorModel(self.window_size, weights, self.extractor.hog_params)
        self.state = TrainerState.SOFT_TRAINED

    def hard_negative_mine(self):
        """
        Прогоняет промежуточную модель по фоновым картинкам. Каждое срабатывание -
        ложное, его кроп (приведенный к окну) добавляется в негативы.
        Повторы между раундами не отсеиваются.

        Returns:
            int: Сколько негативов добавлено.
        """
        self._require(TrainerState.SOFT_TRAINED)
        detector = SlidingWindowDetector(self.interim_model, self.extractor)
        win_w, win_h = self.window_size

        mined = []
        for image in tqdm(self.background_images, desc="Поиск hard negatives"):
            img_h, img_w = image.shape[:2]
            if img_w < win_w or img_h < win_h:
                continue
            for det in detector.detect(image, stride=self.stride, scale=self.scale,
                                       nms_threshold=self.nms_threshold):
                # При масштабе > 1 рамка может выйти за край на пиксель из-за округления
                box = utils.clip_box(det.as_xywh(), img_w, img_h)
                crop = utils.resize_to_window(utils.crop(image, box), self.window_size, inter=cv2.INTER_CUBIC)
                mined.append(Sample(image=crop, label=NEGATIVE))

        # Единая точка накопления: негативы добавляются один раз после обхода всех картинок
        self.negatives.extend(mined)
        logger.info("Найдено hard negatives: %d (всего негативов: %d)", len(mined), self.neg_count)
        self.state = TrainerState.HARD_MINED
        return len(mined)

    def final_train(self):
        """Финальное обучение на полном наборе; модель устанавливается в детектор."""
        self._require(TrainerState.FEATURES_REEXTRACTED)
        logger.info("Обучение SVM (финальная модель)...")
        weights = self.classifier.fit(self.features, self.labels)
        self.model = DetectorModel(self.window_size, weights, self.extractor.hog_params)
        self.detector = SlidingWindowDetector(self.model, self.extractor)
        self.state = TrainerState.FINAL_TRAINED

    def train(self):
        """
        Полный цикл обучения.

        Returns:
            DetectorModel: Финальная модель (также доступна как `self.model`).

        Raises:
            InsufficientDataError, TrainingError: Обучение прервано, модель не установлена.
                Любое другое исключение этапа тоже откатывает добытые негативы.
        """
        self._require(TrainerState.IDLE)
        logger.info("Позитивов: %d, негативов: %d", self.pos_count, self.neg_count)
        neg_before = self.neg_count

        try:
            self.extract_features()
            self.soft_train()
            for round_idx in range(self.mining_rounds):
                self.hard_negative_mine()
                self.extract_features()
                if round_idx < self.mining_rounds - 1:
                    self.soft_train()
                else:
                    self.final_train()
        except Exception:
            # Любая ошибка этапа (в том числе cv2.error из HOG) - модель не ставится
            self._rollback(neg_before)
            raise

        logger.info("Обучение завершено. Позитивов: %d, негативов: %d", self.pos_count, self.neg_count)
        return self.model

    def _rollback(self, neg_count):
        del self.negatives[neg_count:]
        self.features = None
        self.labels = None
        self.interim_model = None
        self.model = None
        self.detector = None
        self.state = TrainerState.IDLE
