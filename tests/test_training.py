"""Тесты классификатора и обучения с бутстрэппингом."""

import random

import numpy as np
import pytest

from hogsvm import config
from hogsvm.detection import SlidingWindowDetector
from hogsvm.errors import ConfigurationError, InsufficientDataError, TrainingError
from hogsvm.feature_extraction import HogFeatureExtractor
from hogsvm.structures import NEGATIVE, POSITIVE, Detection, Sample, WindowSize
from hogsvm.training import BootstrappedTrainer, LinearSvmClassifier, TrainerState

from conftest import draw_background, draw_object


def object_samples(count, window=(64, 128)):
    w, h = window
    return [Sample(draw_object(w, h, (0, 0, w, h), seed=i), POSITIVE) for i in range(count)]


def background_samples(count, window=(64, 128)):
    w, h = window
    return [Sample(draw_background(w, h, seed=100 + i), NEGATIVE) for i in range(count)]


class TestLinearSvmClassifier:
    """Тесты LinearSvmClassifier."""

    def test_separable_data(self):
        rng = np.random.default_rng(0)
        positives = rng.normal(2.0, 0.3, size=(20, 5))
        negatives = rng.normal(-2.0, 0.3, size=(20, 5))
        features = np.vstack([positives, negatives])
        labels = np.array([POSITIVE] * 20 + [NEGATIVE] * 20)

        weights = LinearSvmClassifier().fit(features, labels)

        assert weights.shape == (6,)
        scores = features @ weights[:-1] + weights[-1]
        assert np.all(scores[:20] > 0)
        assert np.all(scores[20:] < 0)

    def test_single_class(self):
        with pytest.raises(TrainingError):
            LinearSvmClassifier().fit(np.ones((3, 4)), [POSITIVE] * 3)

    def test_unknown_labels(self):
        with pytest.raises(TrainingError):
            LinearSvmClassifier().fit(np.ones((3, 4)), [POSITIVE, NEGATIVE, 7])

    def test_shape_mismatch(self):
        with pytest.raises(TrainingError):
            LinearSvmClassifier().fit(np.ones((3, 4)), [POSITIVE, NEGATIVE])

    def test_not_converged(self):
        """Перемешанные метки и одна итерация - решатель не сходится."""
        rng = np.random.default_rng(1)
        features = rng.normal(size=(200, 20))
        labels = rng.integers(0, 2, size=200)
        with pytest.raises(TrainingError):
            LinearSvmClassifier(max_iter=1).fit(features, labels)


class TestBootstrappedTrainer:
    """Тесты BootstrappedTrainer на маленьком окне 64x128."""

    def make_trainer(self, positives=3, negatives=3, **kwargs):
        backgrounds = [draw_background(200, 200, seed=i) for i in range(2)]
        return BootstrappedTrainer(
            WindowSize(64, 128),
            object_samples(positives),
            background_samples(negatives),
            backgrounds,
            **kwargs,
        )

    def test_no_positives(self):
        trainer = self.make_trainer(positives=0)
        with pytest.raises(InsufficientDataError):
            trainer.train()
        assert trainer.state is TrainerState.IDLE
        assert trainer.neg_count == 3
        assert trainer.model is None

    def test_no_negatives(self):
        trainer = self.make_trainer(negatives=0)
        with pytest.raises(InsufficientDataError):
            trainer.extract_features()
        assert trainer.features is None

    def test_mining_without_detections_is_noop(self, monkeypatch):
        """Промежуточная модель ничего не находит на фоне - набор негативов не меняется."""
        monkeypatch.setattr(SlidingWindowDetector, "detect", lambda self, image, **kwargs: [])
        trainer = self.make_trainer()
        before = [s.image for s in trainer.negatives]

        model = trainer.train()

        assert trainer.state is TrainerState.FINAL_TRAINED
        assert trainer.neg_count == len(before)
        assert all(a is b for a, b in zip(before, (s.image for s in trainer.negatives)))
        assert model is trainer.model
        assert trainer.detector.model is model

    def test_mining_adds_one_negative_per_detection(self, monkeypatch):
        fake = [Detection(0, 0, 64, 128, 1.5), Detection(100, 50, 74, 147, 0.7)]
        monkeypatch.setattr(SlidingWindowDetector, "detect", lambda self, image, **kwargs: fake)
        trainer = self.make_trainer()

        trainer.extract_features()
        trainer.soft_train()
        added = trainer.hard_negative_mine()

        assert added == 4
        assert trainer.neg_count == 7
        assert trainer.state is TrainerState.HARD_MINED
        assert all(s.label == NEGATIVE and s.image.shape[:2] == (128, 64) for s in trainer.negatives[3:])

    def test_reextraction_replaces_features(self, monkeypatch):
        monkeypatch.setattr(SlidingWindowDetector, "detect",
                            lambda self, image, **kwargs: [Detection(0, 0, 64, 128, 1.0)])
        trainer = self.make_trainer()

        trainer.extract_features()
        assert trainer.features.shape[0] == 6
        trainer.soft_train()
        trainer.hard_negative_mine()
        trainer.extract_features()

        assert trainer.state is TrainerState.FEATURES_REEXTRACTED
        assert trainer.features.shape[0] == 8
        assert trainer.labels.tolist().count(NEGATIVE) == 5

    def test_flip_doubles_positive_features(self):
        trainer = self.make_trainer(positives=2, negatives=3, use_flip=True)
        trainer.extract_features()
        assert trainer.features.shape[0] == 7
        assert trainer.labels.tolist().count(POSITIVE) == 4

    def test_invalid_transition(self):
        trainer = self.make_trainer()
        with pytest.raises(RuntimeError):
            trainer.hard_negative_mine()

    def test_failed_final_fit_rolls_back(self, monkeypatch):
        """Ошибка финального обучения: модель не устанавливается, добытые негативы убираются."""
        monkeypatch.setattr(SlidingWindowDetector, "detect",
                            lambda self, image, **kwargs: [Detection(0, 0, 64, 128, 1.0)])

        class FailsOnSecondFit(LinearSvmClassifier):
            calls = 0

            def fit(self, features, labels):
                self.calls += 1
                if self.calls == 2:
                    raise TrainingError("не сошелся")
                return super().fit(features, labels)

        trainer = self.make_trainer(classifier=FailsOnSecondFit())
        with pytest.raises(TrainingError):
            trainer.train()

        assert trainer.state is TrainerState.IDLE
        assert trainer.model is None
        assert trainer.detector is None
        assert trainer.neg_count == 3

    def test_reextraction_error_rolls_back(self, monkeypatch):
        """Сбой HOG при повторном извлечении тоже откатывает добытые негативы."""
        monkeypatch.setattr(SlidingWindowDetector, "detect",
                            lambda self, image, **kwargs: [Detection(0, 0, 64, 128, 1.0)])
        trainer = self.make_trainer()
        real_compute = HogFeatureExtractor.compute_samples
        calls = []

        def failing_second_call(self, samples, **kwargs):
            calls.append(len(samples))
            if len(calls) == 2:
                raise ValueError("HOG не вычислился")
            return real_compute(self, samples, **kwargs)

        monkeypatch.setattr(HogFeatureExtractor, "compute_samples", failing_second_call)

        with pytest.raises(ValueError):
            trainer.train()

        assert calls == [6, 8]
        assert trainer.state is TrainerState.IDLE
        assert trainer.neg_count == 3
        assert trainer.features is None
        assert trainer.interim_model is None
        assert trainer.model is None

    def test_several_mining_rounds(self, monkeypatch):
        monkeypatch.setattr(SlidingWindowDetector, "detect",
                            lambda self, image, **kwargs: [Detection(0, 0, 64, 128, 1.0)])
        trainer = self.make_trainer(mining_rounds=2)
        trainer.train()
        # Два раунда по одному срабатыванию на каждой из двух фоновых картинок
        assert trainer.neg_count == 3 + 2 + 2
        assert trainer.state is TrainerState.FINAL_TRAINED

    def test_zero_mining_rounds(self):
        with pytest.raises(ConfigurationError):
            self.make_trainer(mining_rounds=0)


class TestEndToEnd:
    """Полный сценарий: две картинки с рамкой 100x200 и три фона 640x480."""

    def test_train_from_dataset(self, write_object_images, backgrounds):
        records = write_object_images(2, box=(50, 40, 100, 200))

        trainer = BootstrappedTrainer.from_dataset(records, backgrounds, rng=random.Random(0))

        assert trainer.window_size == WindowSize(104, 208)
        assert trainer.pos_count == 2
        assert trainer.neg_count == 3

        model = trainer.train()

        assert trainer.state is TrainerState.FINAL_TRAINED
        assert trainer.neg_count >= 3
        assert model.window_size == (104, 208)
        assert model.weights.shape == (trainer.extractor.feature_length + 1,)
        assert trainer.detector is not None

    def test_train_from_dataset_on_coarse_hog_grid(self, write_object_images, backgrounds):
        """Окно выбирается по сетке переданных параметров HOG, а не по сетке из config."""
        hog_params = dict(config.HOG_PARAMS, blockSize=(32, 32), blockStride=(16, 16), cellSize=(16, 16))
        records = write_object_images(2, box=(50, 40, 100, 200))

        trainer = BootstrappedTrainer.from_dataset(records, backgrounds, rng=random.Random(0),
                                                   hog_params=hog_params)

        assert trainer.window_size == WindowSize(96, 192)
        assert trainer.extractor.hog_params['blockSize'] == (32, 32)
        model = trainer.train()
        assert model.weights.shape == (trainer.extractor.feature_length + 1,)
