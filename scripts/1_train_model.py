# scripts/1_train_model.py

import argparse
import logging
import os
import random
import sys
import time

# Корень проекта в sys.path, чтобы скрипт работал и без установки пакета
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

from hogsvm import config
from hogsvm.annotations import load_xml_annotations
from hogsvm.data_preparation import load_images
from hogsvm.errors import HogSvmError
from hogsvm.model import save_model
from hogsvm.training import BootstrappedTrainer

logger = logging.getLogger("train_model")


def build_parser():
    parser = argparse.ArgumentParser(description="Обучение детектора HOG + SVM с поиском hard negatives")
    parser.add_argument("--annotations", default=config.TRAIN_ANNOTATION_PATH,
                        help="XML-аннотации обучающего набора")
    parser.add_argument("--negatives", default=config.NEGATIVE_IMAGE_DIR,
                        help="Папка с фоновыми картинками (обходится рекурсивно)")
    parser.add_argument("--model", default=config.MODEL_PATH, help="Куда сохранить модель")
    parser.add_argument("--flip", action="store_true", default=config.USE_FLIP,
                        help="Добавлять зеркальные копии позитивов")
    parser.add_argument("--mining-rounds", type=int, default=config.MINING_ROUNDS)
    parser.add_argument("--seed", type=int, default=config.RANDOM_SEED)
    parser.add_argument("--jobs", type=int, default=config.FEATURE_N_JOBS,
                        help="Потоков для вычисления HOG")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def run_training(args):
    """Загружает данные, обучает детектор и сохраняет модель. Возвращает True при успехе."""
    records = load_xml_annotations(args.annotations)
    background_images = load_images(args.negatives)

    try:
        trainer = BootstrappedTrainer.from_dataset(
            records,
            background_images,
            rng=random.Random(args.seed),
            use_flip=args.flip,
            mining_rounds=args.mining_rounds,
            n_jobs=args.jobs,
        )
        model = trainer.train()
    except HogSvmError as e:
        logger.error("Обучение прервано: %s", e)
        return False

    save_model(model, args.model)
    print("-" * 30)
    print(f"Окно: {model.window_size.width}x{model.window_size.height}")
    print(f"Позитивов: {trainer.pos_count}, негативов: {trainer.neg_count}")
    print(f"Длина вектора весов: {model.weights.shape[0]}")
    print("-" * 30)
    return True


if __name__ == "__main__":
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config.ensure_output_dirs()

    overall_start_time = time.time()
    ok = run_training(args)
    print(f"--- Общее время обучения: {time.time() - overall_start_time:.2f} сек ---")
    sys.exit(0 if ok else 1)
