# scripts/3_run_detection.py

import argparse
import logging
import os
import sys
import time

import cv2

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

from hogsvm import config
from hogsvm.data_preparation import read_image
from hogsvm.detection import draw_detections, load_detector


def build_parser():
    parser = argparse.ArgumentParser(description="Детекция на отдельных картинках с сохранением результата")
    parser.add_argument("images", nargs="+", help="Пути к картинкам")
    parser.add_argument("--model", default=config.MODEL_PATH)
    parser.add_argument("--output-dir", default=config.DETECTIONS_DIR,
                        help="Куда сохранять картинки с нарисованными рамками")
    parser.add_argument("--stride", type=int, default=config.DETECTION_STRIDE)
    parser.add_argument("--scale", type=float, default=config.DETECTION_PYRAMID_SCALE)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def run_detection(detector, image_paths, output_dir, stride, scale):
    os.makedirs(output_dir, exist_ok=True)
    for image_path in image_paths:
        image = read_image(image_path)
        if image is None:
            continue

        start_time = time.time()
        detections = detector.detect(image, stride=stride, scale=scale)
        elapsed = time.time() - start_time

        print(f"{image_path}: найдено {len(detections)} объектов за {elapsed:.3f} сек")
        for det in detections:
            print(f"  x={det.x} y={det.y} w={det.width} h={det.height} score={det.score:.4f}")

        save_path = os.path.join(output_dir, f"detected_{os.path.basename(image_path)}")
        if not cv2.imwrite(save_path, draw_detections(image, detections)):
            print(f"Предупреждение: Не удалось сохранить {save_path}")


if __name__ == "__main__":
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    detector = load_detector(args.model)
    if detector is None:
        print("Критическая ошибка: Детектор не был загружен. Запуск детекции невозможен.")
        sys.exit(1)

    run_detection(detector, args.images, args.output_dir, args.stride, args.scale)
