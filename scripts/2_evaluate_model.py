# scripts/2_evaluate_model.py

import argparse
import logging
import os
import sys
import time

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

from hogsvm import config
from hogsvm.annotations import load_xml_annotations
from hogsvm.detection import load_detector
from hogsvm.evaluation import evaluate


def build_parser():
    parser = argparse.ArgumentParser(description="Оценка детектора: precision / recall / F1 по IoU")
    parser.add_argument("--annotations", default=config.TEST_ANNOTATION_PATH,
                        help="XML-аннотации тестового набора")
    parser.add_argument("--model", default=config.MODEL_PATH)
    parser.add_argument("--stride", type=int, default=config.DETECTION_STRIDE)
    parser.add_argument("--scale", type=float, default=config.DETECTION_PYRAMID_SCALE)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    detector = load_detector(args.model)
    if detector is None:
        print("Ошибка: Не удалось загрузить детектор. Оценка невозможна.")
        sys.exit(1)

    start_time = time.time()
    result = evaluate(detector, load_xml_annotations(args.annotations), stride=args.stride, scale=args.scale)

    print("-" * 30)
    print("Результаты оценки:")
    print(f"Precision: {result.precision:.5f}")
    print(f"Recall: {result.recall:.5f}")
    print(f"F1 score: {result.f1:.5f}")
    print(f"Время оценки: {time.time() - start_time:.2f} сек")
    print("-" * 30)
