# hogsvm/config.py

import os  # Пути к данным и результатам

# --- Пути проекта ---
# Корень проекта - на уровень выше папки пакета
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DATA_DIR = os.path.join(PROJECT_ROOT, 'data')
# XML-аннотации в формате imglab: <image file=...><box top left width height ignore/></image>
TRAIN_ANNOTATION_PATH = os.path.join(DATA_DIR, 'train', 'annotations.xml')
TEST_ANNOTATION_PATH = os.path.join(DATA_DIR, 'test', 'annotations.xml')
# Папка с фоновыми картинками (без объектов), обходится рекурсивно
NEGATIVE_IMAGE_DIR = os.path.join(DATA_DIR, 'negative')

OUTPUT_DIR = os.path.join(PROJECT_ROOT, 'output')
MODELS_DIR = os.path.join(OUTPUT_DIR, 'models')
DETECTIONS_DIR = os.path.join(OUTPUT_DIR, 'detections')
MODEL_PATH = os.path.join(MODELS_DIR, 'hog_svm_detector.joblib')


# --- Параметры HOG ---
# winSize здесь нет: размер окна вычисляется по аннотациям (см. data_preparation.choose_window_size)
HOG_PARAMS = {
    'blockSize': (16, 16),
    'blockStride': (8, 8),
    'cellSize': (8, 8),
    'nbins': 9,
    'derivAperture': 1,
    'winSigma': -1.0,
    'histogramNormType': 0,  # L2Hys
    'L2HysThreshold': 0.2,
    'gammaCorrection': False,
    'nlevels': 64,
    'signedGradients': False,
}

# --- Выбор размера окна ---
# Шаг сетки окна берется из HOG_PARAMS (НОК cellSize и blockStride по каждой оси).
# Делитель среднего размера: None - равен шагу сетки, окно совпадает со средней рамкой;
# 16 при шаге 8 - окно в половину средней рамки
WINDOW_BLOCK_UNIT = None

# --- Параметры SVM ---
SVM_C = 1.0           # Регуляризация "мягкого" обучения
SVM_DUAL = True       # Признаков намного больше, чем сэмплов
SVM_MAX_ITER = 10000
SVM_TOL = 1e-3

# --- Бутстрэппинг ---
USE_FLIP = False      # Добавлять зеркальные копии позитивов
MINING_ROUNDS = 1     # Сколько раз искать hard negatives
RANDOM_SEED = 42
FEATURE_N_JOBS = 1

# --- Детекция ---
DETECTION_STRIDE = 8
DETECTION_PYRAMID_SCALE = 1.15
NMS_THRESHOLD = 0.3
# Сколько окон описывать HOG за один вызов (ограничивает память)
DETECTION_BATCH_SIZE = 256

# --- Оценка ---
IOU_MATCH_THRESHOLD = 0.5


def ensure_output_dirs():
    """Создает папки для модели и картинок с детекциями, если их еще нет."""
    for path in (MODELS_DIR, DETECTIONS_DIR):
        os.makedirs(path, exist_ok=True)
