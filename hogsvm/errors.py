# hogsvm/errors.py


class HogSvmError(Exception):
    """Базовое исключение пайплайна обучения и детекции."""


class ConfigurationError(HogSvmError):
    """Невозможно вычислить параметры пайплайна (например, размер окна без рамок)."""


class InsufficientDataError(HogSvmError):
    """Нет позитивных или негативных сэмплов для обучения."""


class TrainingError(HogSvmError):
    """SVM не сошелся или набор меток некорректен."""


class ModelFormatError(HogSvmError):
    """Сохраненная модель повреждена или имеет неизвестный формат."""


class DivisionUndefined(HogSvmError):
    """Метрика оценки не определена: знаменатель равен нулю."""
