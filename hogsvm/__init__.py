# hogsvm/__init__.py
# Детектор объектов HOG + линейный SVM с бутстрэппингом (hard negative mining).

__version__ = "1.0.0"
