# api_fastapi.py

import logging

import cv2
import numpy as np

# --- FastAPI ---
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from hogsvm import config
from hogsvm.detection import load_detector

logger = logging.getLogger(__name__)

app = FastAPI(
    title="HOG+SVM Detector API",
    description="Детекция объектов скользящим окном HOG + линейный SVM.",
    version="1.0.0"
)

# Детектор загружается один раз при старте; None - модель не загрузилась,
# тогда /predict отвечает 500, а /health - 503
detector = load_detector(config.MODEL_PATH)
if detector is None:
    logger.error("Detector failed to load from %s", config.MODEL_PATH)


@app.post("/predict",
          summary="Найти объекты на изображении",
          tags=["Detection"])
async def predict(image: UploadFile = File(..., description="Изображение (jpg, png и т.д.)"),
                  stride: int = config.DETECTION_STRIDE,
                  scale: float = config.DETECTION_PYRAMID_SCALE):
    """
    Принимает файл изображения и возвращает найденные рамки.

    - **image**: Файл изображения.
    - **stride**: Шаг скользящего окна.
    - **scale**: Коэффициент пирамиды изображений (> 1).
    """
    if detector is None:
        raise HTTPException(status_code=500, detail="Detector model is not loaded or failed to load.")

    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {image.content_type}. Please upload an image."
        )

    try:
        contents = await image.read()
        img_cv = cv2.imdecode(np.frombuffer(contents, np.uint8), cv2.IMREAD_COLOR)
        if img_cv is None:
            raise HTTPException(
                status_code=400,
                detail="Could not decode image file. Ensure it's a valid image format supported by OpenCV."
            )

        try:
            detections = detector.detect(img_cv, stride=stride, scale=scale)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        return {
            "success": True,
            "error": None,
            "count": len(detections),
            "detections": [
                {"x": d.x, "y": d.y, "width": d.width, "height": d.height, "score": d.score}
                for d in detections
            ],
        }
    finally:
        await image.close()


@app.get("/health",
         summary="Проверить статус API",
         tags=["Health"])
async def health_check():
    """Возвращает статус загрузки модели."""
    if detector is not None:
        return {
            "status": "OK",
            "message": "Detector is loaded.",
            "window_size": list(detector.model.window_size),
        }
    return JSONResponse(
        status_code=503,
        content={"status": "Error", "message": "Detector failed to load."}
    )


if __name__ == "__main__":
    print("To run the FastAPI application, use the command:")
    print("uvicorn api_fastapi:app --reload --host 0.0.0.0 --port 8000")
