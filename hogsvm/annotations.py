# hogsvm/annotations.py

import logging
import os
import xml.etree.ElementTree as ET  # Разбор XML-аннотаций (формат imglab)

from hogsvm.structures import AnnotatedBox, AnnotatedImage

logger = logging.getLogger(__name__)


# --- XML-аннотации (imglab) ---

def load_xml_annotations(annotation_path):
    """
    Читает XML-файл аннотаций вида:

        <dataset><images>
          <image file='img/0001.jpg'>
            <box top='10' left='20' width='100' height='200' ignore='0'/>
          </image>
        </images></dataset>

    Пути к картинкам считаются относительно папки, где лежит сам XML.
    Битые элементы пропускаются с предупреждением.

    Args:
        annotation_path (str): Путь к XML-файлу.

    Returns:
        list[AnnotatedImage]: По одной записи на каждый <image>.
                              Пустой список, если файл не читается.
    """
    try:
        tree = ET.parse(annotation_path)
    except (OSError, ET.ParseError) as e:
        logger.error("Не удалось прочитать аннотации %s: %s", annotation_path, e)
        return []

    base_dir = os.path.dirname(os.path.abspath(annotation_path))
    images_node = tree.getroot().find('images')
    if images_node is None:
        logger.warning("В %s нет элемента <images>", annotation_path)
        return []

    records = []
    for image_node in images_node.findall('image'):
        filename = image_node.get('file')
        if not filename:
            logger.warning("Элемент <image> без атрибута file в %s. Пропускаем.", annotation_path)
            continue

        boxes = []
        for box_node in image_node.findall('box'):
            box = _parse_box(box_node)
            if box is None:
                logger.warning("Неверная рамка у %s: %s. Пропускаем.", filename, box_node.attrib)
                continue
            boxes.append(box)

        records.append(AnnotatedImage(path=os.path.join(base_dir, filename), boxes=tuple(boxes)))

    logger.info("Загружено %d записей аннотаций из %s", len(records), annotation_path)
    return records


def _parse_box(node):
    try:
        top = int(node.get('top'))
        left = int(node.get('left'))
        width = int(node.get('width'))
        height = int(node.get('height'))
        ignore = int(node.get('ignore', 0))
    except (TypeError, ValueError):
        return None
    if width <= 0 or height <= 0:
        return None
    return AnnotatedBox(top=top, left=left, width=width, height=height, ignore=bool(ignore))
