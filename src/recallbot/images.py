from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

IMAGE_NAME = "question.png"


class ImageStore:
    """Rendered question images, one directory per question id."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, question_id: int) -> Path:
        return self.root / str(question_id) / IMAGE_NAME

    def exists(self, question_id: int) -> bool:
        return self.path_for(question_id).is_file()

    def save(self, question_id: int, image: bytes) -> Path:
        path = self.path_for(question_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(image)
        tmp.replace(path)
        return path

    def delete(self, question_id: int) -> None:
        path = self.path_for(question_id)
        try:
            path.unlink(missing_ok=True)
            if path.parent.is_dir() and not any(path.parent.iterdir()):
                path.parent.rmdir()
        except OSError as exc:
            logger.warning("image_delete_failed question_id=%s err=%s", question_id, exc)
