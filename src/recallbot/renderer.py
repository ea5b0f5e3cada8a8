"""Question card rendering with Pillow.

Draws the question text and lettered options on a dark card and returns PNG
bytes. Pure CPU work; async callers should run it in a worker thread.
"""
from __future__ import annotations

import io
import logging
import string

from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

WIDTH = 1200
PADDING = 60
OPTION_GAP = 22
OPTION_PADDING = 22
BACKGROUND = "#212121"
OPTION_BACKGROUND = "#333333"
TEXT_COLOR = "#ececec"
LABEL_COLOR = "#a0a0a0"


def option_label(index: int) -> str:
    return string.ascii_uppercase[index] if index < 26 else str(index + 1)


def _wrap(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> list[str]:
    lines: list[str] = []
    for paragraph in (text or "").splitlines() or [""]:
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if draw.textlength(candidate, font=font) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


class QuestionRenderer:
    def __init__(self, font_path: str | None = None, *, question_size: int = 42, option_size: int = 36):
        self.question_font = self._load_font(font_path, question_size)
        self.option_font = self._load_font(font_path, option_size)

    @staticmethod
    def _load_font(font_path: str | None, size: int):
        if font_path:
            try:
                return ImageFont.truetype(font_path, size)
            except OSError as exc:
                logger.warning("font_load_failed path=%s err=%s", font_path, exc)
        return ImageFont.load_default(size=size)

    def _line_height(self, font) -> int:
        left, top, right, bottom = font.getbbox("Ag")
        return int((bottom - top) * 1.45)

    def render(self, text: str, options: list[str]) -> bytes:
        scratch = ImageDraw.Draw(Image.new("RGB", (1, 1)))
        inner = WIDTH - 2 * PADDING
        label_width = int(scratch.textlength("W) ", font=self.option_font))

        q_lines = _wrap(scratch, text, self.question_font, inner)
        q_lh = self._line_height(self.question_font)
        o_lh = self._line_height(self.option_font)
        wrapped_options = [
            _wrap(scratch, opt, self.option_font, inner - 2 * OPTION_PADDING - label_width)
            for opt in options
        ]

        height = PADDING + len(q_lines) * q_lh + PADDING // 2
        for lines in wrapped_options:
            height += len(lines) * o_lh + 2 * OPTION_PADDING + OPTION_GAP
        height += PADDING

        image = Image.new("RGB", (WIDTH, height), BACKGROUND)
        draw = ImageDraw.Draw(image)
        y = PADDING
        for line in q_lines:
            draw.text((PADDING, y), line, font=self.question_font, fill=TEXT_COLOR)
            y += q_lh
        y += PADDING // 2

        for idx, lines in enumerate(wrapped_options):
            box_height = len(lines) * o_lh + 2 * OPTION_PADDING
            draw.rounded_rectangle(
                (PADDING, y, WIDTH - PADDING, y + box_height),
                radius=12,
                fill=OPTION_BACKGROUND,
            )
            text_y = y + OPTION_PADDING
            draw.text(
                (PADDING + OPTION_PADDING, text_y),
                f"{option_label(idx)})",
                font=self.option_font,
                fill=LABEL_COLOR,
            )
            for line in lines:
                draw.text(
                    (PADDING + OPTION_PADDING + label_width, text_y),
                    line,
                    font=self.option_font,
                    fill=TEXT_COLOR,
                )
                text_y += o_lh
            y += box_height + OPTION_GAP

        buf = io.BytesIO()
        image.save(buf, format="PNG", optimize=True)
        return buf.getvalue()
