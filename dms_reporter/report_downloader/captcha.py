from __future__ import annotations

import asyncio
import io
import re
from typing import Awaitable, Callable

import pytesseract
from PIL import Image

from .errors import CaptchaUnreadable

MIN_CAPTCHA_LENGTH = 4
DIGIT_WHITELIST_CONFIG = "--psm 7 -c tessedit_char_whitelist=0123456789"

# image bytes -> recognized text
OcrReader = Callable[[bytes], Awaitable[str]]


def normalize_code(text: str | None) -> str:
    return re.sub(r"\s", "", text or "")


def validate_code(code: str, *, min_length: int = MIN_CAPTCHA_LENGTH) -> str:
    if not code or len(code) < min_length:
        raise CaptchaUnreadable(code, min_length=min_length)
    return code


class TesseractDigitReader:
    """Digits-only Tesseract OCR for the login CAPTCHA."""

    def __init__(self, *, config: str = DIGIT_WHITELIST_CONFIG, lang: str = "eng") -> None:
        self.config = config
        self.lang = lang

    def read(self, image: bytes) -> str:
        with Image.open(io.BytesIO(image)) as img:
            text = pytesseract.image_to_string(img.convert("L"), lang=self.lang, config=self.config)
        return normalize_code(text)

    async def __call__(self, image: bytes) -> str:
        return await asyncio.to_thread(self.read, image)
