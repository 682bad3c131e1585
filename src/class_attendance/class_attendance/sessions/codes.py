from __future__ import annotations

import io
import random
from typing import Optional

import qrcode

from ..core.constants import CODE_MAX, CODE_MIN

_system_random = random.SystemRandom()


def generate_code(rng: Optional[random.Random] = None) -> str:
    """Uniformly random 4-digit code. Collisions across sessions are fine."""

    return str((rng or _system_random).randint(CODE_MIN, CODE_MAX))


def render_code_qr(code: str) -> bytes:
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=2,
    )
    qr.add_data(code)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
