import secrets
from authlink.core.config import settings

"""Pairing code generation: short, human-transcribable codes drawn from an unambiguous alphabet"""


# No 0/O or 1/I, so a code read off a screen can be typed back reliably
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

def generate_code(length: int | None = None) -> str:
    """
    Samples `length` characters uniformly, with replacement, from ALPHABET.
    Uses the `secrets` CSPRNG: a predictable code would let an attacker
    hijack somebody else's pairing.
    """
    if length is None:
        length = settings.CODE_LENGTH
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def normalize_code(raw: str) -> str:
    return raw.strip().upper()
