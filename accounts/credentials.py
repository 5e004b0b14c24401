import secrets

from .models import User

UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWER = "abcdefghijklmnopqrstuvwxyz"
DIGITS = "0123456789"
SPECIAL = "!@#$%&*"


def generate_password(length: int = 8) -> str:
    """Random password with at least one upper, lower, digit and special char."""
    rng = secrets.SystemRandom()
    chars = [
        rng.choice(UPPER),
        rng.choice(LOWER),
        rng.choice(DIGITS),
        rng.choice(SPECIAL),
    ]
    pool = UPPER + LOWER + DIGITS + SPECIAL
    chars += [rng.choice(pool) for _ in range(max(length, 4) - len(chars))]
    rng.shuffle(chars)
    return "".join(chars)


def student_username(student_id: str) -> str:
    return f"student_{student_id}"


def parent_username(student_id: str) -> str:
    return f"parent_{student_id}"


def id_username(code: str) -> str:
    """TCH-2025-001 -> tch2025001"""
    return code.replace("-", "").lower()


def unique_username(base: str) -> str:
    """`base`, or `base` plus the first free numeric suffix."""
    username, counter = base, 1
    while User.objects.filter(username=username).exists():
        username = f"{base}{counter}"
        counter += 1
    return username
