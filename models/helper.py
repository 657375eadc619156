import secrets
import string
from typing import Callable


_ALPHABET = string.ascii_lowercase + string.digits


def id_generator(prefix: str, length: int) -> Callable[[], str]:
    """Build a default_factory producing ids like `task_x8k2m0q1zt`."""
    def generate() -> str:
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
        return f"{prefix}_{suffix}"
    return generate
