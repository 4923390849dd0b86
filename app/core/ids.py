import uuid
from typing import Callable


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def id_default(prefix: str) -> Callable[[], str]:
    """Column default: mapped_column(..., default=id_default("lst"))."""
    return lambda: gen_id(prefix)
