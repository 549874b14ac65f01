from typing import Any

from fastapi import Request


def extract_request(*args: Any, **kwargs: Any) -> Request | None:
    """Find the Request among endpoint args/kwargs."""
    for arg in args:
        if isinstance(arg, Request):
            return arg

    for value in kwargs.values():
        if isinstance(value, Request):
            return value

    return None
