"""Success envelope for API responses"""
from typing import Any, Optional


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict:
    """
    Build {success: true, data, message?}

    Extra keyword arguments are added at the top level (e.g. generated_at).
    """
    body: dict = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body
