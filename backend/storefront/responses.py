"""Success envelope shared by every storefront route."""

from typing import Any


def api_response(data: Any = None, message: str = "Success", status_code: int = 200) -> dict:
    return {
        "statusCode": status_code,
        "success": True,
        "message": message,
        "data": data,
    }
