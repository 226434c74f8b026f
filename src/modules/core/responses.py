"""Success envelope shared by every API view."""

from __future__ import annotations

from typing import Any, Optional

from rest_framework import status
from rest_framework.response import Response


def success(
    data: Any = None,
    status_code: int = status.HTTP_200_OK,
    message: Optional[str] = None,
) -> Response:
    body = {"status": "success", "data": data}
    if message:
        body["message"] = message
    return Response(body, status=status_code)
