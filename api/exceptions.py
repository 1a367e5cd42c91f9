import logging

from django.core.exceptions import ObjectDoesNotExist
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.services.errors import LeviError

logger = logging.getLogger(__name__)


def _flatten(detail):
    if isinstance(detail, dict):
        parts = []
        for key, value in detail.items():
            text = _flatten(value)
            parts.append(text if key == "non_field_errors" else f"{key}: {text}")
        return "; ".join(parts)
    if isinstance(detail, list):
        return " ".join(_flatten(item) for item in detail)
    return str(detail)


def levi_exception_handler(exc, context):
    """Render every error as a ``{"title", "detail"}`` body."""
    if isinstance(exc, LeviError):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.title, exc.detail)
        return Response(exc.to_dict(), status=exc.status_code)
    if isinstance(exc, ObjectDoesNotExist):
        return Response({"title": "Nao encontrado", "detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, ValueError):
        return Response({"title": "Dados invalidos", "detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None
    title = "Dados invalidos" if isinstance(exc, ValidationError) else "Erro"
    data = response.data
    if isinstance(data, dict) and "detail" in data:
        data = data["detail"]
    response.data = {"title": title, "detail": _flatten(data)}
    return response
