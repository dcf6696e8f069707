"""Accept-Language detection middleware."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from saleledger.app.core.i18n import SUPPORTED_LANGUAGES

_DEFAULT = "en"


class LanguageMiddleware(BaseHTTPMiddleware):
    """Parse ``Accept-Language`` and expose ``request.state.language``.

    Error bodies are rendered in English or Spanish; the resolved language is
    echoed back via the ``Content-Language`` response header.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        language = parse_preferred(request.headers.get("Accept-Language", ""))
        request.state.language = language

        response = await call_next(request)
        response.headers["Content-Language"] = language
        return response


def parse_preferred(header: str) -> str:
    """Return the best supported language from an Accept-Language header.

    Quality weights are honoured; ties keep header order.
    """
    candidates: list[tuple[float, int, str]] = []
    for index, part in enumerate(header.split(",")):
        pieces = part.strip().split(";")
        tag = pieces[0].strip().lower()
        if not tag:
            continue
        weight = 1.0
        for param in pieces[1:]:
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    weight = float(value)
                except ValueError:
                    weight = 0.0
        candidates.append((-weight, index, tag))

    for neg_weight, _, tag in sorted(candidates):
        if neg_weight == 0:
            continue
        # Match full tag or primary subtag (e.g. "es-CO" → "es")
        if tag in SUPPORTED_LANGUAGES:
            return tag
        primary = tag.split("-")[0]
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return _DEFAULT
