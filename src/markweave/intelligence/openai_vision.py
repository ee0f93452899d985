"""Image understanding backed by OpenAI chat completions."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, BinaryIO, Optional

from markweave.convert.descriptor import InputDescriptor
from markweave.convert.errors import (
    AuthorizationFailedError,
    is_authorization_failure,
)
from markweave.core.ai import load_client
from markweave.core.logging import get_logger

from .providers import ImageInsight, ProviderRequest, require_content_type

DEFAULT_MODEL = "gpt-4o-mini"

_SYSTEM_PROMPT = (
    "You describe images extracted from documents so that a text-only "
    "reader loses nothing. Reply with a JSON object using the keys "
    "'description' (detailed prose), 'caption' (one short line), "
    "'visible_text' (all legible text, one item per line), and 'mermaid' "
    "(Mermaid code when the image is a diagram or chart, else empty)."
)


class OpenAIImageProvider:
    """Sends each image inline as a data URL and parses a JSON answer."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        client: Any | None = None,
        max_tokens: int = 1024,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._model = model
        self._client = client if client is not None else load_client()
        self._max_tokens = max_tokens
        self._logger = get_logger(__name__, logger)

    def analyze(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        request: Optional[ProviderRequest] = None,
    ) -> Optional[ImageInsight]:
        mime = require_content_type(descriptor)
        payload = base64.b64encode(stream.read()).decode("ascii")
        if not payload:
            return None

        prompt = "Describe this image."
        if request is not None and request.prompt:
            prompt = request.prompt
        model = (request.model if request and request.model else self._model)

        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:{mime};base64,{payload}"
                                },
                            },
                        ],
                    },
                ],
                response_format={"type": "json_object"},
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            if is_authorization_failure(exc):
                raise AuthorizationFailedError(
                    f"OpenAI rejected the image analysis request: {exc}",
                    provider=self.provider_name,
                ) from exc
            raise

        content = (response.choices[0].message.content or "").strip()
        if not content:
            return None
        return _parse_insight(content)


def _parse_insight(content: str) -> ImageInsight:
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return ImageInsight(description=content)
    if not isinstance(data, dict):
        return ImageInsight(description=content)

    visible = data.get("visible_text")
    if isinstance(visible, list):
        visible = "\n".join(str(item) for item in visible if str(item).strip())
    return ImageInsight(
        description=_text(data.get("description")),
        caption=_text(data.get("caption")),
        recognized_text=_text(visible),
        diagram_code=_text(data.get("mermaid")),
    )


def _text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["DEFAULT_MODEL", "OpenAIImageProvider"]
