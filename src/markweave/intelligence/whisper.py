"""Media transcription through the OpenAI Whisper endpoint."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, BinaryIO, Optional

from markweave.convert.descriptor import InputDescriptor
from markweave.convert.errors import (
    AuthorizationFailedError,
    is_authorization_failure,
)
from markweave.core.ai import load_client

from .providers import ProviderRequest, Transcript, TranscriptSegment

DEFAULT_MODEL = "whisper-1"


class WhisperTranscriptionProvider:
    """Requests ``verbose_json`` so the transcript keeps segment timings."""

    provider_name = "openai"

    def __init__(
        self, *, model: str = DEFAULT_MODEL, client: Any | None = None
    ) -> None:
        self._model = model
        self._client = client if client is not None else load_client()

    def transcribe(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        request: Optional[ProviderRequest] = None,
    ) -> Optional[Transcript]:
        file_name = descriptor.file_name or f"audio{descriptor.extension or '.mp3'}"
        params: dict[str, Any] = {
            "model": (request.model if request and request.model else self._model),
            "file": (file_name, stream),
            "response_format": "verbose_json",
        }
        if request is not None and request.language:
            params["language"] = request.language
        if request is not None and request.prompt:
            params["prompt"] = request.prompt

        try:
            response = self._client.audio.transcriptions.create(**params)
        except Exception as exc:
            if is_authorization_failure(exc):
                raise AuthorizationFailedError(
                    f"OpenAI rejected the transcription request: {exc}",
                    provider=self.provider_name,
                ) from exc
            raise

        return _to_transcript(response)


def _field(source: Any, name: str) -> Any:
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def _seconds(value: Any) -> Optional[timedelta]:
    if value is None:
        return None
    return timedelta(seconds=float(value))


def _to_transcript(response: Any) -> Optional[Transcript]:
    if isinstance(response, str):
        text = response.strip()
        if not text:
            return None
        return Transcript(segments=(TranscriptSegment(text=text),))

    raw_segments = _field(response, "segments") or []
    segments = [
        TranscriptSegment(
            text=str(_field(item, "text") or "").strip(),
            start=_seconds(_field(item, "start")),
            end=_seconds(_field(item, "end")),
        )
        for item in raw_segments
    ]
    segments = [segment for segment in segments if segment.text]
    if not segments:
        text = str(_field(response, "text") or "").strip()
        if not text:
            return None
        segments = [
            TranscriptSegment(
                text=text,
                start=timedelta(0),
                end=_seconds(_field(response, "duration")),
            )
        ]
    return Transcript(
        segments=tuple(segments),
        language=_field(response, "language"),
        duration=_seconds(_field(response, "duration")),
    )


__all__ = ["DEFAULT_MODEL", "WhisperTranscriptionProvider"]
