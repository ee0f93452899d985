"""Audio transcription through the configured media provider.

Files larger than the provider upload limit are cut into ten-minute mp3
chunks with pydub (ffmpeg required) inside the conversion workspace, and the
chunk offsets are added back onto the transcript timings.
"""

from __future__ import annotations

import io
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Optional, Sequence

from ..cancellation import check_cancelled
from ..descriptor import InputDescriptor
from ..errors import ConversionFailedError
from ..segments import Segment, SegmentType
from .base import BaseConverter, ConverterOutput, import_optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from markweave.intelligence.providers import (
        MediaTranscriptionProvider,
        TranscriptSegment,
    )

    from ..pipeline import ConversionContext

MAX_UPLOAD_BYTES = 24 * 1024 * 1024
CHUNK_SECONDS = 10 * 60


class AudioConverter(BaseConverter):
    name = "audio"
    extensions = frozenset(
        {".mp3", ".wav", ".m4a", ".mp4", ".mpeg", ".mpga", ".ogg", ".oga", ".flac", ".webm"}
    )
    mime_types = frozenset({"video/mp4", "video/webm"})
    mime_prefixes = ("audio/",)

    def __init__(
        self,
        *,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        chunk_seconds: int = CHUNK_SECONDS,
    ) -> None:
        super().__init__()
        self.max_upload_bytes = max_upload_bytes
        self.chunk_seconds = chunk_seconds

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        provider = context.providers.require_media()
        source = context.source_path
        if source is not None and source.stat().st_size > self.max_upload_bytes:
            pieces = self._transcribe_chunks(provider, source, descriptor, context)
        else:
            pieces = _transcribe(provider, stream, descriptor, timedelta(0))

        segments = group_transcript(
            pieces, timedelta(seconds=context.options.audio_segment_seconds)
        )
        if not segments:
            raise ConversionFailedError("Transcription returned no text.")
        return ConverterOutput(segments=segments)

    def _transcribe_chunks(
        self,
        provider: "MediaTranscriptionProvider",
        source: Path,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> list["TranscriptSegment"]:
        pydub = import_optional("pydub", attribute="AudioSegment")
        pydub_utils = import_optional("pydub.utils", attribute="make_chunks")

        audio = pydub.AudioSegment.from_file(str(source))
        chunks = pydub_utils.make_chunks(audio, self.chunk_seconds * 1000)
        context.logger.info(
            "Split audio for transcription",
            extra={"source": descriptor.source_identifier, "chunks": len(chunks)},
        )

        pieces: list["TranscriptSegment"] = []
        for index, chunk in enumerate(chunks):
            check_cancelled(context.cancellation, "audio transcription")
            buffer = io.BytesIO()
            chunk.export(buffer, format="mp3")
            path = context.workspace.persist_bytes(
                f"audio/chunk_{index:02d}.mp3", buffer.getvalue()
            )
            chunk_descriptor = InputDescriptor(
                mime_type="audio/mpeg",
                extension=".mp3",
                file_name=path.name,
                local_path=str(path),
            )
            offset = timedelta(seconds=index * self.chunk_seconds)
            with path.open("rb") as handle:
                pieces.extend(_transcribe(provider, handle, chunk_descriptor, offset))
        return pieces


def _transcribe(
    provider: "MediaTranscriptionProvider",
    stream: BinaryIO,
    descriptor: InputDescriptor,
    offset: timedelta,
) -> list["TranscriptSegment"]:
    from markweave.intelligence.providers import TranscriptSegment

    transcript = provider.transcribe(stream, descriptor)
    if transcript is None:
        raise ConversionFailedError(
            f"Media provider returned no transcript for {descriptor.describe()}."
        )
    if not transcript.segments:
        return []
    return [
        TranscriptSegment(
            text=piece.text,
            start=None if piece.start is None else piece.start + offset,
            end=None if piece.end is None else piece.end + offset,
        )
        for piece in transcript.segments
    ]


def group_transcript(
    pieces: Sequence["TranscriptSegment"], window: timedelta
) -> list[Segment]:
    """Pack transcript pieces into audio segments spanning ``window`` each.

    Untimed pieces stay with the group before them.
    """

    groups: list[list["TranscriptSegment"]] = []
    window_end: Optional[timedelta] = None
    for piece in pieces:
        if not piece.text.strip():
            continue
        starts_new = not groups or (
            piece.start is not None
            and window_end is not None
            and piece.start >= window_end
        )
        if starts_new:
            groups.append([])
            if piece.start is not None:
                window_end = _window_end(piece.start, window)
        elif window_end is None and piece.start is not None:
            window_end = _window_end(piece.start, window)
        groups[-1].append(piece)

    segments: list[Segment] = []
    for number, group in enumerate(groups, start=1):
        starts = [piece.start for piece in group if piece.start is not None]
        ends = [piece.end for piece in group if piece.end is not None]
        start = min(starts) if starts else None
        end = max(ends) if ends else None
        if start is not None and end is not None and end < start:
            end = start
        segments.append(
            Segment(
                markdown=" ".join(piece.text.strip() for piece in group),
                type=SegmentType.AUDIO,
                number=number,
                start_time=start,
                end_time=end,
            )
        )
    return segments


def _window_end(start: timedelta, window: timedelta) -> timedelta:
    if window <= timedelta(0):
        return timedelta.max
    buckets = start // window
    return window * (buckets + 1)


__all__ = ["AudioConverter", "group_transcript"]
