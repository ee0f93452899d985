"""Standalone image files."""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO

from ..artifacts import ArtifactCollection, ImageArtifact
from ..descriptor import InputDescriptor, mime_for_extension
from ..errors import UnsupportedFormatError
from ..references import image_token
from ..segments import MetadataKeys, Segment, SegmentType
from .base import BaseConverter, ConverterOutput

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..pipeline import ConversionContext


class ImageConverter(BaseConverter):
    """One image artifact referenced from a single image segment.

    Description and visible text are left to the enrichment pass.
    """

    name = "image"
    extensions = frozenset(
        {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".tif", ".tiff"}
    )
    mime_prefixes = ("image/",)

    def convert(
        self,
        stream: BinaryIO,
        descriptor: InputDescriptor,
        context: "ConversionContext",
    ) -> ConverterOutput:
        content_type = descriptor.mime_type or mime_for_extension(descriptor.extension)
        if not content_type or not content_type.startswith("image/"):
            raise UnsupportedFormatError("Image input needs an image content type.")
        data = stream.read()
        if not data:
            raise UnsupportedFormatError("Image input is empty.")

        artifacts = ArtifactCollection()
        label = descriptor.file_name or "Image"
        ordinal = artifacts.add_image(
            ImageArtifact(
                content_type=content_type,
                data=data,
                source=descriptor.source_identifier,
                label=label,
                segment_index=0,
                metadata={MetadataKeys.CONTENT_TYPE: content_type},
            )
        )
        segment = Segment(
            markdown=image_token(ordinal),
            type=SegmentType.IMAGE,
            number=ordinal,
            label=label,
        )
        return ConverterOutput(segments=[segment], artifacts=artifacts)


__all__ = ["ImageConverter"]
