"""Built-in format converters."""

from __future__ import annotations

from .analyzed import DocumentAnalysisConverter
from .archive import ZipConverter
from .audio import AudioConverter
from .base import (
    GENERIC_FORMAT,
    SPECIFIC_FORMAT,
    BaseConverter,
    ConverterOutput,
    import_optional,
    peek,
)
from .csv_table import CsvConverter
from .epub import EpubConverter
from .image import ImageConverter
from .json_doc import JsonConverter
from .markitdown_backend import MarkItDownConverter
from .text import PlainTextConverter


def builtin_converters(*, document_analysis: bool = False) -> list[BaseConverter]:
    """Fresh instances of the built-in converters.

    ``document_analysis`` adds the provider-backed layout converter, which
    only works when a document provider is configured.
    """

    converters: list[BaseConverter] = [
        MarkItDownConverter(),
        EpubConverter(),
        CsvConverter(),
        JsonConverter(),
        ImageConverter(),
        AudioConverter(),
        ZipConverter(),
        PlainTextConverter(),
    ]
    if document_analysis:
        converters.insert(0, DocumentAnalysisConverter())
    return converters


__all__ = [
    "AudioConverter",
    "BaseConverter",
    "ConverterOutput",
    "CsvConverter",
    "DocumentAnalysisConverter",
    "EpubConverter",
    "GENERIC_FORMAT",
    "ImageConverter",
    "JsonConverter",
    "MarkItDownConverter",
    "PlainTextConverter",
    "SPECIFIC_FORMAT",
    "ZipConverter",
    "builtin_converters",
    "import_optional",
    "peek",
]
