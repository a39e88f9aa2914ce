__version__ = '0.3'

from .structures import PointSet
from .exporter import (
    ExportCancelled,
    ExportResult,
    SogCodecError,
    SogInputError,
    SogWriteOptions,
    write_sog,
)
from .formats.sog import SogFormat

__all__ = [
    'PointSet',
    'ExportCancelled',
    'ExportResult',
    'SogCodecError',
    'SogInputError',
    'SogWriteOptions',
    'write_sog',
    'SogFormat',
]
