from .ply_3dgs import Ply3DGSFormat
from .sog import SogFormat
from .sinks import BundleSink, DirectorySink, open_sink

__all__ = [
    'Ply3DGSFormat',
    'SogFormat',
    'BundleSink',
    'DirectorySink',
    'open_sink'
]
