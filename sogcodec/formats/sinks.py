import os
import shutil
import tempfile
import zipfile
from abc import ABC, abstractmethod
from ..utils.utility_functions import debug_print

BUNDLE_EXTENSION = '.sog'
MANIFEST_NAME = 'meta.json'

class SinkError(OSError):
    """A named blob or the finished archive could not be written."""

class BaseSink(ABC):
    """
    Destination for the named blobs of one export.

    Nothing appears at the final location until commit(). abort() removes
    everything written so far. Used as a context manager, an exception
    inside the block aborts the sink.
    """
    manifest_name = MANIFEST_NAME

    def __init__(self, path):
        self.path = path
        self.names = []
        self.closed = False

    @abstractmethod
    def _write(self, name: str, data: bytes) -> None:
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _abort(self) -> None:
        pass

    def write_named_blob(self, name: str, data: bytes) -> None:
        if self.closed:
            raise SinkError(f"Cannot write '{name}': sink for {self.path} is closed")
        try:
            self._write(name, data)
        except OSError as e:
            raise SinkError(f"Failed to write {name}: {e}") from e
        self.names.append(name)
        debug_print(f"[DEBUG] wrote '{name}' ({len(data)} bytes)")

    def commit(self):
        if self.closed:
            return
        try:
            self._commit()
        except OSError as e:
            self._abort()
            raise SinkError(f"Failed to finalize {self.path}: {e}") from e
        finally:
            self.closed = True

    def abort(self):
        if self.closed:
            return
        self.closed = True
        self._abort()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.abort()
        else:
            self.commit()
        return False

class BundleSink(BaseSink):
    """Single ZIP container. WebP is already compressed, so entries are stored."""

    def __init__(self, path):
        super().__init__(path)
        directory = os.path.dirname(os.path.abspath(path))
        fd, self.temp_path = tempfile.mkstemp(prefix='.' + os.path.basename(path) + '.', suffix='.tmp', dir=directory)
        os.close(fd)
        self.zf = zipfile.ZipFile(self.temp_path, 'w', zipfile.ZIP_STORED)

    def _write(self, name, data):
        self.zf.writestr(name, data)

    def _commit(self):
        self.zf.close()
        os.replace(self.temp_path, self.path)

    def _abort(self):
        self.zf.close()
        if os.path.exists(self.temp_path):
            os.remove(self.temp_path)

class DirectorySink(BaseSink):
    """Loose image files plus a sidecar manifest, staged in a hidden temp directory."""

    def __init__(self, directory, manifest_name=MANIFEST_NAME):
        super().__init__(directory)
        self.manifest_name = manifest_name
        self.created = not os.path.isdir(directory)
        os.makedirs(directory, exist_ok=True)
        self.staging = tempfile.mkdtemp(prefix='.sog-staging-', dir=directory)

    def _write(self, name, data):
        with open(os.path.join(self.staging, name), 'wb') as f:
            f.write(data)

    def _commit(self):
        for name in self.names:
            os.replace(os.path.join(self.staging, name), os.path.join(self.path, name))
        shutil.rmtree(self.staging, ignore_errors=True)

    def _abort(self):
        shutil.rmtree(self.staging, ignore_errors=True)
        if self.created and not os.listdir(self.path):
            os.rmdir(self.path)

def resolve_output(path):
    """
    Maps an output path to (kind, location, manifest name).

    '.sog' is a bundle; '.json' names the manifest inside a directory; a path
    without extension is the directory itself. Anything else is rejected.
    """
    path = os.fspath(path)
    ext = os.path.splitext(path)[1].lower()
    if ext == BUNDLE_EXTENSION:
        return 'bundle', path, MANIFEST_NAME
    if ext == '.json':
        return 'directory', os.path.dirname(os.path.abspath(path)), os.path.basename(path)
    if ext == '' or os.path.isdir(path):
        return 'directory', path, MANIFEST_NAME
    raise ValueError(f"Unsupported output extension '{ext}'. Use '{BUNDLE_EXTENSION}', '.json' or a directory.")

def open_sink(path) -> BaseSink:
    kind, location, manifest_name = resolve_output(path)
    try:
        if kind == 'bundle':
            return BundleSink(location)
        return DirectorySink(location, manifest_name)
    except OSError as e:
        raise SinkError(f"Cannot open output {path}: {e}") from e
