from abc import ABC, abstractmethod
import numpy as np

class BaseFormat(ABC):
    @abstractmethod
    def read(self, path: str, **kwargs) -> np.ndarray:
        """
        Reads the file and returns a structured numpy array.

        Args:
            path (str): Path to the file.
            **kwargs: Additional arguments.

        Returns:
            np.ndarray: Structured numpy array of splat vertices.
        """
        pass

    @abstractmethod
    def write(self, data, path: str, **kwargs):
        """
        Writes splat data to the file.

        Args:
            data: Structured numpy array or PointSet.
            path (str): Path to the output file.
            **kwargs: Format specific options.
        """
        pass
