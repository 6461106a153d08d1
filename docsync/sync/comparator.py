"""
Byte-for-byte comparison of two renditions on disk.
"""

from pathlib import Path
from typing import Union

from .error_tracker import ComparisonError

CHUNK_SIZE = 4096


def files_equal(path_a: Union[str, Path], path_b: Union[str, Path], chunk_size: int = CHUNK_SIZE) -> bool:
    """
    Compare two files chunk by chunk without loading either one fully.

    Returns False as soon as a chunk or the length differs, True only once
    both files are exhausted together.

    Raises:
        ComparisonError: If either file cannot be opened or read
    """
    try:
        with open(path_a, 'rb') as file_a, open(path_b, 'rb') as file_b:
            while True:
                chunk_a = file_a.read(chunk_size)
                chunk_b = file_b.read(chunk_size)
                if chunk_a != chunk_b:
                    return False
                if not chunk_a:
                    return True
    except OSError as e:
        raise ComparisonError(f"Failed to compare {path_a} and {path_b}: {e}")
