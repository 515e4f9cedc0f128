"""
Path utilities for the valid observation frequency pipeline.

Author: Diego Bengochea
"""

import re
from pathlib import Path
from typing import Union


def ensure_directory(path: Union[str, Path], parents: bool = True) -> Path:
    """
    Ensure directory exists, creating it if necessary.

    Examples:
        >>> output_dir = ensure_directory("results/histograms")
    """
    path = Path(path)
    path.mkdir(parents=parents, exist_ok=True)
    return path


def safe_filename(name: str) -> str:
    """
    Replace characters that are not portable in file names.

    Examples:
        >>> safe_filename("S2 ValidObs 2019/7")
        'S2_ValidObs_2019_7'
    """
    return re.sub(r'[^A-Za-z0-9._-]+', '_', name).strip('_')
