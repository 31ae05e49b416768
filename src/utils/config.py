"""Configuration loader.

Reads filter configuration files in YAML format and returns a
dictionary.  The keys understood by the noise filter are documented in
`src.noise_filter.config.FilterConfig.from_dict`.
"""

from pathlib import Path
from typing import Any, Dict

import yaml


def load_config(path: str) -> Dict[str, Any]:
    """Load a YAML configuration file into a dictionary.

    Parameters
    ----------
    path : str
        Path to the YAML configuration file.

    Returns
    -------
    dict
        Parsed configuration dictionary.  An empty file yields an empty
        dict.

    Raises
    ------
    FileNotFoundError
        If `path` does not point to a file.
    ValueError
        If the document does not contain a mapping at the top level.
    """
    cfg_path = Path(path)
    if not cfg_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {cfg_path}")
    with open(cfg_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{cfg_path}: expected a mapping at the top level")
    return data
