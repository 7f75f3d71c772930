"""
YAML Reference Loader

Loads the data-driven reference tables (regions, property types, risk
brackets, scoring weights) from YAML files so that operators can retune the
scoring engine without touching code.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional


class YamlLoader:
    """
    Loads and caches YAML files from a single directory.

    Attributes:
        base_dir (Path): Directory containing the YAML files
        _cache (Dict): Parsed files keyed by filename
    """

    def __init__(self, base_dir: Optional[str] = None):
        """
        Args:
            base_dir: Directory to read from. Defaults to config/reference under the project root.
        """
        if base_dir is None:
            project_root = Path(__file__).parent.parent.parent
            self.base_dir = project_root / "config" / "reference"
        else:
            self.base_dir = Path(base_dir)

        self._cache: Dict[str, Dict[str, Any]] = {}

    def load_file(self, filename: str) -> Dict[str, Any]:
        """
        Load a YAML file and cache it.

        Raises:
            FileNotFoundError: If the file doesn't exist
            yaml.YAMLError: If the file contains invalid YAML
        """
        if filename in self._cache:
            return self._cache[filename]

        file_path = self.base_dir / filename

        if not file_path.exists():
            raise FileNotFoundError(f"Reference file not found: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing YAML file {filename}: {e}")

        self._cache[filename] = content
        return content

    def get(self, filename: str, key_path: str, default: Any = None) -> Any:
        """
        Fetch a nested value using a dotted key path.

        Example:
            >>> loader = YamlLoader()
            >>> loader.get("scoring.yaml", "weights.profitability")
            0.4
        """
        value: Any = self.load_file(filename)

        for key in key_path.split('.'):
            if not isinstance(value, dict) or key not in value:
                if default is not None:
                    return default
                raise KeyError(f"Key '{key_path}' not found in {filename}")
            value = value[key]

        return value

    def clear_cache(self):
        """Clear the internal cache of loaded files."""
        self._cache.clear()
