"""
Configuration module for rsmap.

Contains the RSMConfig dataclass with the pipeline's processing parameters
and YAML load/save helpers.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

import yaml

BACKGROUND_METHODS = ("random", "feature-distance")


@dataclass
class RSMConfig:
    """Configuration for suitability mapping.

    Parameters
    ----------
    min_dwell : float
        Minimum summed dwell time (seconds) for a cell to become a presence.
    on_outside : str
        What trajectory reduction does with points off the grid:
        "raise" or "drop".
    agg_radius : float
        Aggregation radius (grid units, e.g. meters) merging presences into
        regions.
    background_method : str
        "random" or "feature-distance".
    absence_ratio : float
        Absences requested per presence (per region).
    pca_variance : float
        Variance fraction kept by the feature-distance PCA projection.
    min_separation : float
        Feature-distance lower threshold, in standard deviations above the
        mean presence-to-centroid distance.
    max_distance_quantile : float
        Feature-distance upper cutoff, as a quantile of candidate distances.
    random_state : int
        Random seed for background sampling.
    """

    # Trajectory reduction
    min_dwell: float = 600.0  # 10 minutes of feeding
    on_outside: str = "raise"

    # Region labeling
    agg_radius: float = 250.0

    # Background sampling
    background_method: str = "feature-distance"
    absence_ratio: float = 1.0
    pca_variance: float = 0.95
    # Beyond one std of the presence spread, below the 95th candidate percentile
    min_separation: float = 1.0
    max_distance_quantile: float = 0.95
    random_state: int = 42

    def __post_init__(self):
        if self.background_method not in BACKGROUND_METHODS:
            raise ValueError(
                f"background_method must be one of {BACKGROUND_METHODS}, "
                f"got {self.background_method!r}"
            )
        if self.on_outside not in ("raise", "drop"):
            raise ValueError(f"on_outside must be 'raise' or 'drop', got {self.on_outside!r}")
        if self.agg_radius < 0:
            raise ValueError(f"agg_radius must be non-negative, got {self.agg_radius}")


# YAML section -> {yaml key: config attribute}
_SECTIONS: Dict[str, Dict[str, str]] = {
    "trajectory": {
        "min_dwell": "min_dwell",
        "on_outside": "on_outside",
    },
    "labeling": {
        "radius": "agg_radius",
    },
    "background": {
        "method": "background_method",
        "absence_ratio": "absence_ratio",
        "pca_variance": "pca_variance",
        "min_separation": "min_separation",
        "max_distance_quantile": "max_distance_quantile",
        "random_state": "random_state",
    },
}


def load_config(yaml_path: Path) -> RSMConfig:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    yaml_path : Path
        Path to YAML configuration file.

    Returns
    -------
    RSMConfig
        Configuration object with values from file.

    Raises
    ------
    FileNotFoundError
        If the YAML file does not exist.
    ValueError
        If the YAML file contains invalid configuration.
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return RSMConfig()

    return RSMConfig(**_flatten_config(data))


def save_config(config: RSMConfig, yaml_path: Path) -> None:
    """
    Save configuration to YAML file.

    Parameters
    ----------
    config : RSMConfig
        Configuration object to save.
    yaml_path : Path
        Path to output YAML file.
    """
    data = _unflatten_config(config)

    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with open(yaml_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _flatten_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten nested YAML structure to flat config dict."""
    if not isinstance(data, dict):
        raise ValueError(f"Configuration must be a mapping, got {type(data).__name__}")

    attributes = {f.name for f in fields(RSMConfig)}
    result = {}
    for key, value in data.items():
        if key in _SECTIONS:
            if not isinstance(value, dict):
                raise ValueError(f"Section '{key}' must be a mapping")
            for sub_key, sub_value in value.items():
                if sub_key not in _SECTIONS[key]:
                    raise ValueError(f"Unknown option '{key}.{sub_key}'")
                result[_SECTIONS[key][sub_key]] = sub_value
        elif key in attributes:
            # Flat keys are accepted as well
            result[key] = value
        else:
            raise ValueError(f"Unknown configuration key '{key}'")
    return result


def _unflatten_config(config: RSMConfig) -> Dict[str, Any]:
    """Convert flat config to nested structure for YAML output."""
    data = {}
    for section, keys in _SECTIONS.items():
        data[section] = {}
        for yaml_key, attribute in keys.items():
            data[section][yaml_key] = getattr(config, attribute)
    return data
