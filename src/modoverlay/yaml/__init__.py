from .compat import YAML, YAMLError

OVERRIDES_YAML = YAML()

__all__ = [
    "OVERRIDES_YAML",
    "YAMLError",
]
