__all__ = [
    "YAML",
    "YAMLError",
]

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError
