"""Translation of Karpenter instance types to Scaleway commercial types."""

from types import MappingProxyType

from .config import DEFAULT_INSTANCE_TYPES
from .errors import UnsupportedInstanceTypeError


class InstanceTypeTranslator:
    """Read-only, case-insensitive instance type table."""

    def __init__(self, mapping=None):
        if mapping is None:
            mapping = DEFAULT_INSTANCE_TYPES
        self._mapping = MappingProxyType({k.lower(): v for k, v in mapping.items()})

    def translate(self, instance_type):
        """Translate a logical instance type to a Scaleway commercial type."""
        try:
            return self._mapping[instance_type.lower()]
        except KeyError:
            raise UnsupportedInstanceTypeError(instance_type) from None

    def supported_types(self):
        return sorted(self._mapping)

    def items(self):
        return sorted(self._mapping.items())


_default_translator = InstanceTypeTranslator()


def translate(instance_type, mapping=None):
    """Translate using the given mapping, or the built-in table."""
    if mapping is None:
        return _default_translator.translate(instance_type)
    return InstanceTypeTranslator(mapping).translate(instance_type)
