"""
Model registry for pgreconcile.

Maps model names to their declared table descriptor and, optionally, the
object implementing the model. The registry is an explicit value handed to
the reconciler rather than process-wide state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from .descriptor import TableDescriptor
from ..exceptions import RegistrationError


logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    """A registered model."""

    descriptor: TableDescriptor
    implementation: Any = None

    @property
    def model_name(self) -> str:
        return self.descriptor.model_name

    @property
    def table_name(self) -> str:
        return self.descriptor.table_name


class ModelRegistry:
    """Registry of declared models, keyed by model name."""

    def __init__(self):
        self._entries: Dict[str, RegistryEntry] = {}

    def register(
        self,
        declaration: Union[TableDescriptor, Mapping[str, Any]],
        implementation: Any = None,
    ) -> RegistryEntry:
        """
        Register a declaration.

        Raw mappings are normalized first, so an illegal declaration raises
        DescriptorError and nothing is registered.
        """
        if isinstance(declaration, TableDescriptor):
            descriptor = declaration
        else:
            descriptor = TableDescriptor.from_dict(declaration)

        if descriptor.model_name in self._entries:
            raise RegistrationError(
                f"Model '{descriptor.model_name}' is already registered",
                {"table": descriptor.table_name},
            )

        entry = RegistryEntry(descriptor=descriptor, implementation=implementation)
        self._entries[descriptor.model_name] = entry
        logger.debug(f"Registered model {descriptor.model_name} ({descriptor.table_name})")
        return entry

    def get(self, model_name: str) -> Optional[RegistryEntry]:
        return self._entries.get(model_name)

    def find_by_table(self, table_name: str) -> Optional[RegistryEntry]:
        """Find a model by its table name."""
        for entry in self._entries.values():
            if entry.table_name == table_name:
                return entry
        return None

    def resolve(self, name: str) -> Optional[RegistryEntry]:
        """Look a reference up by model name, then by table name."""
        return self.get(name) or self.find_by_table(name)

    def __contains__(self, model_name: str) -> bool:
        return model_name in self._entries

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)
