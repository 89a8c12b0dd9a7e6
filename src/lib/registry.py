"""
Component registry

Holds every q-component / q-template definition seen by one Compiler,
keyed by lower-cased id. Definitions outlive a single compile so that a
later source compiled on the same Compiler can invoke components defined
earlier. The registry also stores per-invocation signal handlers under the
instance key generated for each component invocation.
"""

from typing import Dict, List, Optional

from ..config import AppSettings, appsettings
from ..models.definitions import Definition, SignalHandlerDecl
from .log import LOG


class ComponentRegistry:
    """Definitions by lower-cased id plus per-instance signal handlers"""

    def __init__(self, settings: Optional[AppSettings] = None) -> None:
        self.settings = settings or appsettings
        self.definitions: Dict[str, Definition] = {}
        self.instance_handlers: Dict[str, List[SignalHandlerDecl]] = {}
        self.instance_counter = 0

    def __contains__(self, component_id: object) -> bool:
        return isinstance(component_id, str) and component_id.strip().lower() in self.definitions

    def __len__(self) -> int:
        return len(self.definitions)

    def register(self, definition: Definition) -> Definition:
        """Add or replace a definition; a later definition of the same id wins"""
        if definition.key in self.definitions:
            LOG(f"Redefining {definition.kind.value} '{definition.id}'", level=2)
        self.definitions[definition.key] = definition
        return definition

    def get(self, component_id: str) -> Optional[Definition]:
        return self.definitions.get((component_id or "").strip().lower())

    def ids_list(self) -> List[str]:
        """Ids as written, in registration order"""
        return [definition.id for definition in self.definitions.values()]

    def definitions_list(self) -> List[Definition]:
        return list(self.definitions.values())

    def slotNames_get(self, component_id: str) -> List[str]:
        definition = self.get(component_id)
        if definition is None:
            return []
        return list(definition.slot_info.slot_names)

    def instanceKey_next(self, component_id: str) -> str:
        self.instance_counter += 1
        return self.settings.instanceKey_make(component_id, self.instance_counter)

    def instanceHandlers_store(self, instance_key: str, handlers: List[SignalHandlerDecl]) -> None:
        if handlers:
            self.instance_handlers[instance_key] = list(handlers)

    def instanceHandlers_get(self, instance_key: str) -> List[SignalHandlerDecl]:
        return list(self.instance_handlers.get(instance_key, []))

    def instanceHandlers_drop(self, instance_key: str) -> None:
        self.instance_handlers.pop(instance_key, None)
