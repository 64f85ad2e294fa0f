"""
Persistent world state read by conditions and written by the conversation runtime.
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)

MISC_GROUP = "misc"

# Events emitted by GameState
FLAG_CHANGED = "flagChanged"
INVENTORY_CHANGED = "inventoryChanged"
NPC_STATE_CHANGED = "npcStateChanged"
ROOM_VISITED = "roomVisited"


class StateStore(Protocol):
    """The part of the game state the dialogue engine depends on"""

    def get_flag(self, name: str) -> Any: ...

    def set_flag(self, name: str, value: Any = True) -> None: ...

    def has_item(self, item_id: str) -> bool: ...

    def add_item(self, item_id: str) -> None: ...

    def remove_item(self, item_id: str) -> None: ...

    def has_visited_room(self, room_id: str) -> bool: ...

    def get_npc_state(self, npc_id: str) -> Optional[str]: ...

    def has_asked_label(self, label: str) -> bool: ...

    def mark_asked_label(self, label: str) -> None: ...

    def has_chosen_once(self, npc_id: str, node_key: str, option_index: int) -> bool: ...

    def mark_once_chosen(self, npc_id: str, node_key: str, option_index: int) -> None: ...


def normalize_flag_path(name: str) -> List[str]:
    """Split a flag name into its group path.

    Flat names like ``alien_talked`` live in the ``misc`` group, so
    ``alien_talked`` and ``misc.alien_talked`` address the same flag.
    """
    name = name.strip()
    if not name:
        raise ValueError("Flag name must not be empty")
    parts = [part for part in name.split(".") if part]
    if not parts:
        raise ValueError(f"Flag name {name!r} has no path parts")
    if len(parts) == 1:
        return [MISC_GROUP, parts[0]]
    return parts


def _freeze(value: Any) -> Any:
    """Hashable stand-in for a flag value loaded from JSON"""
    if isinstance(value, dict):
        return frozenset((key, _freeze(item)) for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, set):
        return frozenset(_freeze(item) for item in value)
    return value


class GameState:
    """Tracks flags, inventory, visited rooms, NPC states and dialogue history"""

    def __init__(self):
        self.flags: Dict[str, Any] = {MISC_GROUP: {}}
        self.inventory: List[str] = []
        self.used_items: List[str] = []
        self.visited_rooms: List[str] = []
        self.npc_states: Dict[str, str] = {}
        self.asked_labels: Set[str] = set()
        self.once_choices: Set[str] = set()
        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {}

    # ── Events ────────────────────────────────────────────────────────

    def on(self, event: str, callback: Callable[[Dict[str, Any]], None]):
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable[[Dict[str, Any]], None]):
        callbacks = self._listeners.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: str, data: Dict[str, Any]):
        for callback in list(self._listeners.get(event, [])):
            callback(data)

    # ── Flags ─────────────────────────────────────────────────────────

    def get_flag(self, name: str) -> Any:
        """Get a flag value by dotted path. Missing flags read as False."""
        node: Any = self.flags
        for part in normalize_flag_path(name):
            if not isinstance(node, dict) or part not in node:
                return False
            node = node[part]
        if isinstance(node, dict):
            # A group, not a flag
            return False
        return node

    def set_flag(self, name: str, value: Any = True):
        parts = normalize_flag_path(name)
        node = self.flags
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        logger.debug("flag %s = %r", ".".join(parts), value)
        self.emit(FLAG_CHANGED, {"path": ".".join(parts), "value": value})

    def all_flags(self) -> Dict[str, Any]:
        """Flatten flags into ``group.name -> value``"""
        result: Dict[str, Any] = {}

        def walk(prefix: str, node: Dict[str, Any]):
            for key, value in node.items():
                path = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    walk(path, value)
                else:
                    result[path] = value

        walk("", self.flags)
        return result

    # ── Inventory ─────────────────────────────────────────────────────

    def add_item(self, item_id: str):
        if item_id not in self.inventory:
            self.inventory.append(item_id)
            self.emit(INVENTORY_CHANGED, {"type": "added", "item_id": item_id})

    def remove_item(self, item_id: str):
        if item_id in self.inventory:
            self.inventory.remove(item_id)
            self.emit(INVENTORY_CHANGED, {"type": "removed", "item_id": item_id})

    def has_item(self, item_id: str) -> bool:
        return item_id in self.inventory

    def consume_item(self, item_id: str):
        """Remove an item and remember that it was permanently used up"""
        was_held = item_id in self.inventory
        self.remove_item(item_id)
        if item_id not in self.used_items:
            self.used_items.append(item_id)
        if was_held:
            self.emit(INVENTORY_CHANGED, {"type": "consumed", "item_id": item_id})

    def was_item_used(self, item_id: str) -> bool:
        return item_id in self.used_items

    # ── Rooms and NPCs ────────────────────────────────────────────────

    def has_visited_room(self, room_id: str) -> bool:
        return room_id in self.visited_rooms

    def mark_room_visited(self, room_id: str):
        if room_id not in self.visited_rooms:
            self.visited_rooms.append(room_id)
            self.emit(ROOM_VISITED, {"room_id": room_id})

    def get_npc_state(self, npc_id: str) -> Optional[str]:
        return self.npc_states.get(npc_id) or None

    def set_npc_state(self, npc_id: str, state: str):
        previous = self.npc_states.get(npc_id)
        self.npc_states[npc_id] = state
        self.emit(NPC_STATE_CHANGED, {"npc_id": npc_id, "state": state, "previous_state": previous})

    # ── Dialogue history ──────────────────────────────────────────────

    def has_asked_label(self, label: str) -> bool:
        return label in self.asked_labels

    def mark_asked_label(self, label: str):
        self.asked_labels.add(label)

    @staticmethod
    def _once_key(npc_id: str, node_key: str, option_index: int) -> str:
        return f"{npc_id}:{node_key}:{option_index}"

    def has_chosen_once(self, npc_id: str, node_key: str, option_index: int) -> bool:
        return self._once_key(npc_id, node_key, option_index) in self.once_choices

    def mark_once_chosen(self, npc_id: str, node_key: str, option_index: int):
        self.once_choices.add(self._once_key(npc_id, node_key, option_index))

    # ── Serialization ─────────────────────────────────────────────────

    def copy(self) -> "GameState":
        """Copy the state. Event listeners are not carried over."""
        new_state = GameState()
        new_state.flags = copy.deepcopy(self.flags)
        new_state.inventory = list(self.inventory)
        new_state.used_items = list(self.used_items)
        new_state.visited_rooms = list(self.visited_rooms)
        new_state.npc_states = dict(self.npc_states)
        new_state.asked_labels = set(self.asked_labels)
        new_state.once_choices = set(self.once_choices)
        return new_state

    def to_dict(self) -> dict:
        """Convert state to JSON-serializable dict"""
        return {
            "flags": copy.deepcopy(self.flags),
            "inventory": list(self.inventory),
            "used_items": list(self.used_items),
            "visited_rooms": list(self.visited_rooms),
            "npc_states": dict(self.npc_states),
            "asked_labels": sorted(self.asked_labels),
            "once_choices": sorted(self.once_choices),
        }

    def load(self, data: Optional[dict]):
        """Replace the contents with a snapshot from ``to_dict``. Listeners are kept."""
        data = data or {}
        self.flags = copy.deepcopy(data.get("flags") or {})
        self.flags.setdefault(MISC_GROUP, {})
        self.inventory = list(data.get("inventory", []))
        self.used_items = list(data.get("used_items", []))
        self.visited_rooms = list(data.get("visited_rooms", []))
        self.npc_states = dict(data.get("npc_states", {}))
        self.asked_labels = set(data.get("asked_labels", []))
        self.once_choices = set(data.get("once_choices", []))

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "GameState":
        state = cls()
        state.load(data)
        return state

    def signature(self) -> tuple:
        """Hashable summary used by path search to detect repeated states"""
        return (
            frozenset((path, _freeze(value)) for path, value in self.all_flags().items()),
            frozenset(self.inventory),
            frozenset(self.asked_labels),
            frozenset(self.npc_states.items()),
            frozenset(self.once_choices),
        )
