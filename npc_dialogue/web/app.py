"""
Flask web application - serves dialogue scripts and the editor API
"""

import logging
from collections import deque
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, Response, abort, jsonify, request

from npc_dialogue.config import EngineConfig
from npc_dialogue.errors import ContractViolation, DialogueFetchError, DialogueParseError
from npc_dialogue.export.exporter import DialogueExporter
from npc_dialogue.loader import check_npc_id
from npc_dialogue.parser.conditions import ClauseKind, Predicate
from npc_dialogue.parser.node import END_TARGET, START_NODE, DialogueGraph, DialogueOption
from npc_dialogue.parser.parser import DialogueParser
from npc_dialogue.runtime.conversation import Conversation, ConversationListener
from npc_dialogue.runtime.scheduling import ManualScheduler
from npc_dialogue.state import GameState

logger = logging.getLogger(__name__)

MAX_SEARCH_STATES = 10000

NEW_SCRIPT_TEMPLATE = """=== start ===
{npc}: Hello there.

- Goodbye
nate: See you around.
> END
"""

# A choice is (node key, option index within the node)
Step = Tuple[str, int]


def grant_predicate(state: GameState, predicate: Optional[Predicate]):
    """
    Modify state so that a predicate holds.
    Used when a search has to start at a mood entry node: if the player
    got there, its conditions must have been true.
    """
    if predicate is None:
        return
    for clause in predicate.clauses:
        if clause.kind is ClauseKind.FLAG:
            state.set_flag(clause.target, not clause.negated)
        elif clause.kind is ClauseKind.HAS:
            if clause.negated:
                state.remove_item(clause.target)
            else:
                state.add_item(clause.target)
        elif clause.kind is ClauseKind.ASKED:
            if clause.negated:
                state.asked_labels.discard(clause.target)
            else:
                state.mark_asked_label(clause.target)
        elif clause.kind is ClauseKind.VISITED:
            state.mark_room_visited(clause.target)
        elif clause.kind is ClauseKind.NPC_STATE:
            state.set_npc_state(clause.target, clause.expected)


def apply_choice(state: GameState, npc_id: str, node_key: str, index: int, option: DialogueOption):
    """Apply an option's side effects the way the conversation runtime does"""
    if option.label:
        state.mark_asked_label(option.label)
    actions = option.actions
    if actions is None:
        return
    if actions.once:
        state.mark_once_chosen(npc_id, node_key, index)
    for flag in actions.set_flags:
        state.set_flag(flag, True)
    for item in actions.add_items:
        state.add_item(item)
    for item in actions.remove_items:
        state.remove_item(item)


def _choosable(state: GameState, npc_id: str, node, index: int, option: DialogueOption) -> bool:
    if not option.is_visible(state):
        return False
    if option.actions and option.actions.once:
        return not state.has_chosen_once(npc_id, node.key, index)
    return True


def find_valid_path_to_node(
    graph: DialogueGraph,
    target_node: str,
    initial_state: Optional[GameState] = None,
    npc_id: str = "npc",
    entry_node: str = START_NODE,
) -> Tuple[Optional[List[Step]], Optional[GameState]]:
    """
    Find the shortest list of choices from entry_node to target_node using BFS.
    Returns (choices, final_state) or (None, None) if unreachable.

    Game state is simulated along the way, so only options whose conditions
    hold at that point are followed. An option without a route re-shows its
    node, which still matters when its actions change the state.
    """
    state = initial_state.copy() if initial_state else GameState()

    if entry_node not in graph:
        return None, None
    if target_node == entry_node:
        return [], state
    if target_node not in graph and target_node != END_TARGET:
        return None, None

    queue = deque([(entry_node, [], state)])
    visited = {(entry_node, state.signature())}

    while queue and len(visited) < MAX_SEARCH_STATES:
        current, path, state = queue.popleft()
        node = graph[current]

        for index, option in enumerate(node.options):
            if not _choosable(state, npc_id, node, index, option):
                continue

            new_state = state.copy()
            apply_choice(new_state, npc_id, current, index, option)
            new_path = path + [(current, index)]

            if option.exit:
                if target_node == END_TARGET:
                    return new_path, new_state
                continue

            next_node = option.next_node or current
            if next_node not in graph:
                continue
            if next_node == target_node:
                return new_path, new_state

            signature = (next_node, new_state.signature())
            if signature not in visited:
                visited.add(signature)
                queue.append((next_node, new_path, new_state))

    return None, None


def find_entry_and_path(
    graph: DialogueGraph,
    target_node: str,
    initial_state: Optional[GameState] = None,
    npc_id: str = "npc",
) -> Tuple[Optional[str], Optional[List[Step]], Optional[GameState]]:
    """
    Fallback pathfinding: try each mood entry node (``# default`` or
    ``# npc_state:``), granting whatever it takes to open on it.
    Returns (entry node, choices, final state).
    """
    for key, node in graph.items():
        if key == START_NODE or not (node.is_default or node.npc_state):
            continue
        state = initial_state.copy() if initial_state else GameState()
        if node.npc_state:
            state.set_npc_state(npc_id, node.npc_state)
        grant_predicate(state, node.condition)

        path, final_state = find_valid_path_to_node(graph, target_node, state, npc_id, entry_node=key)
        if path is not None:
            return key, path, final_state
    return None, None, None


class TranscriptListener(ConversationListener):
    """Collects lines spoken during a replay"""

    def __init__(self):
        self.lines: List[Dict[str, Any]] = []

    def on_line(self, line):
        self.lines.append(line.to_dict())


def replay_choices(
    graph: DialogueGraph,
    choices: List[Step],
    state: GameState,
    npc_id: str,
    config: EngineConfig,
    start_node: str = START_NODE,
) -> Tuple[Conversation, TranscriptListener]:
    """Drive the conversation runtime through an exact list of choices"""
    scheduler = ManualScheduler()
    listener = TranscriptListener()
    conversation = Conversation(state, scheduler, listener, config)

    conversation.enter_conversation(npc_id, graph, start_node=start_node)
    scheduler.run_pending()

    for node_key, index in choices:
        if conversation.current_node != node_key:
            raise ContractViolation(f"Expected to be in node '{node_key}', at '{conversation.current_node}'")
        position = next(
            (i for i, shown in enumerate(conversation.current_options) if shown.index == index),
            None,
        )
        if position is None:
            raise ContractViolation(f"Option {index} of node '{node_key}' is not available")
        conversation.select_option(position)
        scheduler.run_pending()

    return conversation, listener


def _graph_elements(graph: DialogueGraph) -> Dict[str, List[Dict[str, Any]]]:
    """Nodes and edges for the editor's graph view"""
    nodes = []
    edges = []
    has_end_target = False

    for key, node in graph.items():
        nodes.append(
            {
                "id": key,
                "label": key,
                "is_start": key == START_NODE,
                "is_entry": key == START_NODE or node.is_default or bool(node.npc_state),
                "npc_state": node.npc_state,
                "option_count": len(node.options),
            }
        )
        for index, option in enumerate(node.options):
            target = END_TARGET if option.exit else option.next_node
            if target is None:
                continue
            has_end_target = has_end_target or target == END_TARGET
            edges.append(
                {
                    "id": f"{key}-{index}",
                    "source": key,
                    "target": target,
                    "label": option.text,
                    "condition": str(option.condition) if option.condition else None,
                    "broken": target != END_TARGET and target not in graph,
                }
            )

    if has_end_target:
        nodes.append({"id": END_TARGET, "label": END_TARGET, "is_start": False, "is_entry": False})
    return {"nodes": nodes, "edges": edges}


def create_app(dialogues_root=None, config: Optional[EngineConfig] = None):
    """Create and configure the Flask application"""
    app = Flask(__name__)

    config = config or EngineConfig.from_env()
    if dialogues_root is None:
        dialogues_root = config.dialogues_root or Path.cwd() / "dialogue"

    app.config["DIALOGUES_ROOT"] = Path(dialogues_root)
    app.config["ENGINE_CONFIG"] = config

    def new_parser() -> DialogueParser:
        return DialogueParser(hero_name=app.config["ENGINE_CONFIG"].hero_name)

    def script_path(npc_id: str) -> Path:
        check_npc_id(npc_id)
        return app.config["DIALOGUES_ROOT"] / f"{npc_id}{app.config['ENGINE_CONFIG'].script_suffix}"

    def payload() -> Dict[str, Any]:
        return request.get_json(silent=True) or {}

    def parse_content(content: Any) -> Tuple[DialogueParser, DialogueGraph]:
        parser = new_parser()
        graph = parser.parse(content if content is not None else "")
        return parser, graph

    @app.errorhandler(DialogueParseError)
    def handle_parse_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(DialogueFetchError)
    def handle_bad_npc(e):
        return jsonify({"error": str(e)}), 400

    @app.route("/dialogue/<npc_id>.txt")
    def get_script(npc_id):
        """Raw script for the game's dialogue loader"""
        try:
            path = script_path(npc_id)
        except DialogueFetchError:
            abort(404)
        if not path.is_file():
            abort(404)
        return Response(path.read_text(encoding="utf-8"), mimetype="text/plain; charset=utf-8")

    @app.route("/api/dialogues")
    def list_dialogues():
        """List all dialogue scripts"""
        dialogue_dir = app.config["DIALOGUES_ROOT"]
        suffix = app.config["ENGINE_CONFIG"].script_suffix
        files = []

        if dialogue_dir.exists():
            for script in sorted(dialogue_dir.glob(f"*{suffix}")):
                files.append({"npc_id": script.stem, "name": script.name, "path": str(script)})

        return jsonify({"files": files})

    @app.route("/api/file/<npc_id>")
    def get_file(npc_id):
        """Get the content of a dialogue script"""
        path = script_path(npc_id)
        if not path.is_file():
            return jsonify({"error": "File not found"}), 404
        return jsonify({"npc_id": npc_id, "content": path.read_text(encoding="utf-8"), "path": str(path)})

    @app.route("/api/parse", methods=["POST"])
    def parse_dialogue():
        """Parse script content and return graph data with diagnostics"""
        parser, graph = parse_content(payload().get("content", ""))
        is_valid = parser.validate()

        return jsonify(
            {
                "success": True,
                "valid": is_valid,
                "nodes": graph.to_dict(),
                "graph": _graph_elements(graph),
                "errors": list(graph.errors),
                "warnings": list(graph.warnings),
                "stats": parser.get_stats(),
            }
        )

    @app.route("/api/export", methods=["POST"])
    def export_dialogue():
        """Export script content to JSON or CSV"""
        data = payload()
        _, graph = parse_content(data.get("content", ""))
        exporter = DialogueExporter()

        if data.get("format") == "csv":
            return jsonify({"success": True, "csv": exporter.to_csv_string(graph)})
        return jsonify({"success": True, "json": exporter.to_data(graph, data.get("npc_id"))})

    @app.route("/api/save", methods=["POST"])
    def save_file():
        """Save content to a dialogue script"""
        data = payload()
        npc_id = data.get("npc_id", "")
        content = data.get("content", "")

        if not npc_id:
            return jsonify({"error": "No NPC id specified"}), 400
        if not isinstance(content, str):
            return jsonify({"error": "Content must be text"}), 400

        dialogue_dir = app.config["DIALOGUES_ROOT"].resolve()
        file_path = script_path(npc_id).resolve()

        # Security check: ensure path is within dialogues directory
        if not file_path.is_relative_to(dialogue_dir):
            return jsonify({"error": "Invalid file path"}), 403
        if file_path.suffix != ".txt":
            return jsonify({"error": "Can only save .txt scripts"}), 400

        dialogue_dir.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        logger.info("Saved dialogue script %s", file_path)
        return jsonify({"success": True, "message": f"Saved to {file_path.name}"})

    @app.route("/api/new-file", methods=["POST"])
    def create_new_file():
        """Create a new script from the starter template"""
        npc_id = payload().get("npc_id", "")
        if not npc_id:
            return jsonify({"error": "No NPC id specified"}), 400

        file_path = script_path(npc_id)
        if file_path.exists():
            return jsonify({"error": f"File already exists: {file_path.name}"}), 409

        content = NEW_SCRIPT_TEMPLATE.format(npc=npc_id.lower())
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        return jsonify({"success": True, "npc_id": npc_id, "content": content}), 201

    @app.route("/api/compute-path", methods=["POST"])
    def compute_path():
        """
        Compute the choices that lead from start to a target node, along with
        the game state at that point. Used for "Play from here".
        """
        data = payload()
        target_node = data.get("target_node", "")
        npc_id = data.get("npc_id") or "npc"

        if not target_node:
            return jsonify({"error": "No target node specified"}), 400

        _, graph = parse_content(data.get("content", ""))
        initial_state = GameState.from_dict(data.get("state"))

        entry = START_NODE
        path, state = find_valid_path_to_node(graph, target_node, initial_state, npc_id)
        if path is None:
            entry, path, state = find_entry_and_path(graph, target_node, initial_state, npc_id)

        if path is None:
            return jsonify(
                {
                    "success": True,
                    "path": None,
                    "state": initial_state.to_dict(),
                    "warning": f"No valid path found to '{target_node}'",
                }
            )

        return jsonify(
            {
                "success": True,
                "entry": entry,
                "path": [{"node": node_key, "option": index} for node_key, index in path],
                "path_length": len(path),
                "choices": [graph[node_key].options[index].text for node_key, index in path],
                "state": state.to_dict(),
            }
        )

    @app.route("/api/replay-path", methods=["POST"])
    def replay_path():
        """Replay exact choices through the conversation runtime"""
        data = payload()
        npc_id = data.get("npc_id") or "npc"
        steps = data.get("path")
        if not isinstance(steps, list):
            return jsonify({"error": "No path specified"}), 400

        _, graph = parse_content(data.get("content", ""))
        state = GameState.from_dict(data.get("state"))
        try:
            choices = [(step["node"], int(step["option"])) for step in steps]
        except (KeyError, TypeError, ValueError):
            return jsonify({"error": "Each path step needs 'node' and 'option'"}), 400

        try:
            conversation, transcript = replay_choices(
                graph,
                choices,
                state,
                npc_id,
                app.config["ENGINE_CONFIG"],
                start_node=data.get("entry") or START_NODE,
            )
        except ContractViolation as e:
            return jsonify({"error": str(e)}), 409

        return jsonify(
            {
                "success": True,
                "active": conversation.is_active,
                "node": conversation.current_node,
                "options": [shown.text for shown in conversation.current_options],
                "transcript": transcript.lines,
                "state": state.to_dict(),
            }
        )

    return app
