"""
Dialogue loader - fetches scripts by NPC id, compiles them once and caches the graph
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Dict, Mapping, Optional

import requests

from .config import DEFAULT_SCRIPT_SUFFIX, EngineConfig
from .errors import DialogueFetchError
from .parser.node import START_NODE, DialogueGraph, DialogueNode, DialogueOption
from .parser.parser import DialogueParser

logger = logging.getLogger(__name__)

FALLBACK_OPTION_TEXT = "[Dialogue error]"

NPC_ID = re.compile(r"[\w-]+")

Fetcher = Callable[[str], Awaitable[str]]


def fallback_graph() -> DialogueGraph:
    """Single-node graph used when a script cannot be loaded"""
    option = DialogueOption(text=FALLBACK_OPTION_TEXT, hero_line="", npc_response=None, exit=True)
    return DialogueGraph(nodes={START_NODE: DialogueNode(key=START_NODE, options=(option,))})


def is_fallback(graph: DialogueGraph) -> bool:
    if list(graph.keys()) != [START_NODE]:
        return False
    options = graph[START_NODE].options
    return len(options) == 1 and options[0].text == FALLBACK_OPTION_TEXT and options[0].exit


def check_npc_id(npc_id: str) -> str:
    if not isinstance(npc_id, str) or not NPC_ID.fullmatch(npc_id):
        raise DialogueFetchError(f"Invalid NPC id: {npc_id!r}")
    return npc_id


def script_name(npc_id: str, suffix: str = DEFAULT_SCRIPT_SUFFIX) -> str:
    """Conventional script file name for an NPC"""
    return f"{check_npc_id(npc_id)}{suffix}"


class FileFetcher:
    """Reads ``<root>/<npc_id><suffix>`` off the event loop"""

    def __init__(self, root: Path, suffix: str = DEFAULT_SCRIPT_SUFFIX):
        self.root = Path(root)
        self.suffix = suffix

    def path_for(self, npc_id: str) -> Path:
        return self.root / script_name(npc_id, self.suffix)

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DialogueFetchError(f"Dialogue script not found: {path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise DialogueFetchError(f"Failed to read dialogue script {path}: {e}") from e

    async def __call__(self, npc_id: str) -> str:
        path = self.path_for(npc_id)
        return await asyncio.to_thread(self._read, path)


class HttpFetcher:
    """Fetches ``<base_url>/dialogue/<npc_id><suffix>`` over HTTP"""

    def __init__(self, base_url: str, suffix: str = DEFAULT_SCRIPT_SUFFIX, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.suffix = suffix
        self.timeout = timeout

    def url_for(self, npc_id: str) -> str:
        return f"{self.base_url}/dialogue/{script_name(npc_id, self.suffix)}"

    def _get(self, url: str) -> str:
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise DialogueFetchError(f"Failed to load dialogue: {url} ({e})") from e
        if response.status_code != 200:
            raise DialogueFetchError(f"Failed to load dialogue: {url} ({response.status_code})")
        response.encoding = "utf-8"
        return response.text

    async def __call__(self, npc_id: str) -> str:
        url = self.url_for(npc_id)
        return await asyncio.to_thread(self._get, url)


class MappingFetcher:
    """Serves scripts from memory, keyed by NPC id"""

    def __init__(self, scripts: Mapping[str, str]):
        self.scripts = dict(scripts)
        self.calls = 0

    async def __call__(self, npc_id: str) -> str:
        self.calls += 1
        try:
            return self.scripts[npc_id]
        except KeyError as e:
            raise DialogueFetchError(f"No dialogue script for '{npc_id}'") from e


class DialogueLoader:
    """Loads and caches dialogue graphs per NPC.

    Only successful loads are cached. A failed fetch or parse returns the
    fallback graph and the next ``load`` tries again.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        parser_factory: Optional[Callable[[], DialogueParser]] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.fetcher = fetcher
        self.config = config or EngineConfig()
        self.parser_factory = parser_factory or (lambda: DialogueParser(hero_name=self.config.hero_name))
        self._cache: Dict[str, DialogueGraph] = {}
        self._pending: Dict[str, "asyncio.Future[DialogueGraph]"] = {}

    @classmethod
    def from_config(cls, config: EngineConfig) -> "DialogueLoader":
        if config.dialogues_root is None:
            raise ValueError("EngineConfig.dialogues_root is not set")
        return cls(FileFetcher(config.dialogues_root, config.script_suffix), config=config)

    def is_cached(self, npc_id: str) -> bool:
        return npc_id in self._cache

    def invalidate(self, npc_id: Optional[str] = None):
        """Forget one cached graph, or all of them"""
        if npc_id is None:
            self._cache.clear()
        else:
            self._cache.pop(npc_id, None)

    async def _fetch_and_parse(self, npc_id: str) -> DialogueGraph:
        text = await self.fetcher(npc_id)
        graph = self.parser_factory().parse(text)
        logger.debug("Loaded dialogue for %s: %d nodes", npc_id, len(graph))
        self._cache[npc_id] = graph
        return graph

    async def load(self, npc_id: str) -> DialogueGraph:
        cached = self._cache.get(npc_id)
        if cached is not None:
            return cached

        # Concurrent loads of the same NPC share one fetch
        task = self._pending.get(npc_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_parse(npc_id))
            self._pending[npc_id] = task
            task.add_done_callback(lambda _task, key=npc_id: self._pending.pop(key, None))

        try:
            return await asyncio.shield(task)
        except Exception as e:
            logger.error("Error loading dialogue for %s: %s", npc_id, e)
            return fallback_graph()
