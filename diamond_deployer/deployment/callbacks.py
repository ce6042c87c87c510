"""
Post-deploy facet callbacks.

Callbacks live in ``{deployments}/{diamond}/callbacks/{Facet}.py``; every
public function of such a module is registered under the facet name and is
invoked with the Diamond aggregate once the cut is confirmed.
"""

import importlib.util
import inspect
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from diamond_deployer.core.config import settings
from diamond_deployer.core.exceptions import CallbackNotFoundError
from diamond_deployer.core.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[..., Any]


class CallbackRunner(Protocol):
    async def run(self, facet_name: str, callbacks: List[str], diamond: Any) -> None:
        ...


class FacetCallbackManager:
    """Registry of per-facet callbacks, loaded from disk and/or registered in code."""

    def __init__(self, callbacks_path: Optional[Path] = None):
        self.callbacks_path = callbacks_path
        self.callbacks: Dict[str, Dict[str, Callback]] = {}
        if callbacks_path is not None:
            self.load_callbacks()

    @classmethod
    def for_diamond(cls, diamond_name: str, deployments_path: Optional[str] = None) -> "FacetCallbackManager":
        base = Path(deployments_path or settings.DEPLOYMENTS_PATH)
        return cls(base / diamond_name / "callbacks")

    def load_callbacks(self) -> None:
        if self.callbacks_path is None or not self.callbacks_path.is_dir():
            logger.info("No facet callbacks directory", path=str(self.callbacks_path))
            return

        for module_path in sorted(self.callbacks_path.glob("*.py")):
            if module_path.name.startswith("_"):
                continue
            facet_name = module_path.stem
            spec = importlib.util.spec_from_file_location(
                f"diamond_callbacks.{facet_name}", module_path
            )
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)

            for name, member in inspect.getmembers(module, inspect.isfunction):
                if name.startswith("_") or member.__module__ != module.__name__:
                    continue
                self.register(facet_name, name, member)

            logger.info(
                "Loaded facet callbacks",
                facet_name=facet_name,
                callbacks=sorted(self.callbacks.get(facet_name, {})),
            )

    def register(self, facet_name: str, callback_name: str, callback: Callback) -> None:
        self.callbacks.setdefault(facet_name, {})[callback_name] = callback

    async def run(self, facet_name: str, callbacks: List[str], diamond: Any) -> None:
        """
        Run the named callbacks of a facet in order.

        Raises:
            CallbackNotFoundError: A callback name is not registered for the facet
        """
        registered = self.callbacks.get(facet_name, {})
        for callback_name in callbacks:
            callback = registered.get(callback_name)
            if callback is None:
                raise CallbackNotFoundError(facet_name, callback_name)

            logger.info("Executing facet callback", facet_name=facet_name, callback=callback_name)
            result = callback(diamond)
            if inspect.isawaitable(result):
                await result
