"""Typesetting engine boundary with one-shot asynchronous start-up."""

import asyncio
import importlib
import inspect
import logging
import os
from typing import Callable, Optional

from .subexpression import CompilationError, CompiledFormula, parse_compile_output

logger = logging.getLogger(__name__)

TYPESETTER_MODULE = os.environ.get("PROOF_EXPLORER_TYPESETTER", "typst_subexpressions")
COMPILE_ENTRY_POINT = "compile_math_with_subexpressions"

CompileFn = Callable[[str], str]


class TypesetterNotReady(RuntimeError):
    """compile() was called before start() completed."""
    pass


class Typesetter:
    """Formula compiler loaded once, then used synchronously.

    The backend is a module exposing `compile_math_with_subexpressions(source)`
    returning the engine's JSON reply, and optionally an `init()` (sync or
    async) run once at start-up.
    """

    def __init__(self, module: str | None = None, compile_fn: Optional[CompileFn] = None):
        self.module = module or TYPESETTER_MODULE
        self._compile_fn = compile_fn
        self._ready = asyncio.Event()
        self._lock = asyncio.Lock()  # Serialize start() so the backend loads once
        self.error: str | None = None
        if compile_fn is not None:
            self._ready.set()

    async def start(self) -> str:
        """Load the backend module. Idempotent."""
        async with self._lock:
            if self._ready.is_set():
                return "Typesetter already running"
            try:
                mod = await asyncio.to_thread(importlib.import_module, self.module)
                init = getattr(mod, "init", None)
                if init is not None:
                    result = init()
                    if inspect.isawaitable(result):
                        await result
                self._compile_fn = getattr(mod, COMPILE_ENTRY_POINT)
            except (ImportError, AttributeError) as e:
                self.error = f"Failed to load typesetter '{self.module}': {e}"
                logger.warning(self.error)
                return f"ERROR: {self.error}"
            self.error = None
            self._ready.set()
            logger.debug("Typesetter '%s' loaded", self.module)
            return f"Typesetter started ({self.module})"

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until start() has succeeded; False on timeout."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def compile(self, source: str) -> CompiledFormula:
        """Compile one formula.

        Raises:
            TypesetterNotReady: If start() has not completed.
            CompilationError: If the engine rejects this formula.
        """
        if not self._ready.is_set():
            raise TypesetterNotReady("Typesetter not loaded yet")
        try:
            output = self._compile_fn(source)
        except Exception as e:
            # Backend panics are reported against the formula, like engine errors
            logger.warning("Typesetter raised on %r: %s", source, e)
            raise CompilationError(source, str(e)) from e
        try:
            return parse_compile_output(source, output)
        except CompilationError as e:
            logger.warning("Math compilation error for %r: %s", source, e.message)
            raise

    def compile_all(self, sources: list[str]) -> list[CompiledFormula | CompilationError]:
        """Compile several formulas; a failure is returned in its slot, not raised."""
        results = []
        for source in sources:
            try:
                results.append(self.compile(source))
            except CompilationError as e:
                results.append(e)
        return results
