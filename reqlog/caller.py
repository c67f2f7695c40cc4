"""Attribute a log line to the first stack frame outside this package.

Frames are skipped purely by module name, so the result does not depend on
how many internal calls sit between the public logging method and the walk.
The walk is bounded by ``max_depth`` frames; running out of frames or depth
yields ``None`` and the caller fields are simply left out.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Protocol


DEFAULT_MAX_DEPTH = 25


@dataclass(frozen=True)
class CallerFrame:
    function: str
    file: str
    line: int

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"


class CallerResolver(Protocol):
    def resolve(self) -> CallerFrame | None: ...


class Once:
    """Run a function exactly once; concurrent callers wait for the result."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._done = False
        self._value: Any = None

    def do(self, fn: Callable[[], Any]) -> Any:
        if self._done:
            return self._value
        with self._lock:
            if not self._done:
                self._value = fn()
                self._done = True
        return self._value

    def reset(self) -> None:
        with self._lock:
            self._done = False
            self._value = None


def package_of(module_name: str) -> str:
    """Reduce a dotted module name to its top-level package."""

    return module_name.partition(".")[0]


def _discover_package() -> str | None:
    name = sys._getframe(0).f_globals.get("__name__")
    if not isinstance(name, str) or not name:
        return None
    return package_of(name)


_package_once = Once()


def logging_package() -> str | None:
    return _package_once.do(_discover_package)


def reset_caller_cache() -> None:
    """Forget the discovered package name (used by tests)."""

    _package_once.reset()


def _in_package(module_name: Any, package: str) -> bool:
    if not isinstance(module_name, str):
        return False
    return module_name == package or module_name.startswith(package + ".")


class StackCallerResolver:
    """Live stack walk; the production attribution strategy."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth <= 0:
            raise ValueError("max_depth must be positive")
        self.max_depth = max_depth

    def resolve(self, frame: Any = None) -> CallerFrame | None:
        package = logging_package()
        if package is None:
            return None

        if frame is None:
            frame = sys._getframe(0)

        depth = 0
        while frame is not None and depth < self.max_depth:
            module_name = frame.f_globals.get("__name__")
            if not _in_package(module_name, package):
                code = frame.f_code
                qualname = getattr(code, "co_qualname", code.co_name)
                function = f"{module_name}.{qualname}" if module_name else qualname
                return CallerFrame(function=function, file=code.co_filename, line=frame.f_lineno)
            frame = frame.f_back
            depth += 1

        return None


class FixedCallerResolver:
    """Always returns the same frame; ``None`` disables attribution."""

    def __init__(self, frame: CallerFrame | None) -> None:
        self.frame = frame

    def resolve(self) -> CallerFrame | None:
        return self.frame
