"""Serialisable handles for workflow callbacks.

A handle is the import path of a module-level callable, `"package.module:qualname"`.
Handles are plain strings so they can be persisted alongside the workflow and
resolved by whichever process ends up invoking them.
"""

from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import Any

from .errors import CallbackSerializationError

CallbackHandle = str


def callback_handle(callback: Callable[..., Any] | str) -> CallbackHandle:
    if isinstance(callback, str):
        if ":" not in callback:
            raise CallbackSerializationError(
                f"Callback handle must look like 'module:qualname', got {callback!r}"
            )
        return callback

    module = getattr(callback, "__module__", None)
    qualname = getattr(callback, "__qualname__", None)
    if not module or not qualname:
        raise CallbackSerializationError(f"Cannot serialise callback {callback!r}")
    if "<lambda>" in qualname or "<locals>" in qualname:
        raise CallbackSerializationError(
            f"Callback {qualname} is not importable; use a module-level function"
        )
    return f"{module}:{qualname}"


def resolve_callback(handle: CallbackHandle) -> Callable[..., Any]:
    module_name, _, qualname = handle.partition(":")
    target: Any = importlib.import_module(module_name)
    for attr in qualname.split("."):
        target = getattr(target, attr)
    if not callable(target):
        raise CallbackSerializationError(f"Callback handle {handle!r} is not callable")
    return target
