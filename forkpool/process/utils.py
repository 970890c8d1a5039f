"""Shared helpers for the process management primitives."""

from __future__ import annotations

import inspect
from typing import Any, Callable, List, Optional, Sequence, Tuple


def positional_arity(handler: Callable[..., Any]) -> Optional[int]:
    """Return how many positional arguments ``handler`` accepts.

    ``None`` means "any number": the handler takes ``*args`` or its
    signature cannot be inspected.
    """

    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return None
    count = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return None
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


def _required_parameters(handler: Callable[..., Any]) -> Tuple[int, List[str]]:
    """Count required positionals and name required keyword-only parameters."""

    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return 0, []
    positional, keywords = 0, []
    for param in signature.parameters.values():
        if param.default is not param.empty:
            continue
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
        elif param.kind == param.KEYWORD_ONLY:
            keywords.append(param.name)
    return positional, keywords


def call_with_arity(handler: Callable[..., Any], args: Sequence[Any]) -> Any:
    """Call ``handler`` with as many leading ``args`` as it declares.

    Extra trailing arguments are dropped. Required parameters for which no
    argument is available, keyword-only ones included, receive ``None``.
    """

    required, keywords = _required_parameters(handler)
    kwargs = dict.fromkeys(keywords)
    arity = positional_arity(handler)
    if arity is None:
        return handler(*args, **kwargs)
    call_args = list(args[:arity])
    missing = required - len(call_args)
    if missing > 0:
        call_args.extend([None] * missing)
    return handler(*call_args, **kwargs)
