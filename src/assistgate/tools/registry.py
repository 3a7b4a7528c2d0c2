"""Explicit registry of local functions that assistant tool calls may invoke."""
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List

from ..utils.logging import log_event

ToolHandler = Callable[[Dict[str, Any]], Any]


class ToolRegistry:
    """Maps tool names from upstream ``requires_action`` payloads to handlers."""

    def __init__(self):
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, name: str, handler: ToolHandler) -> ToolHandler:
        if not name or not isinstance(name, str):
            raise ValueError("Tool name must be a non-empty string")
        self._handlers[name] = handler
        return handler

    def tool(self, name: str):
        """Decorator form of :meth:`register`."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            return self.register(name, handler)

        return decorator

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, name) -> bool:
        return name in self._handlers

    def execute(self, name: str, arguments: Dict[str, Any]) -> Any:
        handler = self._handlers.get(name)
        if handler is None:
            return {"error": f"Unknown function: {name}"}
        try:
            return handler(arguments)
        except Exception as exc:
            log_event(40, "tool_error", tool=name, error=str(exc))
            return {"error": f"Error executing {name}: {exc}"}

    def dispatch(self, tool_calls: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
        """Run each call and return ``tool_outputs`` ready for submit_tool_outputs."""
        outputs = []
        for call in tool_calls or []:
            function = call.get("function") or {}
            name = function.get("name") or call.get("name") or ""
            raw_args = function.get("arguments", call.get("arguments"))
            try:
                arguments = _decode_arguments(raw_args)
            except ValueError as exc:
                output = {"error": f"Error executing {name}: {exc}"}
            else:
                output = self.execute(name, arguments)
            outputs.append({"tool_call_id": call.get("id"), "output": json.dumps(output, default=str)})
        return outputs


def _decode_arguments(raw_args) -> Dict[str, Any]:
    if raw_args is None or raw_args == "":
        return {}
    if isinstance(raw_args, dict):
        return raw_args
    try:
        decoded = json.loads(raw_args)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValueError(f"invalid arguments: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ValueError("arguments must be a JSON object")
    return decoded


def get_current_time(arguments: Dict[str, Any]) -> Dict[str, str]:
    return {"utc": datetime.now(timezone.utc).isoformat()}


def build_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register("get_current_time", get_current_time)
    return registry
