"""
genaikit Tools - function tools the model can call.

A function tool advertises one or more :class:`FunctionDeclaration` objects
and executes the :class:`FunctionCall` objects the model sends back.

Example:
    >>> from genaikit.tools import define_tool
    >>>
    >>> @define_tool(description="Get current weather for a location")
    ... def get_weather(city: str, country: str = "US") -> str:
    ...     return f"Weather in {city}, {country}: Sunny, 72°F"
    >>>
    >>> model = GenerativeModel("gemini-1.5-flash", tools=[get_weather])
"""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, get_type_hints

from pydantic import TypeAdapter

from .exceptions import ToolNotFoundError
from .schema import schema_for
from .types import FunctionCall, FunctionDeclaration, FunctionResponse, Tool

logger = logging.getLogger(__name__)

_JSON_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


class BaseFunctionTool(ABC):
    """A set of functions the model may call."""

    @abstractmethod
    def as_tool(self) -> Tool:
        """Return the wire descriptor advertising this tool's functions."""

    @abstractmethod
    async def call(self, function_call: FunctionCall) -> FunctionResponse:
        """Execute ``function_call`` and return the response for the model."""

    @abstractmethod
    def function_names(self) -> list[str]:
        """Names of the functions this tool declares."""

    def contains_function(self, name: str) -> bool:
        return name in self.function_names()


def _parse_docstring(docstring: str | None) -> dict[str, str]:
    """Parse a docstring to extract parameter descriptions.

    Supports Google-style ``Args:`` sections.
    """
    if not docstring:
        return {}

    result: dict[str, str] = {}
    in_params = False
    current_param = ""
    current_desc = ""

    for line in inspect.cleandoc(docstring).split("\n"):
        stripped = line.strip()

        if stripped.lower() in ("args:", "arguments:", "parameters:", "params:"):
            in_params = True
            continue

        if not in_params:
            continue

        if stripped.lower().rstrip(":") in (
            "returns",
            "return",
            "raises",
            "yields",
            "example",
            "examples",
            "note",
            "notes",
        ):
            break

        # Parameter lines are indented one level, continuations deeper
        indent = len(line) - len(line.lstrip())
        if ":" in stripped and indent <= 4:
            if current_param:
                result[current_param] = current_desc.strip()
            param_part, desc_part = stripped.split(":", 1)
            # Handle "param_name (type): description" format
            current_param = param_part.split("(")[0].strip()
            current_desc = desc_part.strip()
        elif current_param and stripped:
            current_desc += " " + stripped

    if current_param:
        result[current_param] = current_desc.strip()

    return result


def _infer_schema_from_function(func: Callable[..., Any]) -> dict[str, Any]:
    """Infer the parameters schema from a function signature and docstring."""
    sig = inspect.signature(func)
    hints = get_type_hints(func)
    param_docs = _parse_docstring(func.__doc__)

    properties: dict[str, dict[str, Any]] = {}
    required: list[str] = []

    for name, param in sig.parameters.items():
        if name in ("self", "cls"):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        param_type = hints.get(name)
        prop = schema_for(param_type) if param_type is not None else {"type": "string"}

        if name in param_docs:
            prop["description"] = param_docs[name]

        if param.default is inspect.Parameter.empty:
            required.append(name)

        properties[name] = prop

    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
    }
    if required:
        schema["required"] = required

    return schema


class QuickTool(BaseFunctionTool):
    """Wrap a single Python callable (sync or async) as a function tool.

    The declaration is derived from the callable: its name, the first
    docstring line as description, and a parameters schema inferred from the
    type hints. The response payload is ``{"name": ..., "content": result}``.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        self.func = func
        self.name = name or getattr(func, "__name__", "unnamed_tool")

        if not description and func.__doc__:
            description = inspect.cleandoc(func.__doc__).split("\n")[0]
        self.description = description or f"Tool: {self.name}"

        self.parameters = parameters if parameters is not None else _infer_schema_from_function(func)
        self.declaration = FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.parameters if self.parameters.get("properties") else None,
        )

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)

    def __repr__(self) -> str:
        return f"QuickTool(name={self.name!r})"

    def as_tool(self) -> Tool:
        return Tool(function_declarations=[self.declaration])

    def function_names(self) -> list[str]:
        return [self.name]

    async def call(self, function_call: FunctionCall) -> FunctionResponse:
        if function_call.name != self.name:
            raise ToolNotFoundError(function_call.name)

        args = function_call.args or {}
        logger.debug(f"Calling function {self.name} with {len(args)} argument(s)")

        result = self.func(**args)
        if inspect.isawaitable(result):
            result = await result

        return FunctionResponse(
            id=function_call.id,
            name=self.name,
            response={"name": self.name, "content": _JSON_ADAPTER.dump_python(result, mode="json")},
        )


StringFunction = Callable[[str], Awaitable[str]]


class GenericFunctionTool(BaseFunctionTool):
    """Several declarations dispatched to async ``str -> str`` callables.

    Each callable receives the call arguments as a JSON string and returns
    its result as a string. A result that parses as JSON is sent to the
    model as structured content.
    """

    def __init__(
        self,
        declarations: list[FunctionDeclaration],
        functions: dict[str, StringFunction],
    ) -> None:
        self.declarations = list(declarations)
        self.functions = dict(functions)

    def as_tool(self) -> Tool:
        return Tool(function_declarations=list(self.declarations))

    def function_names(self) -> list[str]:
        return [declaration.name for declaration in self.declarations]

    async def call(self, function_call: FunctionCall) -> FunctionResponse:
        function = self.functions.get(function_call.name)
        if function is None:
            raise ToolNotFoundError(function_call.name)

        result = await function(json.dumps(function_call.args or {}))
        try:
            content: Any = json.loads(result)
        except json.JSONDecodeError:
            content = result

        return FunctionResponse(
            id=function_call.id,
            name=function_call.name,
            response={"name": function_call.name, "content": content},
        )


def define_tool(
    name: str | None = None,
    description: str | None = None,
    parameters: dict[str, Any] | None = None,
) -> Callable[[Callable[..., Any]], QuickTool]:
    """
    Decorator turning a function into a :class:`QuickTool`.

    The decorated object stays callable and forwards to the function.

    Args:
        name: The function name shown to the model. Defaults to ``__name__``.
        description: Defaults to the first docstring line.
        parameters: Parameters schema. Inferred from the signature if omitted.

    Returns:
        A decorator that creates a QuickTool from a function.

    Example:
        >>> @define_tool()
        ... async def search(query: str, max_results: int = 5) -> str:
        ...     '''Search the web.
        ...
        ...     Args:
        ...         query: The search query.
        ...         max_results: Maximum number of results to return.
        ...     '''
        ...     return f"Results for: {query}"
    """

    def decorator(func: Callable[..., Any]) -> QuickTool:
        return QuickTool(func, name=name, description=description, parameters=parameters)

    return decorator


class ToolRegistry:
    """
    Ordered collection of function tools with lookup by function name.

    Names are indexed when a tool is registered. When two tools declare the
    same function name, the one registered first handles it.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register(weather_tool)
        >>> registry.find("get_weather")
        QuickTool(name='get_weather')
    """

    def __init__(self, tools: list[BaseFunctionTool] | None = None) -> None:
        self._tools: list[BaseFunctionTool] = []
        self._by_name: dict[str, BaseFunctionTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseFunctionTool) -> None:
        """Register a tool. Already-known function names keep their owner."""
        self._tools.append(tool)
        for name in tool.function_names():
            if name in self._by_name:
                logger.debug(f"Function {name} already registered, keeping first tool")
                continue
            self._by_name[name] = tool

    def unregister(self, tool: BaseFunctionTool) -> None:
        """Remove a tool and rebuild the name index."""
        remaining = [t for t in self._tools if t is not tool]
        self._tools = []
        self._by_name = {}
        for t in remaining:
            self.register(t)

    def find(self, name: str) -> BaseFunctionTool | None:
        """Return the tool that handles function ``name``, if any."""
        return self._by_name.get(name)

    def get_all(self) -> list[BaseFunctionTool]:
        return list(self._tools)

    def copy(self) -> ToolRegistry:
        return ToolRegistry(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[BaseFunctionTool]:
        return iter(list(self._tools))
