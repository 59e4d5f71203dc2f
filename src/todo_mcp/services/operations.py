"""Process-wide registry of invocable operations, resources and prompts.

The registry is filled once at startup by ``register_todo_operations`` and
only read afterwards. Every operation declares a pydantic input contract and
an output contract; arguments are validated before a handler ever runs.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from todo_mcp.domain.errors import (
    InternalError,
    InvalidArgumentsError,
    NotFoundError,
    UnknownOperationError,
)
from todo_mcp.domain.sessions import RequestId

logger = logging.getLogger(__name__)

Notifier = Callable[[str, dict[str, object]], None]


class OperationRegistrationError(ValueError):
    """Raised when a name is registered twice."""


class OperationArguments(BaseModel):
    """Base input contract: strict primitive types, unknown fields rejected.

    Contracts that want to pass unknown fields through set ``extra="allow"``.
    """

    model_config = ConfigDict(extra="forbid", strict=True)


@dataclass(frozen=True)
class InvocationContext:
    """Per-invocation context handed to operation handlers."""

    session_id: str
    request_id: RequestId | None
    notify: Notifier

    def log(self, message: str, level: str = "info") -> None:
        """Push a log notification to the invoking session's stream."""
        self.notify(
            "notifications/message",
            {"level": level, "logger": "todo_mcp", "data": message},
        )


@dataclass(frozen=True)
class HandlerResult:
    """Tagged handler output: a human-readable rendering plus the value."""

    text: str
    value: Any

    def to_payload(self) -> dict[str, object]:
        return {
            "content": [{"type": "text", "text": self.text}],
            "result": self.value,
            "isError": False,
        }


OperationHandler = Callable[[str, Any, InvocationContext], Awaitable[HandlerResult]]
ResourceReader = Callable[[], Awaitable[str]]
PromptRenderer = Callable[[dict[str, str]], Awaitable[list[dict[str, object]]]]


@dataclass(frozen=True)
class OperationSpec:
    """A registered tool with its contracts and handler."""

    name: str
    description: str
    input_model: type[OperationArguments]
    output_adapter: TypeAdapter
    handler: OperationHandler

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_model.model_json_schema(),
            "outputSchema": self.output_adapter.json_schema(),
        }


@dataclass(frozen=True)
class ResourceSpec:
    """A read-only, URI-addressed data view."""

    uri: str
    name: str
    description: str
    mime_type: str
    reader: ResourceReader

    def describe(self) -> dict[str, object]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class PromptSpec:
    """A named prompt template rendered on request."""

    name: str
    description: str
    arguments: tuple[PromptArgument, ...]
    renderer: PromptRenderer

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [
                {
                    "name": argument.name,
                    "description": argument.description,
                    "required": argument.required,
                }
                for argument in self.arguments
            ],
        }


@dataclass
class OperationRegistry:
    """Name-to-handler table for tools, resources and prompts."""

    _operations: dict[str, OperationSpec] = field(default_factory=dict)
    _resources: dict[str, ResourceSpec] = field(default_factory=dict)
    _prompts: dict[str, PromptSpec] = field(default_factory=dict)

    def register_operation(  # noqa: PLR0913
        self,
        name: str,
        description: str,
        input_model: type[OperationArguments],
        output_type: object,
        handler: OperationHandler,
    ) -> OperationSpec:
        """Register a tool; duplicate names are a configuration error."""
        if name in self._operations:
            raise OperationRegistrationError(f"Operation {name!r} already registered")
        spec = OperationSpec(
            name=name,
            description=description,
            input_model=input_model,
            output_adapter=TypeAdapter(output_type),
            handler=handler,
        )
        self._operations[name] = spec
        logger.debug("Registered operation %s", name)
        return spec

    def register_resource(  # noqa: PLR0913
        self,
        uri: str,
        name: str,
        description: str,
        reader: ResourceReader,
        mime_type: str = "application/json",
    ) -> ResourceSpec:
        """Register a read-only resource under ``uri``."""
        if uri in self._resources:
            raise OperationRegistrationError(f"Resource {uri!r} already registered")
        spec = ResourceSpec(
            uri=uri,
            name=name,
            description=description,
            mime_type=mime_type,
            reader=reader,
        )
        self._resources[uri] = spec
        return spec

    def register_prompt(
        self,
        name: str,
        description: str,
        arguments: tuple[PromptArgument, ...],
        renderer: PromptRenderer,
    ) -> PromptSpec:
        """Register a prompt template."""
        if name in self._prompts:
            raise OperationRegistrationError(f"Prompt {name!r} already registered")
        spec = PromptSpec(
            name=name, description=description, arguments=arguments, renderer=renderer
        )
        self._prompts[name] = spec
        return spec

    def list_operations(self) -> list[dict[str, object]]:
        return [spec.describe() for spec in self._operations.values()]

    def list_resources(self) -> list[dict[str, object]]:
        return [spec.describe() for spec in self._resources.values()]

    def list_prompts(self) -> list[dict[str, object]]:
        return [spec.describe() for spec in self._prompts.values()]

    def validate_arguments(
        self, name: str, raw_arguments: dict[str, object]
    ) -> tuple[OperationSpec, OperationArguments]:
        """Resolve an operation and validate arguments against its contract."""
        spec = self._operations.get(name)
        if spec is None:
            raise UnknownOperationError(f"Unknown tool: {name}")
        try:
            arguments = spec.input_model.model_validate(raw_arguments)
        except ValidationError as exc:
            raise InvalidArgumentsError(
                f"Invalid arguments for tool {name}",
                data=format_validation_errors(exc),
            ) from exc
        return spec, arguments

    async def invoke(
        self,
        name: str,
        raw_arguments: dict[str, object],
        context: InvocationContext,
    ) -> HandlerResult:
        """Validate arguments, run the handler and check its output contract."""
        spec, arguments = self.validate_arguments(name, raw_arguments)
        logger.debug("Invoking %s for session %s", name, context.session_id)
        result = await spec.handler(name, arguments, context)
        try:
            spec.output_adapter.validate_python(result.value)
        except ValidationError as exc:
            logger.exception("Operation %s returned an invalid result", name)
            raise InternalError(f"Tool {name} produced an invalid result") from exc
        return result

    async def read_resource(self, uri: str) -> dict[str, object]:
        """Read a registered resource."""
        spec = self._resources.get(uri)
        if spec is None:
            raise NotFoundError(f"Resource not found: {uri}")
        text = await spec.reader()
        return {"contents": [{"uri": uri, "mimeType": spec.mime_type, "text": text}]}

    async def get_prompt(
        self, name: str, raw_arguments: dict[str, object]
    ) -> dict[str, object]:
        """Render a registered prompt with string arguments."""
        spec = self._prompts.get(name)
        if spec is None:
            raise UnknownOperationError(f"Unknown prompt: {name}")
        known = {argument.name for argument in spec.arguments}
        unknown = sorted(set(raw_arguments) - known)
        if unknown:
            raise InvalidArgumentsError(
                f"Unknown arguments for prompt {name}: {', '.join(unknown)}"
            )
        missing = [
            argument.name
            for argument in spec.arguments
            if argument.required and argument.name not in raw_arguments
        ]
        if missing:
            raise InvalidArgumentsError(
                f"Missing arguments for prompt {name}: {', '.join(missing)}"
            )
        if not all(isinstance(value, str) for value in raw_arguments.values()):
            raise InvalidArgumentsError("Prompt arguments must be strings")
        messages = await spec.renderer({k: str(v) for k, v in raw_arguments.items()})
        return {"description": spec.description, "messages": messages}


def format_validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into JSON-safe ``{field, message}`` pairs."""
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]) or "<root>",
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
