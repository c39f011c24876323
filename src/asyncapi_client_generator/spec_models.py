"""Structural pydantic models used to validate AsyncAPI 2.x documents.

Only the parts of the document the generator reads are modelled. Unknown keys
and specification extensions (``x-*``) are preserved and ignored.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _SpecNode(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Reference(_SpecNode):
    """A ``$ref`` pointer."""

    ref: str = Field(alias="$ref")


class Info(_SpecNode):
    """The ``info`` section."""

    title: str
    version: str
    description: Optional[str] = None


class ServerVariable(_SpecNode):
    """A server URL variable."""

    default: Optional[str] = None
    enum: Optional[list[str]] = None


class Server(_SpecNode):
    """A ``servers`` entry."""

    url: str
    protocol: str
    variables: Optional[dict[str, ServerVariable]] = None
    security: Optional[list[dict[str, list[str]]]] = None


class Message(_SpecNode):
    """A message definition, possibly a ``oneOf`` of messages."""

    name: Optional[str] = None
    title: Optional[str] = None
    payload: Optional[Union[dict[str, Any], bool]] = None
    one_of: Optional[list[Union[Reference, Message]]] = Field(default=None, alias="oneOf")


class Operation(_SpecNode):
    """A publish or subscribe operation."""

    operation_id: Optional[str] = Field(default=None, alias="operationId")
    summary: Optional[str] = None
    description: Optional[str] = None
    message: Optional[Union[Reference, Message]] = None


class Parameter(_SpecNode):
    """A channel parameter."""

    description: Optional[str] = None
    schema_: Optional[Union[dict[str, Any], bool]] = Field(default=None, alias="schema")


class ChannelItem(_SpecNode):
    """A channel item."""

    description: Optional[str] = None
    publish: Optional[Operation] = None
    subscribe: Optional[Operation] = None
    parameters: Optional[dict[str, Union[Reference, Parameter]]] = None
    bindings: Optional[dict[str, Any]] = None


class SecurityScheme(_SpecNode):
    """A security scheme entry."""

    type: str
    scheme: Optional[str] = None
    name: Optional[str] = None
    in_: Optional[str] = Field(default=None, alias="in")


class Components(_SpecNode):
    """The ``components`` section."""

    schemas: Optional[dict[str, Union[dict[str, Any], bool]]] = None
    messages: Optional[dict[str, Union[Reference, Message]]] = None
    parameters: Optional[dict[str, Union[Reference, Parameter]]] = None
    security_schemes: Optional[dict[str, Union[Reference, SecurityScheme]]] = Field(
        default=None, alias="securitySchemes"
    )


class AsyncAPIDocument(_SpecNode):
    """Root AsyncAPI 2.x document."""

    asyncapi: str
    info: Info
    servers: Optional[dict[str, Union[Reference, Server]]] = None
    channels: dict[str, ChannelItem]
    components: Optional[Components] = None
