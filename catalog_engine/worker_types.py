"""Typed messages exchanged between the query host and its worker."""

from __future__ import annotations

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .catalog_state import CatalogState
from .config import CatalogItem


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> dict:
        """JSON-compatible copy; nothing mutable is shared with the receiver."""
        return self.model_dump(mode="json", by_alias=True)


class InitMessage(_Message):
    """Hands the worker its own copy of the catalog, once per session."""

    type: Literal["init"] = "init"
    items: List[CatalogItem]


class QueryMessage(_Message):
    type: Literal["query"] = "query"
    state: CatalogState
    visible_limit: int = Field(ge=0)
    now: int
    request_id: int


class ResultMessage(_Message):
    type: Literal["result"] = "result"
    request_id: int
    total: int = Field(ge=0)
    visible: List[CatalogItem]


WorkerMessage = Annotated[Union[InitMessage, QueryMessage], Field(discriminator="type")]

worker_message_adapter: TypeAdapter = TypeAdapter(WorkerMessage)
