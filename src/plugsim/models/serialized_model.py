from __future__ import annotations

from typing import Any, List, Literal

from pydantic import BaseModel, Field, model_validator

ElementKind = Literal["Graph", "Node", "Edge", "Object"]


class SerializedElement(BaseModel):
    kind: ElementKind
    type: str
    uuid: str
    data: Any = Field(default_factory=dict)


class SerializedModel(BaseModel):
    """The persisted interchange form of a model: an ordered list of elements."""

    elements: List[SerializedElement] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_elements(self) -> "SerializedModel":
        graphs = [e for e in self.elements if e.kind == "Graph"]
        if len(graphs) != 1:
            raise ValueError(f"expected exactly one Graph element, found {len(graphs)}")
        seen = set()
        for element in self.elements:
            if element.uuid in seen:
                raise ValueError(f"duplicate element uuid {element.uuid}")
            seen.add(element.uuid)
        return self
