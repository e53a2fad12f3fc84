from __future__ import annotations

from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DESCRIPTION = "No plugin description provided."


class PluginManifest(BaseModel):
    """Contents of ``plugin.yaml`` / ``plugin.yml`` / ``plugin.json`` in a plugin directory."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Path of the plugin under its kind, e.g. ["Formal Languages", "DFA"].
    kind: List[str]
    plugin_file: str = Field(alias="plugin-file")
    description: str = DEFAULT_DESCRIPTION

    @field_validator("kind", mode="before")
    @classmethod
    def _split_kind(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            return [part.strip() for part in v.split("/") if part.strip()]
        return v

    @field_validator("kind")
    @classmethod
    def _validate_kind(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("kind must name at least one path segment")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, v: object) -> object:
        return v or DEFAULT_DESCRIPTION

    @property
    def kind_path(self) -> str:
        return "/".join(self.kind)
