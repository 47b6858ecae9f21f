from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PlaceholdersRequest(BaseModel):
    source: str


class PlaceholdersResponse(BaseModel):
    placeholders: List[str]


class RenderRequest(BaseModel):
    source: str
    values: Dict[str, str] = Field(default_factory=dict)


class AssembleRequest(BaseModel):
    sources: List[str] = Field(..., min_length=1)
    values: Dict[str, str] = Field(default_factory=dict, description="Global values applied to every template.")


class RenderResponse(BaseModel):
    rendered: str


class ExecuteRequest(BaseModel):
    source: str
    values: Dict[str, str] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list, description="Dependency specs in name=version form.")
    backend: Optional[str] = None
    timeout: Optional[float] = Field(None, gt=0)


class ExecuteResponse(BaseModel):
    output: str
