from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

# PEP 508 project name, optionally followed by extras.
_NAME_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?(?:\[[A-Za-z0-9._,\s-]*\])?$")
_OPERATOR_PREFIXES = ("==", "<", ">", "!", "~", "@")


class DependencySpec(BaseModel):
    """An external library the executed program may import."""

    model_config = ConfigDict(frozen=True)

    name: str
    version_requirement: str = ""

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("dependency name must not be empty")
        if not _NAME_RE.match(value):
            raise ValueError(f"invalid dependency name '{value}'")
        return value

    @field_validator("version_requirement")
    @classmethod
    def _strip_version(cls, value: str) -> str:
        return value.strip()

    @classmethod
    def parse(cls, text: str) -> Optional["DependencySpec"]:
        """Parse ``name=version``; returns None when the text is malformed."""

        name, sep, version = text.partition("=")
        if not sep:
            return None
        try:
            return cls(name=name, version_requirement=version)
        except ValidationError:
            return None

    @property
    def requirement(self) -> str:
        """PEP 508 requirement string understood by pip and uv."""

        version = self.version_requirement
        if not version or version == "*":
            return self.name
        if version.startswith("@"):
            return f"{self.name} {version}"
        if version.startswith(_OPERATOR_PREFIXES):
            return f"{self.name}{version}"
        if version.startswith("="):
            # "name==1.2" arrives here as "=1.2" after splitting on the first "="
            return f"{self.name}={version}"
        return f"{self.name}=={version}"

    def __str__(self) -> str:
        return f"{self.name}={self.version_requirement}"
