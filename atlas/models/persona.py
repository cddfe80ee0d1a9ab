"""Requester persona context, resolved once per turn."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

PersonaTag = Literal["Engineering", "TechOps", "Other"]


class PersonaContext(BaseModel):
    """
    Coarse classification of the requester.

    `persona_tag` is derived from department and team: TechOps team wins,
    then the Engineering department, everything else is "Other".
    """

    model_config = ConfigDict(frozen=True)

    department_label: str | None = None
    team_label: str | None = None
    persona_tag: PersonaTag = "Other"
    display_name: str | None = None

    @classmethod
    def neutral(cls) -> PersonaContext:
        return cls()

    @classmethod
    def from_directory(
        cls,
        department: str | None,
        team: str | None,
        display_name: str | None = None,
    ) -> PersonaContext:
        return cls(
            department_label=department or None,
            team_label=team or None,
            persona_tag=persona_tag_for(department, team),
            display_name=display_name or None,
        )


def persona_tag_for(department: str | None, team: str | None) -> PersonaTag:
    if team == "TechOps":
        return "TechOps"
    if department == "Engineering":
        return "Engineering"
    return "Other"
