"""Response schemas for Jira resources exposed to the front end."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class JiraProject(BaseModel):
    key: str
    id: str
    name: str
    project_type_key: Optional[str] = None


class JiraIssueType(BaseModel):
    id: str
    name: str
    subtask: bool = False
    description: Optional[str] = None


class JiraProjectsResponse(BaseModel):
    projects: List[JiraProject]


class JiraIssueTypesResponse(BaseModel):
    issue_types: List[JiraIssueType]


__all__ = [
    "JiraIssueType",
    "JiraIssueTypesResponse",
    "JiraProject",
    "JiraProjectsResponse",
]
