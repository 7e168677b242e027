"""Run input and generated artifact schemas.

StoryContext is what a caller hands the orchestrator. Artifact is the
shape a generator worker must return; a worker whose output does not
parse into an Artifact has produced a shape error.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class FileOperation(StrEnum):
    """What to do with one artifact file."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class Story(BaseModel):
    """The unit of work the artifact is produced for."""

    id: str = Field(default="", description="Story identifier (e.g. '2-3')")
    title: str = Field(default="", description="Short story title")
    description: str = Field(default="", description="Full story text")
    acceptance_criteria: list[str] = Field(
        default_factory=list, description="Criteria the artifact must satisfy"
    )
    dependencies: list[str] = Field(
        default_factory=list, description="Story ids this story builds on"
    )


class StoryContext(BaseModel):
    """Everything a generator worker receives for one run.

    Required fields are checked by the orchestrator before any external
    call, not by this model, so a caller can build a partial context and
    get a field-specific error back.
    """

    story: Story = Field(default_factory=Story, description="Story being implemented")
    prd_context: str = Field(default="", description="Relevant product requirements")
    architecture_context: str = Field(default="", description="Relevant architecture notes")
    onboarding_context: str = Field(default="", description="Coding standards and conventions")
    existing_code: dict[str, str] = Field(
        default_factory=dict, description="Existing files keyed by path"
    )
    total_tokens: int = Field(default=0, ge=0, description="Estimated context size in tokens")


class ArtifactFile(BaseModel):
    """One file in a generated artifact."""

    path: str = Field(description="Path relative to the project root")
    content: str = Field(default="", description="File content (empty for deletes)")
    operation: FileOperation = Field(
        default=FileOperation.CREATE, description="What to do with the file"
    )

    @field_validator("path")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("file path must not be blank")
        return value


class Artifact(BaseModel):
    """Output of a generator worker."""

    files: list[ArtifactFile] = Field(min_length=1, description="Files to apply")
    commit_message: str = Field(description="Commit message for the change")
    implementation_notes: str = Field(default="", description="Notes from the worker")
    acceptance_mapping: dict[str, str] = Field(
        default_factory=dict, description="Acceptance criterion to where it is satisfied"
    )

    @field_validator("commit_message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("commit message must not be blank")
        return value
