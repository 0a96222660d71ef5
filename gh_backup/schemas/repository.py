"""Pydantic models describing the organisation and the repositories to back up."""

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class OrganisationHandle(BaseModel):
    """The organisation being backed up and the credential used to reach it."""

    model_config = ConfigDict(frozen=True)

    name: str
    token: SecretStr

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, value: str) -> str:
        """Strip surrounding slashes and whitespace and reject blank names."""
        value = value.strip().strip("/")
        if not value or "/" in value:
            raise ValueError("Organisation name must be a single non-empty path segment.")
        return value


class RepositoryDescriptor(BaseModel):
    """One repository entry from the organisation listing.

    Only ``name`` and ``clone_url`` drive the backup. The remaining fields are
    informational and come straight from the GitHub API payload.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    clone_url: str
    full_name: str | None = None
    default_branch: str | None = None
    archived: bool = False
    disabled: bool = False

    @property
    def label(self) -> str:
        """Human-readable identifier for log output."""
        return self.full_name or self.name


class RepositoryPage(BaseModel):
    """A single page of the organisation listing.

    ``has_next`` is ``None`` when the response carried no pagination metadata, in
    which case the page size alone decides whether another page is requested.
    """

    model_config = ConfigDict(frozen=True)

    items: list[RepositoryDescriptor] = Field(default_factory=list)
    has_next: bool | None = None
