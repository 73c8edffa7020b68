"""Pydantic models for the pipeline configuration returned by Concourse."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResourceConfig(BaseModel):
    """A resource declared in a pipeline's configuration.

    Only the fields the relay reads are modelled; everything else Concourse
    returns is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    type: str
    webhook_token: str = ""
    source: dict[str, Any] = Field(default_factory=dict)

    def source_uri(self) -> str | None:
        """Return ``source["uri"]`` if it is present and a string, else None."""
        uri = self.source.get("uri")
        if isinstance(uri, str):
            return uri
        return None


class PipelineConfig(BaseModel):
    """The subset of a pipeline's configuration the relay needs."""

    model_config = ConfigDict(extra="ignore")

    resources: list[ResourceConfig] = Field(default_factory=list)


class PipelineConfigResponse(BaseModel):
    """Envelope of ``GET /api/v1/teams/{team}/pipelines/{pipeline}/config``."""

    model_config = ConfigDict(extra="ignore")

    config: PipelineConfig = Field(default_factory=PipelineConfig)
