"""Engine entity models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


class Engine(BaseModel):
    """An App Search engine as returned by the engine listing.

    Identity is the engine ``name``; type and language are informational.
    """

    name: str = Field(..., description='Engine name')
    type: Optional[str] = Field(default=None, description='Engine type')
    language: Optional[str] = Field(default=None, description='Engine language')
    document_count: Optional[int] = Field(default=None, description='Document count')

    class Config:
        """Pydantic configuration."""

        frozen = True
        extra = 'ignore'

    @validator('name')
    def validate_name(cls, v):
        """Validate engine name is not empty."""
        if not v:
            raise ValueError('Engine name must not be empty')
        return v


class EngineInfo(BaseModel):
    """Read-only engine attributes captured at export time."""

    name: str = Field(..., description='Source engine name')
    type: Optional[str] = Field(default=None, description='Engine type')
    language: Optional[str] = Field(default=None, description='Engine language')


class CrawlerConfig(BaseModel):
    """Crawler configuration of an engine.

    Sub-resources carry the ``domain_id`` of the domain they belong to.
    """

    domains: List[Dict[str, Any]] = Field(default_factory=list)
    entry_points: List[Dict[str, Any]] = Field(
        default_factory=list, alias='entryPoints'
    )
    crawl_rules: List[Dict[str, Any]] = Field(default_factory=list, alias='crawlRules')
    sitemaps: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @property
    def is_empty(self) -> bool:
        return not (self.domains or self.entry_points or self.crawl_rules or self.sitemaps)


class EngineExport(BaseModel):
    """Engine configuration as written to and read from an export file."""

    read_only: EngineInfo = Field(..., description='Source engine attributes')
    schema_: Dict[str, str] = Field(
        default_factory=dict, alias='schema', description='Field name to type'
    )
    synonyms: List[Dict[str, Any]] = Field(
        default_factory=list, description='Synonym sets'
    )
    curations: List[Dict[str, Any]] = Field(
        default_factory=list, description='Curations'
    )
    search_settings: Dict[str, Any] = Field(
        default_factory=dict, alias='searchSettings', description='Search settings'
    )
    crawler: Optional[CrawlerConfig] = Field(
        default=None, description='Crawler configuration'
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    def to_json(self) -> str:
        """Serialize using the on-disk field names."""
        return self.model_dump_json(by_alias=True, indent=2)
