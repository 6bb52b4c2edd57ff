from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(BaseModel):
    """Upstream live category (unknown fields are passed through)"""
    model_config = ConfigDict(extra="allow")

    category_id: str = Field(..., description="Upstream category ID")
    category_name: str = Field("", description="Category display name")
    parent_id: int = Field(0, description="Parent category ID")

    @field_validator("category_id", mode="before")
    @classmethod
    def coerce_category_id(cls, v) -> str:
        """Providers send category IDs as numbers or strings"""
        return "" if v is None else str(v)

    @field_validator("category_name", mode="before")
    @classmethod
    def coerce_category_name(cls, v) -> str:
        return "" if v is None else str(v)

    @field_validator("parent_id", mode="before")
    @classmethod
    def coerce_parent_id(cls, v) -> int:
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0


class Stream(BaseModel):
    """Upstream live stream; ``epg_channel_id`` is filled in by enrichment"""
    model_config = ConfigDict(extra="allow", validate_assignment=False)

    stream_id: int = Field(..., description="Upstream numeric stream ID")
    name: str = Field("", description="Stream display name")
    epg_channel_id: str = Field("", description="EPG channel ID (may be empty)")
    category_id: str | None = Field(None, description="Upstream category ID")
    stream_icon: str = Field("", description="Logo URL")

    @field_validator("name", "epg_channel_id", "stream_icon", mode="before")
    @classmethod
    def coerce_text(cls, v) -> str:
        """Providers send null for unknown text fields"""
        return "" if v is None else str(v)

    @field_validator("category_id", mode="before")
    @classmethod
    def coerce_category_id(cls, v) -> str | None:
        return None if v is None else str(v)


class ShortEpgListing(BaseModel):
    """Single ``get_short_epg`` listing (title and description base64-encoded)"""
    id: str
    epg_id: str
    title: str
    lang: str
    start: str
    end: str
    description: str
    channel_id: str
    start_timestamp: str
    stop_timestamp: str
    now_playing: int
    has_archive: int


class ShortEpgResponse(BaseModel):
    epg_listings: list[ShortEpgListing] = Field(default_factory=list)


class ProviderCreate(BaseModel):
    """Upstream credentials submitted for registration"""
    url: str = Field(..., min_length=1, description="Provider base URL")
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ProviderResponse(BaseModel):
    id: str
    short_code: str
    channel_count: int
    category_count: int


class CatalogResponse(BaseModel):
    """Enriched upstream catalog for channel selection"""
    provider_id: str
    categories: list[Category]
    streams: list[Stream]
    fetched_at: float


class SelectionRequest(BaseModel):
    stream_ids: list[int] = Field(..., description="Selected upstream stream IDs")


class SelectionResponse(BaseModel):
    provider_id: str
    short_code: str
    stream_ids: list[int]
    count: int


class RefreshResponse(BaseModel):
    """Summary of a forced EPG refresh"""
    status: str
    fetched_at: float
    sources_configured: int
    channels: int
    programmes: int

