from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Extracted values arrive as text or numbers depending on the page
RawValue = Union[str, int, float]


class RawVehicleRecord(BaseModel):
    """
    One vehicle row as returned by the crawl backend, before normalization.

    Fields are lenient: a value of an unexpected shape becomes ``None`` instead
    of failing the whole row, so one bad field never drops a listing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[RawValue] = None
    make: Optional[RawValue] = None
    model: Optional[RawValue] = None
    year: Optional[RawValue] = None
    price: Optional[RawValue] = None
    mileage: Optional[RawValue] = None
    vin: Optional[RawValue] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    url: Optional[str] = None
    exterior_color: Optional[str] = Field(default=None, alias="exteriorColor")
    interior_color: Optional[str] = Field(default=None, alias="interiorColor")
    features: Optional[List[str]] = None
    page_url: Optional[str] = Field(default=None, alias="pageUrl")

    @field_validator("id", "make", "model", "year", "price", "mileage", "vin", mode="before")
    @classmethod
    def scalar_or_none(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return None
        return value

    @field_validator("image_url", "url", "exterior_color", "interior_color", "page_url", mode="before")
    @classmethod
    def text_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("features", mode="before")
    @classmethod
    def text_items(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return None
        return [item for item in value if isinstance(item, str) and item.strip()]


class ExtractedVehicle(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[str] = None
    price: Optional[str] = None
    mileage: Optional[str] = None
    vin: Optional[str] = None
    imageUrl: Optional[str] = None
    url: Optional[str] = None
    exteriorColor: Optional[str] = None
    interiorColor: Optional[str] = None
    features: Optional[List[str]] = None


class VehicleExtractSchema(BaseModel):
    vehicles: List[ExtractedVehicle] = []
