"""Pydantic schemas for the repair analysis returned to clients.

Every record is closed (extra="forbid"): the model is not allowed to invent
keys, and scalar fields are strict so that numbers are never coerced into
strings or the other way round.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr

Probability = Annotated[float, Field(strict=True, ge=0.0, le=1.0)]


class Material(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: StrictStr
    spec: Optional[StrictStr] = None
    qty: Optional[StrictStr] = None
    description: Optional[StrictStr] = None
    alt: Optional[List[StrictStr]] = None
    # Filled in by product enrichment
    image_url: Optional[StrictStr] = None
    product_url: Optional[StrictStr] = None
    store_name: Optional[StrictStr] = None


class Tool(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: StrictStr
    purpose: Optional[StrictStr] = None
    description: Optional[StrictStr] = None
    image_url: Optional[StrictStr] = None
    product_url: Optional[StrictStr] = None
    store_name: Optional[StrictStr] = None


class VideoResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: StrictStr
    title: StrictStr
    channel: Optional[StrictStr] = None
    views: Optional[StrictStr] = None
    duration: Optional[StrictStr] = None


class RepairAnalysis(BaseModel):
    """
    Structured repair plan. `steps` order is the procedure order;
    `materials` and `tools` keep the order the model produced them in.
    """
    model_config = ConfigDict(extra="forbid")

    materials: List[Material]
    tools: List[Tool]
    steps: List[StrictStr]
    likelihood: Optional[Dict[StrictStr, Probability]] = None
    safety: Optional[List[StrictStr]] = None
    youtube_url: Optional[StrictStr] = None
    youtube_search_term: Optional[StrictStr] = None
    youtube_videos: Optional[List[VideoResult]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the wire shape, keeping only keys that were provided or assigned."""
        return self.model_dump(exclude_unset=True)


class ProductInfo(BaseModel):
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    store_name: Optional[str] = None


class ProductResult(BaseModel):
    """A single product tile scraped from a retailer search page."""
    name: str
    image_url: str
    product_url: str
    price: str = "Price not available"
    store: str
