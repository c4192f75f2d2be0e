"""
Pydantic model of the Schema.org Product JSON-LD accepted from the generator.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import GenerationFailure

SCHEMA_CONTEXT = 'https://schema.org'


class Brand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal['Brand'] = Field('Brand', alias='@type')
    name: str


class Offer(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    type: Literal['Offer'] = Field('Offer', alias='@type')
    price: Optional[str] = None
    price_currency: Optional[str] = Field(None, alias='priceCurrency')
    availability: Optional[str] = None


class ProductSchema(BaseModel):
    """Schema.org Product; required fields mirror what rich results need."""
    model_config = ConfigDict(populate_by_name=True)

    context: Literal['https://schema.org'] = Field(alias='@context')
    type: Literal['Product'] = Field(alias='@type')
    name: str
    description: str
    brand: Brand
    sku: Optional[str] = None
    category: Optional[str] = None
    material: Optional[str] = None
    color: Optional[str] = None
    offers: Optional[Offer] = None


def validate_schema(payload) -> dict:
    """Validate a generator response; return it as alias-keyed JSON-LD or raise GenerationFailure."""
    if not isinstance(payload, dict):
        raise GenerationFailure(f"Generator returned {type(payload).__name__}, expected a JSON object.")
    try:
        schema = ProductSchema.model_validate(payload)
    except ValidationError as exc:
        raise GenerationFailure(f"Generated schema failed validation: {exc.error_count()} error(s): {exc}") from exc
    return schema.model_dump(by_alias=True, exclude_none=True)
