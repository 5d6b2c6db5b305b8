from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class ClothingItemUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    description: Optional[str] = None
    size: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    rentalPrice: Optional[Union[Decimal, str]] = None
    imageUrl: Optional[str] = None
