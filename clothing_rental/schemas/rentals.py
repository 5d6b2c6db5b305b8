from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict

# Money fields accept strings so the engine can report a non-numeric amount
# with its own message instead of a schema error.
Amount = Optional[Union[Decimal, str]]


class NewCustomerDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class RentalLineItemDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    clothingItemID: Optional[int] = None
    price: Amount = None
    notes: Optional[str] = None


class CreateRentalDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    customerID: Optional[int] = None
    newCustomer: Optional[NewCustomerDto] = None
    clothingItemID: Optional[int] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    notes: Optional[str] = None
    discount: Amount = None
    manualTotalPrice: Amount = None
    needsAdjustment: bool = False
    isCustomOrder: bool = False
    rentalItems: List[RentalLineItemDto] = []


class StatusChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str


class ReturnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    returnCondition: str
    returnNotes: Optional[str] = None
    additionalFees: Amount = None
