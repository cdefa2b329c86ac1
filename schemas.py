"""
Database Schemas

Pydantic models for the two MongoDB collections and the request bodies that
feed them:
- Food -> "all-foods" collection
- Purchase -> "purchases" collection

Request bodies keep every field optional so that presence is checked by the
handlers (falsy values count as missing) rather than rejected by FastAPI.
"""

from datetime import datetime, timezone
from typing import List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

Numeric = Union[int, float, str]

FOOD_REQUIRED_FIELDS = (
    "name",
    "price",
    "quantity",
    "foodImage",
    "category",
    "description",
    "foodOrigin",
    "userEmail",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Food(BaseModel):
    """
    Food item document
    Collection name: "all-foods"
    """
    name: str = Field(..., description="Food name")
    price: float = Field(..., description="Unit price")
    quantity: int = Field(..., description="Units in stock")
    foodImage: str = Field(..., description="Image URL")
    category: str = Field(..., description="Food category")
    description: str = Field(..., description="Free-text description")
    foodOrigin: str = Field(..., description="Country or region of origin")
    purchases: int = Field(0, description="Purchase counter")
    userEmail: str = Field(..., description="Email of the user who added the item")
    dateAdded: datetime = Field(default_factory=utcnow)


class Purchase(BaseModel):
    """
    Purchase record document
    Collection name: "purchases"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    foodId: ObjectId
    quantity: int
    date: datetime = Field(default_factory=utcnow)


class FoodCreate(BaseModel):
    name: Optional[str] = None
    price: Optional[Numeric] = None
    quantity: Optional[Numeric] = None
    foodImage: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    foodOrigin: Optional[str] = None
    purchases: Optional[Numeric] = None
    userEmail: Optional[str] = None

    def missing_fields(self) -> List[str]:
        # Known defect kept on purpose: 0 and "" count as missing, so a price
        # or quantity of exactly 0 is rejected.
        return [f for f in FOOD_REQUIRED_FIELDS if not getattr(self, f)]


class PurchaseCreate(BaseModel):
    foodId: Optional[str] = None
    quantity: Optional[Numeric] = None


class MessageResponse(BaseModel):
    message: str
