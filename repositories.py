from typing import List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.collection import Collection

from schemas import Food, Purchase

TRENDING_LIMIT = 5


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return data.copy()


class FoodRepository:
    """Single-document reads and writes on the food collection."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def list(self, user_email: Optional[str] = None) -> List[dict]:
        filt = {"userEmail": user_email} if user_email else {}
        return list(self.collection.find(filt))

    def trending(self, limit: int = TRENDING_LIMIT) -> List[dict]:
        return list(self.collection.find({}).sort("quantity", -1).limit(limit))

    def get(self, food_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one({"_id": food_id})

    def insert(self, food: Union[Food, dict]) -> dict:
        doc = _to_dict(food)
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def decrement_quantity(self, food_id: ObjectId, amount: int) -> None:
        self.collection.update_one({"_id": food_id}, {"$inc": {"quantity": -amount}})

    def decrement_if_available(self, food_id: ObjectId, amount: int) -> Optional[dict]:
        """
        Check and decrement stock in one server-side update.

        Returns the updated document, or None when the item is missing or
        holds fewer than `amount` units.
        """
        return self.collection.find_one_and_update(
            {"_id": food_id, "quantity": {"$gte": amount}},
            {"$inc": {"quantity": -amount}},
            return_document=ReturnDocument.AFTER,
        )


class PurchaseRepository:
    def __init__(self, collection: Collection):
        self.collection = collection

    def insert(self, purchase: Union[Purchase, dict]) -> str:
        result = self.collection.insert_one(_to_dict(purchase))
        return str(result.inserted_id)
