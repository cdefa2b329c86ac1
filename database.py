"""
MongoDB connection lifecycle.

`connect_database` opens the client, forces a round trip so an unreachable
cluster fails at startup, and hands back a `Database` exposing the two
collections the API works with.
"""
import logging

from pymongo import MongoClient
from pymongo.collection import Collection

from settings import Settings

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, client: MongoClient, name: str, foods_collection: str, purchases_collection: str):
        self.client = client
        self.db = client[name]
        self.foods: Collection = self.db[foods_collection]
        self.purchases: Collection = self.db[purchases_collection]

    def ping(self) -> None:
        self.client.admin.command("ping")

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")


def connect_database(settings: Settings) -> Database:
    kwargs = {"serverSelectionTimeoutMS": settings.server_selection_timeout_ms, "tz_aware": True}
    if settings.uses_atlas:
        kwargs["tls"] = True
    client = MongoClient(settings.mongo_uri, **kwargs)

    database = Database(
        client,
        settings.db_name,
        settings.foods_collection,
        settings.purchases_collection,
    )
    try:
        database.ping()
    except Exception:
        logger.exception("Error connecting to MongoDB")
        client.close()
        raise

    logger.info("Connected to MongoDB and initialized collections")
    return database
