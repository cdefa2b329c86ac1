import logging
import math
import sys
from contextlib import asynccontextmanager
from typing import Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import Database, connect_database
from repositories import FoodRepository, PurchaseRepository
from schemas import Food, FoodCreate, MessageResponse, Purchase, PurchaseCreate
from settings import ServerSettings, Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


# Utilities

def to_str_id(doc: dict):
    if not doc:
        return doc
    d = {**doc}
    for key in ("_id", "foodId"):
        if isinstance(d.get(key), ObjectId):
            d[key] = str(d[key])
    return d


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid food ID format")


def to_float(value, field: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise HTTPException(status_code=400, detail=f"{field} must be a number")
    # NaN and infinity cannot be rendered back as JSON
    if not math.isfinite(number):
        raise HTTPException(status_code=400, detail=f"{field} must be a number")
    return number


def to_int(value, field: str) -> int:
    # Decimal input is truncated, "3.7" -> 3
    return int(to_float(value, field))


def get_food_repository(request: Request) -> FoodRepository:
    return FoodRepository(request.app.state.db.foods)


def get_purchase_repository(request: Request) -> PurchaseRepository:
    return PurchaseRepository(request.app.state.db.purchases)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def process_purchase(
    foods: FoodRepository,
    purchases: PurchaseRepository,
    food_id: ObjectId,
    quantity: int,
    atomic: bool = False,
) -> str:
    """
    Decrement stock for a food item and record the purchase.

    By default this reads the item, compares stock, then decrements in a
    separate update. Concurrent purchases of the same item can all pass the
    comparison before any decrement lands, so stock may go negative. With
    `atomic` the comparison and decrement happen in one conditional update.

    The decrement and the purchase insert are not transactional: if the insert
    fails the stock stays decremented.
    """
    food = foods.get(food_id)
    if not food:
        raise HTTPException(status_code=404, detail="Food item not found")

    if atomic:
        if foods.decrement_if_available(food_id, quantity) is None:
            raise HTTPException(status_code=400, detail="Not enough stock available")
    else:
        if food.get("quantity", 0) < quantity:
            raise HTTPException(status_code=400, detail="Not enough stock available")
        foods.decrement_quantity(food_id, quantity)

    return purchases.insert(Purchase(foodId=food_id, quantity=quantity))


@router.get("/", response_class=PlainTextResponse)
def read_root():
    return "Server is running!"


@router.get("/foods")
def list_foods(userEmail: Optional[str] = None, foods: FoodRepository = Depends(get_food_repository)):
    try:
        docs = foods.list(user_email=userEmail)
    except Exception:
        logger.exception("Error fetching foods")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    if not docs:
        raise HTTPException(status_code=404, detail="No foods found")
    return [to_str_id(d) for d in docs]


@router.get("/trendingFoods")
def trending_foods(foods: FoodRepository = Depends(get_food_repository)):
    try:
        docs = foods.trending()
    except Exception:
        logger.exception("Error fetching trending foods")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return [to_str_id(d) for d in docs]


@router.get("/foods/{food_id}")
def get_food(food_id: str, foods: FoodRepository = Depends(get_food_repository)):
    _id = parse_object_id(food_id)
    try:
        food = foods.get(_id)
    except Exception:
        logger.exception("Error fetching food details")
        raise HTTPException(status_code=500, detail="Error fetching food details")
    if not food:
        raise HTTPException(status_code=404, detail="Food item not found")
    return to_str_id(food)


@router.post("/foods", status_code=201)
def create_food(payload: Optional[FoodCreate] = None, foods: FoodRepository = Depends(get_food_repository)):
    payload = payload or FoodCreate()
    missing = payload.missing_fields()
    if missing:
        logger.debug("Rejected food creation, missing: %s", ", ".join(missing))
        raise HTTPException(status_code=400, detail="All fields are required")

    food = Food(
        name=payload.name,
        price=to_float(payload.price, "price"),
        quantity=to_int(payload.quantity, "quantity"),
        foodImage=payload.foodImage,
        category=payload.category,
        description=payload.description,
        foodOrigin=payload.foodOrigin,
        purchases=to_int(payload.purchases, "purchases") if payload.purchases else 0,
        userEmail=payload.userEmail,
    )
    try:
        created = foods.insert(food)
    except Exception:
        logger.exception("Error adding food item")
        raise HTTPException(status_code=500, detail="Failed to add food item")
    return to_str_id(created)


@router.post("/purchases", status_code=201, response_model=MessageResponse)
def create_purchase(
    payload: Optional[PurchaseCreate] = None,
    foods: FoodRepository = Depends(get_food_repository),
    purchases: PurchaseRepository = Depends(get_purchase_repository),
    settings: Settings = Depends(get_app_settings),
):
    payload = payload or PurchaseCreate()
    if not payload.foodId or not payload.quantity:
        raise HTTPException(status_code=400, detail="Food ID and Quantity are required")
    food_id = parse_object_id(payload.foodId)
    quantity = to_int(payload.quantity, "quantity")
    if not quantity:
        # 0.4 truncates to 0
        raise HTTPException(status_code=400, detail="Food ID and Quantity are required")

    try:
        purchase_id = process_purchase(foods, purchases, food_id, quantity, atomic=settings.atomic_purchases)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Error processing purchase")
        raise HTTPException(status_code=500, detail="Failed to process purchase")
    logger.info("Recorded purchase %s: %d x food %s", purchase_id, quantity, food_id)
    return {"message": "Purchase processed successfully"}


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.debug("Invalid request body on %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"message": "Invalid request body"})


def create_app(
    settings: Optional[Settings] = None,
    connect: Callable[[Settings], Database] = connect_database,
) -> FastAPI:
    """
    Build the API.

    Credentials and the database connection are resolved in the lifespan so
    that importing this module never touches the network. A failure there
    aborts startup. CORS origins are read when the app is built, so
    `uvicorn main:app` honours CORS_ORIGINS too.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            app.state.settings = settings or get_settings()
        except ValidationError:
            logger.error("Error: Missing DB_USER or DB_PASS in environment variables.")
            raise
        app.state.db = connect(app.state.settings)
        try:
            yield
        finally:
            app.state.db.close()

    app = FastAPI(title="Food Sharing API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=(settings or ServerSettings()).cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router)
    return app


app = create_app()


def run():
    import uvicorn

    try:
        settings = get_settings()
    except ValidationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting server on http://localhost:%d", settings.port)
    # uvicorn exits non-zero if the lifespan cannot reach MongoDB
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
