"""
FastAPI application exposing the course shop stores to page controllers.
"""
import time
import logging
from decimal import Decimal
from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from course_shop.config import Config
from course_shop.exceptions import NotFoundError, ValidationError
from course_shop.middleware import RequestLoggingMiddleware
from course_shop.projector import badge_count
from course_shop.redis_client import get_redis_client
from course_shop.scheduling import AsyncioScheduler
from course_shop.storage import MemoryStorage, RedisStorage, StorageAdapter
from course_shop.storefront import Storefront, StorefrontRegistry

logger = logging.getLogger(__name__)


class AddItemRequest(BaseModel):
    """Request model for adding a course to the cart"""
    product_id: str = Field(..., description="Product identifier")
    name: str = Field(..., description="Product name")
    price: Decimal = Field(..., description="Unit price")
    image: str = Field("", description="Image reference")
    author: str = Field("", description="Course author")


class SendMessageRequest(BaseModel):
    content: str = Field(..., description="Message text")


class LoginRequest(BaseModel):
    email: str
    password: str


def build_storage() -> StorageAdapter:
    """Storage backend selected by STORAGE_BACKEND"""
    if Config.STORAGE_BACKEND == "redis":
        return RedisStorage(get_redis_client, ttl_seconds=Config.STORAGE_TTL_SECONDS)
    return MemoryStorage()


# Initialize FastAPI app
app = FastAPI(
    title="ESTIA Learning state API",
    description="Persistent cart, chat and session state for the course shop pages",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

registry = StorefrontRegistry(build_storage(), AsyncioScheduler)


async def get_registry() -> StorefrontRegistry:
    return registry


async def get_storefront(
    client_id: str = Header(..., alias="X-Client-ID", description="Browser storage identifier"),
    storefronts: StorefrontRegistry = Depends(get_registry)
) -> Storefront:
    if not client_id or not client_id.strip():
        raise HTTPException(status_code=400, detail="Client ID is required")
    return storefronts.get(client_id.strip())


def _cart_payload(storefront: Storefront) -> dict:
    items = storefront.cart.items()
    totals = storefront.cart.totals()
    return {
        "items": [item.model_dump(mode="json") for item in items],
        "badge_count": badge_count(items),
        "subtotal": str(totals.subtotal),
        "tax": str(totals.tax),
        "total": str(totals.total),
    }


@app.on_event("shutdown")
async def shutdown():
    registry.close()


@app.get("/health")
async def health_check():
    """Health check; reports the storage backend without failing on it"""
    storage_status = "healthy"
    if Config.STORAGE_BACKEND == "redis":
        try:
            if not get_redis_client().ping():
                storage_status = "unhealthy"
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            storage_status = "unhealthy"

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": "course-shop-state",
            "storage": {"backend": Config.STORAGE_BACKEND, "status": storage_status},
            "timestamp": time.time()
        }
    )


@app.get("/pages/{page}")
async def load_page(page: str, storefront: Storefront = Depends(get_storefront)):
    """Initial read, migration and render for a page"""
    start_time = time.time()
    result = storefront.on_load(page)
    latency_ms = (time.time() - start_time) * 1000
    return {**result.model_dump(), "latency_ms": round(latency_ms, 2)}


# Cart endpoints
@app.get("/cart")
async def get_cart(storefront: Storefront = Depends(get_storefront)):
    return _cart_payload(storefront)


@app.get("/cart/items/{product_id}")
async def get_cart_item(product_id: str, storefront: Storefront = Depends(get_storefront)):
    return storefront.cart.get_item(product_id).model_dump(mode="json")


@app.post("/cart/items")
async def add_cart_item(request: AddItemRequest, storefront: Storefront = Depends(get_storefront)):
    """Add one unit of a course"""
    item = storefront.cart.add(
        request.product_id,
        request.name,
        request.price,
        image=request.image,
        author=request.author,
    )
    return {
        "success": True,
        "message": storefront.notifications.current,
        "product_id": item.id,
        "quantity": item.quantity,
        "elements": storefront.snapshot(),
    }


@app.post("/cart/items/{product_id}/increment")
async def increment_cart_item(product_id: str, storefront: Storefront = Depends(get_storefront)):
    changed = storefront.cart.increment(product_id)
    return {"success": True, "changed": changed, "elements": storefront.snapshot()}


@app.post("/cart/items/{product_id}/decrement")
async def decrement_cart_item(product_id: str, storefront: Storefront = Depends(get_storefront)):
    changed = storefront.cart.decrement(product_id)
    return {"success": True, "changed": changed, "elements": storefront.snapshot()}


@app.delete("/cart/items/{product_id}")
async def remove_cart_item(
    product_id: str,
    remove_all: bool = Query(False, alias="all"),
    storefront: Storefront = Depends(get_storefront)
):
    # Unknown ids are a silent no-op, not a 404
    changed = storefront.cart.remove(product_id, remove_all=remove_all)
    return {"success": True, "changed": changed, "elements": storefront.snapshot()}


@app.delete("/cart")
async def clear_cart(storefront: Storefront = Depends(get_storefront)):
    storefront.cart.clear()
    return {"success": True, "elements": storefront.snapshot()}


# Chat endpoints
@app.get("/chat/messages")
async def list_messages(storefront: Storefront = Depends(get_storefront)):
    return {"messages": [m.model_dump(mode="json") for m in storefront.chat.messages()]}


@app.post("/chat/messages")
async def send_message(request: SendMessageRequest, storefront: Storefront = Depends(get_storefront)):
    """Append a message; the bot reply arrives asynchronously"""
    message = storefront.chat.send(request.content)
    return {"success": True, "message": message.model_dump(mode="json"), "elements": storefront.snapshot()}


@app.delete("/chat/messages")
async def clear_messages(
    confirm: bool = Query(False, description="Must be true: the history cannot be restored"),
    storefront: Storefront = Depends(get_storefront)
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Clearing the chat history requires confirm=true")
    storefront.chat.clear()
    return {"success": True, "elements": storefront.snapshot()}


# Session endpoints
@app.get("/session")
async def get_session(storefront: Storefront = Depends(get_storefront)):
    session = storefront.session.current()
    return {
        "authenticated": session is not None,
        "session": session.model_dump(mode="json") if session else None,
    }


@app.post("/session/login")
async def login(request: LoginRequest, storefront: Storefront = Depends(get_storefront)):
    session = storefront.session.login(request.email, request.password)
    return {"success": True, "message": "Connexion réussie ! Redirection...", "redirect": "profile",
            "session": session.model_dump(mode="json")}


@app.post("/session/logout")
async def logout(storefront: Storefront = Depends(get_storefront)):
    storefront.session.logout()
    return {"success": True, "message": "Déconnexion réussie", "redirect": "login"}


# Error handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "message": str(exc)}
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": "Not found", "message": str(exc)}
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "type": type(exc).__name__
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
