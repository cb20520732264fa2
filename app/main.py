# app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field

from app.settings import settings
from recipehub.comment_tree import OrphanPolicy
from recipehub.export import export_recipe_as_json, export_recipe_as_text
from recipehub.models import Difficulty, EventType, RecipeFilters
from recipehub.pagination import clamp_window
from recipehub.store_factory import get_store
from recipehub.store_rest import RecipeStore
from recipehub.tags import generate_tag_slug
from recipehub.telemetry import Telemetry

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOG = logging.getLogger(__name__)


# ---------- lifecycle ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_store()
    app.state.telemetry = Telemetry(
        sink=store.insert_events,
        max_logs=settings.DEBUG_LOG_LIMIT,
        enabled=settings.DEBUG_LOGS,
    )
    LOG.info("recipehub started (env=%s)", settings.ENV)
    try:
        yield
    finally:
        sent = await app.state.telemetry.close()
        LOG.info("recipehub stopped, flushed %d events", sent)


app = FastAPI(title="recipehub API", lifespan=lifespan)


# ---------- dependencies ----------
def get_telemetry(request: Request) -> Telemetry:
    return request.app.state.telemetry


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    # identity comes from the auth proxy in front of us
    if not x_user_id:
        raise HTTPException(401, "User not authenticated")
    return x_user_id


def optional_user(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id or None


def page_window(limit: Optional[int] = None, offset: int = 0):
    return clamp_window(limit, offset, default=settings.DEFAULT_PAGE_SIZE, maximum=settings.MAX_PAGE_SIZE)


# ---------- request bodies ----------
class CommentIn(BaseModel):
    content: str
    parent_id: Optional[str] = None


class CommentEdit(BaseModel):
    content: str


class CategorizeIn(BaseModel):
    title: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    limit: Optional[int] = None


class EventIn(BaseModel):
    event_type: EventType
    session_id: Optional[str] = None
    data: dict = Field(default_factory=dict)
    page_path: Optional[str] = None
    page_title: Optional[str] = None


# ---------- errors ----------
@app.exception_handler(httpx.HTTPError)
async def upstream_error(request: Request, exc: httpx.HTTPError):
    telemetry = getattr(request.app.state, "telemetry", None)
    if telemetry is not None:
        telemetry.error("store", f"{request.method} {request.url.path}", exc)
    else:
        LOG.error("store call failed on %s: %s", request.url.path, exc)
    return JSONResponse({"detail": f"upstream failed: {exc}"}, status_code=502)


# ---------- basics ----------
@app.get("/health")
async def health():
    return {"ok": True, "env": settings.ENV}


# ---------- recipes ----------
@app.get("/recipes")
async def list_recipes(
    search: Optional[str] = None,
    category_id: Optional[List[str]] = Query(None),
    difficulty: Optional[Difficulty] = None,
    tags: Optional[List[str]] = Query(None),
    ingredients: Optional[List[str]] = Query(None),
    user_id: Optional[str] = None,
    window=Depends(page_window),
    store: RecipeStore = Depends(get_store),
):
    limit, offset = window
    filters = RecipeFilters(
        user_id=user_id,
        category_ids=category_id or [],
        difficulty=difficulty,
        search=search,
        tags=tags or [],
        ingredients=ingredients or [],
    )
    return await store.list_recipes(filters, limit=limit, offset=offset)


@app.get("/recipes/{recipe_id}")
async def recipe_detail(
    recipe_id: str,
    background: BackgroundTasks,
    user: Optional[str] = Depends(optional_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    recipe = await store.get_recipe(recipe_id)
    if recipe is None:
        raise HTTPException(404, "recipe not found")
    telemetry.track(EventType.VIEW_RECIPE, user_id=user, data={"recipe_id": recipe_id})
    background.add_task(telemetry.flush)
    return recipe


@app.get("/recipes/{recipe_id}/export")
async def recipe_export(
    recipe_id: str,
    background: BackgroundTasks,
    format: str = Query("text", pattern="^(text|json)$"),
    user: Optional[str] = Depends(optional_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    recipe = await store.get_recipe(recipe_id)
    if recipe is None:
        raise HTTPException(404, "recipe not found")
    telemetry.track(EventType.EXPORT_RECIPE, user_id=user, data={"recipe_id": recipe_id, "format": format})
    background.add_task(telemetry.flush)
    if format == "json":
        return Response(export_recipe_as_json(recipe), media_type="application/json")
    return PlainTextResponse(export_recipe_as_text(recipe))


# ---------- comments ----------
@app.get("/recipes/{recipe_id}/comments")
async def recipe_comments(
    recipe_id: str,
    orphans: OrphanPolicy = OrphanPolicy.DROP,
    store: RecipeStore = Depends(get_store),
):
    return await store.get_comment_tree(recipe_id, orphans=orphans)


@app.post("/recipes/{recipe_id}/comments", status_code=201)
async def add_comment(
    recipe_id: str,
    body: CommentIn,
    background: BackgroundTasks,
    user: str = Depends(current_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    try:
        node = await store.create_comment(recipe_id, user, body.content, parent_id=body.parent_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    telemetry.track(EventType.ADD_COMMENT, user_id=user, data={"recipe_id": recipe_id, "reply": bool(body.parent_id)})
    background.add_task(telemetry.flush)
    return node


@app.patch("/comments/{comment_id}")
async def edit_comment(
    comment_id: str,
    body: CommentEdit,
    background: BackgroundTasks,
    user: str = Depends(current_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    try:
        node = await store.update_comment(comment_id, user, body.content)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if node is None:
        raise HTTPException(404, "comment not found")
    telemetry.track(EventType.EDIT_COMMENT, user_id=user, data={"comment_id": comment_id})
    background.add_task(telemetry.flush)
    return node


@app.delete("/comments/{comment_id}")
async def remove_comment(
    comment_id: str,
    background: BackgroundTasks,
    user: str = Depends(current_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    if not await store.delete_comment(comment_id, user):
        raise HTTPException(404, "comment not found")
    telemetry.track(EventType.DELETE_COMMENT, user_id=user, data={"comment_id": comment_id})
    background.add_task(telemetry.flush)
    return {"deleted": True}


# ---------- categories / tags ----------
@app.get("/categories")
async def categories(store: RecipeStore = Depends(get_store)):
    return await store.get_categories()


@app.get("/categories/{slug}/recipes")
async def category_recipes(slug: str, window=Depends(page_window), store: RecipeStore = Depends(get_store)):
    category = await store.get_category_by_slug(slug)
    if category is None:
        raise HTTPException(404, "category not found")
    limit, offset = window
    page = await store.list_recipes(RecipeFilters(category_ids=[category.id]), limit=limit, offset=offset)
    return {"category": category, "page": page}


@app.post("/categorize")
async def categorize(body: CategorizeIn, store: RecipeStore = Depends(get_store)):
    limit = body.limit if body.limit is not None else settings.SUGGESTION_LIMIT
    best, suggestions = await store.suggest_categories(body.title, body.description, body.tags, limit=limit)
    return {"category_id": best, "suggestions": suggestions}


@app.get("/tags/{key}/recipes")
async def tag_recipes(key: str, window=Depends(page_window), store: RecipeStore = Depends(get_store)):
    limit, offset = window
    tag, page = await store.get_recipes_by_tag(key, limit=limit, offset=offset)
    # canonical slug for links; legacy tags carry a looser stored slug
    return {"tag": tag, "slug": generate_tag_slug(tag.name), "page": page}


# ---------- follows ----------
@app.post("/users/{user_id}/follow")
async def follow_user(
    user_id: str,
    background: BackgroundTasks,
    user: str = Depends(current_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    try:
        await store.follow(user, user_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    telemetry.track(EventType.FOLLOW_USER, user_id=user, data={"following_id": user_id})
    background.add_task(telemetry.flush)
    return {"following": True}


@app.delete("/users/{user_id}/follow")
async def unfollow_user(
    user_id: str,
    background: BackgroundTasks,
    user: str = Depends(current_user),
    store: RecipeStore = Depends(get_store),
    telemetry: Telemetry = Depends(get_telemetry),
):
    await store.unfollow(user, user_id)
    telemetry.track(EventType.UNFOLLOW_USER, user_id=user, data={"following_id": user_id})
    background.add_task(telemetry.flush)
    return {"following": False}


@app.get("/users/{user_id}/follow")
async def follow_status(user_id: str, user: str = Depends(current_user), store: RecipeStore = Depends(get_store)):
    return {"following": await store.is_following(user, user_id)}


@app.get("/users/{user_id}/followers")
async def followers(user_id: str, window=Depends(page_window), store: RecipeStore = Depends(get_store)):
    limit, offset = window
    return await store.get_followers(user_id, limit=limit, offset=offset)


@app.get("/users/{user_id}/following")
async def following(user_id: str, window=Depends(page_window), store: RecipeStore = Depends(get_store)):
    limit, offset = window
    return await store.get_following(user_id, limit=limit, offset=offset)


# ---------- analytics / debug ----------
@app.post("/events", status_code=202)
async def track_event(
    body: EventIn,
    request: Request,
    background: BackgroundTasks,
    user: Optional[str] = Depends(optional_user),
    telemetry: Telemetry = Depends(get_telemetry),
):
    event = telemetry.track(
        body.event_type,
        user_id=user,
        session_id=body.session_id,
        data=body.data,
        page_path=body.page_path,
        page_title=body.page_title,
        user_agent=request.headers.get("user-agent"),
    )
    background.add_task(telemetry.flush)
    return {"queued": True, "session_id": event.session_id}


@app.get("/debug/logs")
async def debug_logs(telemetry: Telemetry = Depends(get_telemetry)):
    return Response(telemetry.logs_as_json(), media_type="application/json")
