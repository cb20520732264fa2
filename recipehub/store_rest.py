# recipehub/store_rest.py
from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from recipehub.categorize import auto_categorize, category_suggestions
from recipehub.comment_tree import OrphanPolicy, build_comment_tree, count_nodes
from recipehub.db_rest import SupabaseREST, error_code, in_list, quote_value
from recipehub.models import (
    Category,
    CategoryMatch,
    CommentNode,
    Comment,
    FollowedProfile,
    Profile,
    Recipe,
    RecipeFilters,
    Tag,
    UserEvent,
)
from recipehub.pagination import Page
from recipehub.tags import TagResolver, decode_tag_slug, legacy_tag

LOG = logging.getLogger(__name__)

JSON = Dict[str, Any]

PROFILE_COLUMNS = "id,username,display_name,avatar_url,bio"
TAG_COLUMNS = "id,name,slug,description,usage_count"
UNIQUE_VIOLATION = "23505"


def _eq(value: Any) -> str:
    return f"eq.{value}"


def _visible(row: JSON) -> bool:
    # rows predating the status/is_public columns count as published + public
    return row.get("status") in ("published", None) and row.get("is_public") in (True, None)


def _partial_tag_match(recipe_tags: Iterable[str], wanted: Sequence[str]) -> bool:
    # "韓式" matches "韓式料理" and the other way round
    tags = list(recipe_tags or [])
    return any(t in rt or rt in t for t in wanted for rt in tags)


def _ingredient_match(ingredients: Iterable[JSON], keywords: Sequence[str]) -> bool:
    names = [str((ing or {}).get("name") or "").lower() for ing in ingredients or []]
    return any(kw.lower() in name for kw in keywords for name in names)


class RecipeStore:
    def __init__(self, rest: SupabaseREST):
        self.rest = rest
        self.tags = TagResolver([("slug", self.get_tag_by_slug), ("name", self.get_tag_by_name)])

    # -------------------- profiles --------------------
    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = sorted({u for u in user_ids if u})
        if not ids:
            return {}
        rows = await self.rest.select("profiles", {"select": PROFILE_COLUMNS, "id": in_list(ids)})
        return {r["id"]: Profile.model_validate(r) for r in rows}

    # -------------------- comments --------------------
    async def get_comment_tree(
        self, recipe_id: str, *, orphans: OrphanPolicy = OrphanPolicy.DROP
    ) -> List[CommentNode]:
        rows = await self.rest.select(
            "comments",
            {"select": "*", "recipe_id": _eq(recipe_id), "order": "created_at.asc"},
        )
        if not rows:
            return []
        comments = [Comment.model_validate(r) for r in rows]
        profiles = await self.get_profiles(c.user_id for c in comments)
        authors = {uid: p.snapshot() for uid, p in profiles.items()}

        tree = build_comment_tree(comments, authors, orphans=orphans)
        dropped = len(comments) - count_nodes(tree)
        if dropped:
            LOG.info("recipe %s: %d orphaned replies left out of the thread", recipe_id, dropped)
        return tree

    async def _comment_node(self, row: JSON) -> CommentNode:
        profiles = await self.get_profiles([row["user_id"]])
        p = profiles.get(row["user_id"])
        node = CommentNode.model_validate(row)
        if p is not None:
            node.user = p.snapshot()
        return node

    async def create_comment(
        self, recipe_id: str, user_id: str, content: str, parent_id: Optional[str] = None
    ) -> CommentNode:
        content = (content or "").strip()
        if not content:
            raise ValueError("comment content is empty")
        payload: JSON = {"recipe_id": recipe_id, "user_id": user_id, "content": content}
        if parent_id:
            payload["parent_id"] = parent_id
        rows = await self.rest.insert("comments", [payload], params={"select": "*"})
        if not rows:
            raise RuntimeError("comment insert returned no row")
        return await self._comment_node(rows[0])

    async def update_comment(self, comment_id: str, user_id: str, content: str) -> Optional[CommentNode]:
        """Returns None when the comment does not exist or belongs to someone else."""
        content = (content or "").strip()
        if not content:
            raise ValueError("comment content is empty")
        rows = await self.rest.update(
            "comments",
            {"id": _eq(comment_id), "user_id": _eq(user_id)},
            {"content": content},
            params={"select": "*"},
        )
        if not rows:
            return None
        return await self._comment_node(rows[0])

    async def delete_comment(self, comment_id: str, user_id: str) -> bool:
        rows = await self.rest.delete("comments", {"id": _eq(comment_id), "user_id": _eq(user_id)})
        return bool(rows)

    # -------------------- categories --------------------
    async def get_categories(self) -> List[Category]:
        rows = await self.rest.select("categories", {"select": "*", "order": "sort_order.asc,name.asc"})
        return [Category.model_validate(r) for r in rows]

    async def get_category_by_slug(self, slug: str) -> Optional[Category]:
        rows = await self.rest.select("categories", {"select": "*", "slug": _eq(slug), "limit": "1"})
        return Category.model_validate(rows[0]) if rows else None

    async def suggest_categories(
        self, title: str, description: Optional[str], tags: Sequence[str], limit: int = 3
    ) -> Tuple[Optional[str], List[CategoryMatch]]:
        categories = await self.get_categories()
        best = auto_categorize(title, description, tags, categories)
        return best, category_suggestions(title, description, tags, categories, limit=limit)

    # -------------------- tags --------------------
    async def get_tag_by_slug(self, slug: str) -> Optional[Tag]:
        rows = await self.rest.select("tags", {"select": TAG_COLUMNS, "slug": _eq(slug), "limit": "1"})
        return Tag.model_validate(rows[0]) if rows else None

    async def get_tag_by_name(self, name: str) -> Optional[Tag]:
        # ilike without wildcards: case-insensitive equality
        rows = await self.rest.select("tags", {"select": TAG_COLUMNS, "name": f"ilike.{name.strip()}", "limit": "1"})
        return Tag.model_validate(rows[0]) if rows else None

    async def resolve_tag(self, key: str) -> Optional[Tag]:
        return await self.tags.resolve(decode_tag_slug(key))

    async def get_recipes_by_tag(self, key: str, *, limit: int = 12, offset: int = 0) -> Tuple[Tag, Page[Recipe]]:
        name = decode_tag_slug(key).strip()
        tag = await self.tags.resolve(name)
        if tag is not None:
            total = await self.rest.count("recipe_tags", {"tag_id": _eq(tag.id)})
            links = await self.rest.select(
                "recipe_tags",
                {
                    "select": "recipe_id",
                    "tag_id": _eq(tag.id),
                    "order": "created_at.desc",
                    "limit": str(limit),
                    "offset": str(offset),
                },
            )
            ids = [r["recipe_id"] for r in links]
            rows: List[JSON] = []
            if ids:
                rows = await self.rest.select(
                    "recipes",
                    {
                        "select": "*",
                        "id": in_list(ids),
                        "status": "eq.published",
                        "is_public": "eq.true",
                        "order": "created_at.desc",
                    },
                )
            recipes = await self._hydrate(rows)
            return tag, Page.from_rows(recipes, limit=limit, offset=offset, total=total, fetched=len(links))

        # tags that only exist in the legacy recipes.tags jsonb array
        legacy_filter = {
            "tags": "cs." + json.dumps([name], ensure_ascii=False),
            "status": "eq.published",
            "is_public": "eq.true",
        }
        rows = await self.rest.select(
            "recipes",
            {"select": "*", **legacy_filter, "order": "created_at.desc", "limit": str(limit), "offset": str(offset)},
        )
        total = await self.rest.count("recipes", legacy_filter)
        recipes = await self._hydrate(rows)
        return legacy_tag(name, total), Page.from_rows(recipes, limit=limit, offset=offset, total=total)

    # -------------------- recipes --------------------
    async def _hydrate(self, rows: List[JSON]) -> List[Recipe]:
        """Attach author, category, rating and favorite stats to raw recipe rows."""
        if not rows:
            return []
        ids = [r["id"] for r in rows]
        profiles = await self.get_profiles(r.get("user_id") for r in rows)

        cat_ids = sorted({r["category_id"] for r in rows if r.get("category_id")})
        categories: Dict[str, Category] = {}
        if cat_ids:
            cat_rows = await self.rest.select("categories", {"select": "*", "id": in_list(cat_ids)})
            categories = {c["id"]: Category.model_validate(c) for c in cat_rows}

        ratings: Dict[str, List[float]] = defaultdict(list)
        for r in await self.rest.select("recipe_ratings", {"select": "recipe_id,rating", "recipe_id": in_list(ids)}):
            ratings[r["recipe_id"]].append(float(r["rating"]))
        favorites: Dict[str, int] = defaultdict(int)
        for f in await self.rest.select("recipe_favorites", {"select": "recipe_id", "recipe_id": in_list(ids)}):
            favorites[f["recipe_id"]] += 1

        out: List[Recipe] = []
        for row in rows:
            recipe = Recipe.model_validate(row)
            p = profiles.get(recipe.user_id)
            recipe.user = p.snapshot() if p else None
            if recipe.category_id:
                recipe.category = categories.get(recipe.category_id)
            scores = ratings.get(recipe.id, [])
            recipe.average_rating = sum(scores) / len(scores) if scores else 0.0
            recipe.rating_count = len(scores)
            recipe.favorite_count = favorites.get(recipe.id, 0)
            out.append(recipe)
        return out

    async def _ids_matching(self, filters: RecipeFilters) -> Optional[List[str]]:
        """
        Tag and ingredient filters run in memory (jsonb containment does not do
        partial matches). None means "no id restriction".
        """
        if not filters.tags and not filters.ingredients:
            return None
        rows = await self.rest.select("recipes", {"select": "id,tags,ingredients,status,is_public"})
        keep: List[str] = []
        for row in rows:
            if not _visible(row):
                continue
            if filters.tags and not _partial_tag_match(row.get("tags") or [], filters.tags):
                continue
            if filters.ingredients and not _ingredient_match(row.get("ingredients") or [], filters.ingredients):
                continue
            keep.append(row["id"])
        LOG.debug("in-memory recipe filter kept %d of %d", len(keep), len(rows))
        return keep

    async def list_recipes(
        self, filters: Optional[RecipeFilters] = None, *, limit: int = 12, offset: int = 0
    ) -> Page[Recipe]:
        filters = filters or RecipeFilters()
        ids = await self._ids_matching(filters)
        if ids is not None and not ids:
            return Page.from_rows([], limit=limit, offset=offset)

        params: Dict[str, str] = {
            "select": "*",
            "order": "created_at.desc",
            "limit": str(limit),
            "offset": str(offset),
        }
        if filters.user_id:
            params["user_id"] = _eq(filters.user_id)
        if len(filters.category_ids) == 1:
            params["category_id"] = _eq(filters.category_ids[0])
        elif filters.category_ids:
            params["category_id"] = in_list(filters.category_ids)
        if ids is not None:
            params["id"] = in_list(ids)
        if filters.search:
            pattern = quote_value(f"*{filters.search.strip()}*")
            params["or"] = f"(title.ilike.{pattern},description.ilike.{pattern})"
        if filters.difficulty is not None:
            d = filters.difficulty.to_db()
            params["difficulty"] = _eq(d) if d else "is.null"

        rows = await self.rest.select("recipes", params)
        return Page.from_rows(await self._hydrate(rows), limit=limit, offset=offset)

    async def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        rows = await self.rest.select("recipes", {"select": "*", "id": _eq(recipe_id), "limit": "1"})
        if not rows:
            return None
        return (await self._hydrate(rows))[0]

    # -------------------- follows --------------------
    async def follow(self, follower_id: str, following_id: str) -> bool:
        if follower_id == following_id:
            raise ValueError("Cannot follow yourself")
        try:
            await self.rest.insert(
                "follows",
                [{"follower_id": follower_id, "following_id": following_id}],
                return_representation=False,
            )
        except httpx.HTTPStatusError as e:
            if error_code(e) == UNIQUE_VIOLATION:
                return True
            raise
        return True

    async def unfollow(self, follower_id: str, following_id: str) -> bool:
        await self.rest.delete(
            "follows",
            {"follower_id": _eq(follower_id), "following_id": _eq(following_id)},
            return_representation=False,
        )
        return True

    async def is_following(self, follower_id: str, following_id: str) -> bool:
        rows = await self.rest.select(
            "follows",
            {
                "select": "follower_id",
                "follower_id": _eq(follower_id),
                "following_id": _eq(following_id),
                "limit": "1",
            },
        )
        return bool(rows)

    async def _follow_list(self, user_id: str, *, side: str, other: str, limit: int, offset: int) -> Page[FollowedProfile]:
        rows = await self.rest.select(
            "follows",
            {
                "select": f"{other},created_at",
                side: _eq(user_id),
                "order": "created_at.desc",
                "limit": str(limit),
                "offset": str(offset),
            },
        )
        profiles = await self.get_profiles(r[other] for r in rows)
        items: List[FollowedProfile] = []
        for r in rows:
            p = profiles.get(r[other])
            base = p.model_dump() if p else {"id": r[other]}
            items.append(FollowedProfile(**base, followed_at=r.get("created_at")))
        return Page.from_rows(items, limit=limit, offset=offset)

    async def get_followers(self, user_id: str, *, limit: int = 50, offset: int = 0) -> Page[FollowedProfile]:
        return await self._follow_list(user_id, side="following_id", other="follower_id", limit=limit, offset=offset)

    async def get_following(self, user_id: str, *, limit: int = 50, offset: int = 0) -> Page[FollowedProfile]:
        return await self._follow_list(user_id, side="follower_id", other="following_id", limit=limit, offset=offset)

    # -------------------- analytics --------------------
    async def insert_events(self, events: Sequence[UserEvent]) -> int:
        if not events:
            return 0
        await self.rest.insert("user_events", [e.to_row() for e in events], return_representation=False)
        return len(events)
