# recipehub/models.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    UNSET = "unset"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        if value is None or value == "":
            return cls.UNSET
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    def to_db(self) -> Optional[str]:
        """Stored column is nullable; UNSET goes back as null."""
        return None if self is Difficulty.UNSET else self.value


class AuthorSnapshot(BaseModel):
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def unknown(cls) -> "AuthorSnapshot":
        return cls(username="Unknown", avatar_url=None)


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None

    def snapshot(self) -> AuthorSnapshot:
        return AuthorSnapshot(username=self.username, avatar_url=self.avatar_url)


# -------------------- comments --------------------
class Comment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    recipe_id: str
    user_id: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    parent_id: Optional[str] = None
    is_deleted: bool = False


class CommentNode(Comment):
    """A comment as rendered in a thread: resolved author, parent author and replies."""

    user: AuthorSnapshot = Field(default_factory=AuthorSnapshot.unknown)
    parent_user: Optional[AuthorSnapshot] = None
    replies: List["CommentNode"] = Field(default_factory=list)


# -------------------- categories / tags --------------------
class Category(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = None
    sort_order: int = 0


class CategoryMatch(BaseModel):
    category_id: str
    category_name: str
    score: int


class Tag(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    usage_count: int = 0


# -------------------- recipes --------------------
class Ingredient(BaseModel):
    name: str
    amount: str = ""
    unit: Optional[str] = None
    note: Optional[str] = None
    category: Optional[str] = None


class RecipeStep(BaseModel):
    step_number: int
    instruction: str
    image_url: Optional[str] = None
    timer_minutes: Optional[int] = None


class Recipe(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    servings: Optional[int] = None
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    difficulty: Difficulty = Difficulty.UNSET
    category_id: Optional[str] = None
    category: Optional[Category] = None
    tags: List[str] = Field(default_factory=list)
    ingredients: List[Ingredient] = Field(default_factory=list)
    steps: List[RecipeStep] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[AuthorSnapshot] = None
    average_rating: float = 0.0
    rating_count: int = 0
    favorite_count: int = 0

    @field_validator("difficulty", mode="before")
    @classmethod
    def _difficulty(cls, v: Any) -> Difficulty:
        return Difficulty.parse(v)

    @field_validator("tags", "ingredients", "steps", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return [] if v is None else v


# -------------------- analytics --------------------
class EventType(str, Enum):
    PAGE_VIEW = "page_view"
    VIEW_RECIPE = "view_recipe"
    CREATE_RECIPE = "create_recipe"
    EDIT_RECIPE = "edit_recipe"
    DELETE_RECIPE = "delete_recipe"
    FAVORITE_RECIPE = "favorite_recipe"
    UNFAVORITE_RECIPE = "unfavorite_recipe"
    RATE_RECIPE = "rate_recipe"
    ADD_COMMENT = "add_comment"
    EDIT_COMMENT = "edit_comment"
    DELETE_COMMENT = "delete_comment"
    SEARCH_RECIPES = "search_recipes"
    START_COOKING_MODE = "start_cooking_mode"
    EXPORT_RECIPE = "export_recipe"
    VIEW_PROFILE = "view_profile"
    FOLLOW_USER = "follow_user"
    UNFOLLOW_USER = "unfollow_user"
    LOGIN = "login"
    SIGNUP = "signup"
    UPDATE_PROFILE = "update_profile"


class UserEvent(BaseModel):
    event_type: EventType
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    event_data: Dict[str, Any] = Field(default_factory=dict)
    page_path: Optional[str] = None
    page_title: Optional[str] = None
    user_agent: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json")
        # ip is never recorded
        row["ip_address"] = None
        return row


# -------------------- follows / listing filters --------------------
class FollowedProfile(Profile):
    followed_at: Optional[datetime] = None


class RecipeFilters(BaseModel):
    user_id: Optional[str] = None
    category_ids: List[str] = Field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    search: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    ingredients: List[str] = Field(default_factory=list)
