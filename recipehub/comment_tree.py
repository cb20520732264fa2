# recipehub/comment_tree.py
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from recipehub.models import AuthorSnapshot, Comment, CommentNode


class OrphanPolicy(str, Enum):
    """What to do with a reply whose parent is not in the fetched list."""

    DROP = "drop"
    PROMOTE = "promote"


def _node(comment: Comment, authors: Mapping[str, AuthorSnapshot]) -> CommentNode:
    author = authors.get(comment.user_id) or AuthorSnapshot.unknown()
    return CommentNode(**comment.model_dump(), user=author.model_copy(), replies=[])


def _sort_replies(node: CommentNode) -> None:
    node.replies.sort(key=lambda r: r.created_at)
    for reply in node.replies:
        _sort_replies(reply)


def build_comment_tree(
    comments: Sequence[Comment],
    authors: Optional[Mapping[str, AuthorSnapshot]] = None,
    *,
    orphans: OrphanPolicy = OrphanPolicy.DROP,
) -> List[CommentNode]:
    """
    Rebuild a recipe's thread from a flat list of comments.

    Roots come back newest first, replies oldest first. A reply whose parent is
    missing is dropped unless `orphans=OrphanPolicy.PROMOTE`. Missing authors
    resolve to the "Unknown" placeholder. Input is never mutated.
    """
    if not isinstance(comments, (list, tuple)):
        raise TypeError(f"comments must be a list, got {type(comments).__name__}")
    authors = authors or {}

    index: Dict[str, CommentNode] = {}
    for c in comments:
        index[c.id] = _node(c, authors)

    roots: List[CommentNode] = []
    for c in comments:
        node = index[c.id]
        if c.parent_id:
            parent = index.get(c.parent_id)
            if parent is not None:
                node.parent_user = parent.user.model_copy()
                parent.replies.append(node)
            elif orphans is OrphanPolicy.PROMOTE:
                roots.append(node)
        else:
            roots.append(node)

    # list.sort is stable, reverse=True included
    roots.sort(key=lambda n: n.created_at, reverse=True)
    for root in roots:
        _sort_replies(root)
    return roots


def count_nodes(tree: Sequence[CommentNode]) -> int:
    return sum(1 + count_nodes(n.replies) for n in tree)
