# tests/test_comment_tree.py
from datetime import datetime, timedelta, timezone

import pytest

from recipehub.comment_tree import OrphanPolicy, build_comment_tree, count_nodes
from recipehub.models import AuthorSnapshot, Comment

T0 = datetime(2024, 5, 4, 8, 0, tzinfo=timezone.utc)


def mk(cid, minutes, user="u1", parent=None):
    return Comment(
        id=cid,
        recipe_id="r1",
        user_id=user,
        content=f"comment {cid}",
        created_at=T0 + timedelta(minutes=minutes),
        parent_id=parent,
    )


AUTHORS = {
    "u1": AuthorSnapshot(username="alice", avatar_url="a.png"),
    "u2": AuthorSnapshot(username="bob"),
}


def ids(nodes):
    return [n.id for n in nodes]


def test_roots_newest_first_replies_oldest_first():
    comments = [
        mk("a", 0),
        mk("b", 10),
        mk("a2", 30, parent="a"),
        mk("a1", 20, parent="a"),
        mk("c", 5),
    ]
    tree = build_comment_tree(comments, AUTHORS)
    assert ids(tree) == ["b", "c", "a"]
    assert ids(tree[2].replies) == ["a1", "a2"]


def test_single_root_with_three_replies():
    comments = [mk("root", 0), mk("r1", 1, parent="root"), mk("r2", 2, parent="root"), mk("r3", 3, parent="root")]
    tree = build_comment_tree(comments, AUTHORS)
    assert len(tree) == 1
    assert len(tree[0].replies) == 3


def test_replies_to_replies_sorted_at_every_depth():
    comments = [
        mk("root", 0, user="u2"),
        mk("a1", 1, user="u1", parent="root"),
        mk("x", 5, user="u2", parent="a1"),
        mk("y", 3, user="u2", parent="a1"),
    ]
    tree = build_comment_tree(comments, AUTHORS)
    nested = tree[0].replies[0].replies
    assert ids(nested) == ["y", "x"]
    assert all(n.parent_user.username == "alice" for n in nested)
    assert count_nodes(tree) == 4


def test_reply_carries_parent_author_snapshot():
    comments = [mk("a", 0, user="u1"), mk("b", 1, user="u2", parent="a")]
    tree = build_comment_tree(comments, AUTHORS)
    reply = tree[0].replies[0]
    assert reply.user.username == "bob"
    assert reply.parent_user.username == "alice"
    assert tree[0].parent_user is None


def test_orphan_reply_is_dropped():
    comments = [mk("a", 0), mk("orphan", 1, parent="missing"), mk("b", 2, parent="a")]
    tree = build_comment_tree(comments, AUTHORS)
    assert ids(tree) == ["a"]
    assert ids(tree[0].replies) == ["b"]
    assert count_nodes(tree) == 2


def test_orphan_reply_promoted_on_request():
    comments = [mk("a", 0), mk("orphan", 1, parent="missing")]
    tree = build_comment_tree(comments, AUTHORS, orphans=OrphanPolicy.PROMOTE)
    assert ids(tree) == ["orphan", "a"]
    assert tree[0].parent_user is None


def test_every_resolvable_comment_appears_once():
    comments = [mk("a", 0), mk("b", 1), mk("a1", 2, parent="a"), mk("b1", 3, parent="b"), mk("x", 4, parent="nope")]
    tree = build_comment_tree(comments, AUTHORS)
    seen = []

    def walk(nodes):
        for n in nodes:
            seen.append(n.id)
            walk(n.replies)

    walk(tree)
    assert sorted(seen) == ["a", "a1", "b", "b1"]


def test_equal_timestamps_keep_input_order():
    comments = [mk("first", 0), mk("second", 0), mk("third", 5)]
    tree = build_comment_tree(comments, AUTHORS)
    assert ids(tree) == ["third", "first", "second"]

    replies = [mk("root", 0), mk("x", 3, parent="root"), mk("y", 3, parent="root")]
    assert ids(build_comment_tree(replies, AUTHORS)[0].replies) == ["x", "y"]


def test_missing_author_defaults_to_unknown():
    tree = build_comment_tree([mk("a", 0, user="ghost")], AUTHORS)
    assert tree[0].user.username == "Unknown"
    assert tree[0].user.avatar_url is None


def test_no_authors_lookup_at_all():
    tree = build_comment_tree([mk("a", 0), mk("b", 1, parent="a")])
    assert tree[0].user.username == "Unknown"
    assert tree[0].replies[0].parent_user.username == "Unknown"


def test_idempotent_and_input_untouched():
    comments = [mk("a", 0), mk("b", 1, parent="a")]
    first = build_comment_tree(comments, AUTHORS)
    second = build_comment_tree(comments, AUTHORS)
    assert [n.model_dump() for n in first] == [n.model_dump() for n in second]
    assert not hasattr(comments[0], "replies")


def test_empty_input():
    assert build_comment_tree([], AUTHORS) == []


@pytest.mark.parametrize("bad", [None, {"a": 1}, "abc"])
def test_non_list_input_is_a_type_error(bad):
    with pytest.raises(TypeError):
        build_comment_tree(bad, AUTHORS)
