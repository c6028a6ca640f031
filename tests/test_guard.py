"""Tests for the authorization rules."""
import pytest

from errors import Forbidden, InvalidArgument, NotFound, Unauthenticated
from guard import (
    require_caller,
    require_comment_author,
    require_found,
    require_not_member,
    require_project_access,
    require_project_owner,
    require_removable_member,
)

PROJECT = {"_id": "p1", "owner_id": "owner", "member_ids": ["owner", "member"]}


@pytest.mark.unit
class TestCallerAndExistence:
    def test_anonymous_caller_is_rejected(self):
        with pytest.raises(Unauthenticated):
            require_caller(None)
        with pytest.raises(Unauthenticated):
            require_caller("")

    def test_caller_is_returned(self):
        assert require_caller("u1") == "u1"

    def test_missing_entity_is_not_found(self):
        with pytest.raises(NotFound, match="Task not found"):
            require_found(None, "Task")

    def test_found_entity_is_returned(self):
        doc = {"_id": "t1"}
        assert require_found(doc, "Task") is doc


@pytest.mark.unit
class TestProjectRules:
    def test_owner_and_member_can_read(self):
        require_project_access(PROJECT, "owner")
        require_project_access(PROJECT, "member")

    def test_outsider_cannot_read(self):
        with pytest.raises(Forbidden, match="Access denied"):
            require_project_access(PROJECT, "outsider")

    def test_owner_not_listed_in_members_still_has_access(self):
        require_project_access({"owner_id": "owner", "member_ids": []}, "owner")

    def test_only_owner_passes_owner_rule(self):
        require_project_owner(PROJECT, "owner", "update project")
        with pytest.raises(Forbidden, match="Only owner can update project"):
            require_project_owner(PROJECT, "member", "update project")

    def test_existing_member_cannot_be_added_twice(self):
        with pytest.raises(InvalidArgument):
            require_not_member(PROJECT, "member")
        require_not_member(PROJECT, "newcomer")

    def test_owner_can_never_be_removed(self):
        with pytest.raises(InvalidArgument, match="Cannot remove project owner"):
            require_removable_member(PROJECT, "owner")
        require_removable_member(PROJECT, "member")


@pytest.mark.unit
class TestCommentRules:
    def test_author_passes(self):
        require_comment_author({"_id": "c1", "author_id": "u1"}, "u1", "update")

    def test_non_author_is_forbidden(self):
        with pytest.raises(Forbidden, match="Only author can delete comment"):
            require_comment_author({"_id": "c1", "author_id": "u1"}, "u2", "delete")
