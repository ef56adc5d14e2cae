"""Unit tests for CommunityService"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from habitforge.exceptions import AuthorizationError, CommunityError, RecordNotFoundError
from habitforge.models.community import ChallengeCreate, CircleCreate, EventCreate
from habitforge.services.community_service import CommunityService
from habitforge.utils.datetime_helpers import now_utc


def make_circle(owner_id, *, members=None, is_private=False, invite_code=None, **extra):
    """Circle payload shaped like load_circle/get_circle rows"""
    members = members if members is not None else [owner_id]
    return {
        "id": str(uuid4()),
        "name": "Morning Crew",
        "description": "Early risers",
        "created_by": owner_id,
        "members": [
            {"user_id": m, "role": "admin" if m == owner_id else "member"}
            for m in members
        ],
        "max_members": 10,
        "is_private": is_private,
        "invite_code": invite_code,
        **extra,
    }


@pytest.fixture
def community_service(mock_db):
    return CommunityService(mock_db)


@pytest.fixture
def mock_queries(user_row):
    mocks = {
        name: AsyncMock()
        for name in (
            "lock_circle", "load_circle", "get_circle", "invite_code_exists",
            "insert_circle", "add_member", "remove_member", "delete_circle",
            "insert_message", "count_messages_since", "get_leaderboard",
            "set_leaderboard_opt_out", "insert_event", "insert_challenge",
            "add_challenge_participant", "update_challenge_participant",
            "add_community_points", "list_circles",
        )
    }
    mocks["get_user"] = AsyncMock(return_value=user_row)
    mocks["lock_circle"].return_value = True
    mocks["invite_code_exists"].return_value = False
    with patch.multiple('habitforge.db.queries', **mocks):
        yield mocks


# ============================================================================
# Circles
# ============================================================================

@pytest.mark.asyncio
async def test_create_public_circle(community_service, mock_queries, user_id):
    circle = make_circle(user_id)
    mock_queries["insert_circle"].return_value = {"id": circle["id"]}
    mock_queries["load_circle"].return_value = circle

    result = await community_service.create_circle(user_id, CircleCreate(name="Morning Crew"))

    assert mock_queries["insert_circle"].await_args.kwargs["invite_code"] is None
    mock_queries["invite_code_exists"].assert_not_awaited()
    assert result["member_count"] == 1
    assert result["available_spots"] == 9
    assert result["is_member"] is True


@pytest.mark.asyncio
async def test_create_private_circle_generates_invite_code(community_service, mock_queries, user_id):
    mock_queries["invite_code_exists"].side_effect = [True, False]
    mock_queries["insert_circle"].return_value = {"id": "c1"}
    mock_queries["load_circle"].side_effect = lambda conn, cid, messages_since=None: make_circle(
        user_id, is_private=True, invite_code="ABCD1234"
    )

    result = await community_service.create_circle(
        user_id, CircleCreate(name="Secret Crew", is_private=True)
    )

    code = mock_queries["insert_circle"].await_args.kwargs["invite_code"]
    assert len(code) == 8
    assert mock_queries["invite_code_exists"].await_count == 2
    # the creator is an admin and sees the code
    assert result["invite_code"] == "ABCD1234"


@pytest.mark.asyncio
async def test_create_circle_unknown_user(community_service, mock_queries, user_id):
    mock_queries["get_user"].return_value = None

    with pytest.raises(RecordNotFoundError):
        await community_service.create_circle(user_id, CircleCreate(name="Morning Crew"))

    mock_queries["insert_circle"].assert_not_awaited()


@pytest.mark.asyncio
async def test_list_circles_hides_invite_codes(community_service, mock_queries, user_id):
    mock_queries["list_circles"].return_value = (
        [{"id": "c1", "name": "Crew", "max_members": 10, "member_count": 4, "invite_code": "SECRET12"}],
        21,
    )

    result = await community_service.list_circles(user_id, search="crew", page=2, limit=10)

    assert mock_queries["list_circles"].await_args.kwargs == {"search": "crew", "limit": 10, "offset": 10}
    assert "invite_code" not in result["circles"][0]
    assert result["circles"][0]["available_spots"] == 6
    assert result["pagination"] == {"page": 2, "limit": 10, "total": 21, "pages": 3}


@pytest.mark.asyncio
async def test_get_private_circle_requires_membership(community_service, mock_queries, user_id):
    owner = str(uuid4())
    mock_queries["get_circle"].return_value = make_circle(owner, is_private=True, invite_code="ABCD1234")

    with pytest.raises(AuthorizationError):
        await community_service.get_circle(user_id, "c1")


@pytest.mark.asyncio
async def test_get_circle_hides_invite_code_from_members(community_service, mock_queries, user_id):
    owner = str(uuid4())
    mock_queries["get_circle"].return_value = make_circle(
        owner, members=[owner, user_id], is_private=True, invite_code="ABCD1234"
    )

    result = await community_service.get_circle(user_id, "c1")

    assert result["is_member"] is True
    assert result["invite_code"] is None


@pytest.mark.asyncio
async def test_get_circle_not_found(community_service, mock_queries, user_id):
    mock_queries["get_circle"].return_value = None

    with pytest.raises(RecordNotFoundError):
        await community_service.get_circle(user_id, "missing")


@pytest.mark.asyncio
async def test_join_circle(community_service, mock_queries, user_id):
    owner = str(uuid4())
    before = make_circle(owner)
    after = make_circle(owner, members=[owner, user_id])
    mock_queries["load_circle"].side_effect = [before, after]

    result = await community_service.join_circle(user_id, before["id"])

    mock_queries["add_member"].assert_awaited_once()
    assert result["member_count"] == 2


@pytest.mark.asyncio
async def test_join_private_circle_wrong_code(community_service, mock_queries, user_id):
    owner = str(uuid4())
    mock_queries["load_circle"].return_value = make_circle(owner, is_private=True, invite_code="ABCD1234")

    with pytest.raises(CommunityError, match="Invalid invite code"):
        await community_service.join_circle(user_id, "c1", invite_code="WRONG000")

    mock_queries["add_member"].assert_not_awaited()


@pytest.mark.asyncio
async def test_join_full_circle(community_service, mock_queries, user_id):
    owner = str(uuid4())
    others = [str(uuid4()) for _ in range(9)]
    mock_queries["load_circle"].return_value = make_circle(owner, members=[owner, *others])

    with pytest.raises(CommunityError, match="Circle is full"):
        await community_service.join_circle(user_id, "c1")


@pytest.mark.asyncio
async def test_join_locked_circle_missing(community_service, mock_queries, user_id):
    mock_queries["lock_circle"].return_value = False

    with pytest.raises(RecordNotFoundError):
        await community_service.join_circle(user_id, "gone")


@pytest.mark.asyncio
async def test_last_member_leaving_deletes_circle(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(user_id)

    result = await community_service.leave_circle(user_id, "c1")

    assert result == {"circle_deleted": True}
    mock_queries["remove_member"].assert_awaited_once()
    mock_queries["delete_circle"].assert_awaited_once()


@pytest.mark.asyncio
async def test_creator_cannot_leave_with_members(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(user_id, members=[user_id, str(uuid4())])

    with pytest.raises(CommunityError):
        await community_service.leave_circle(user_id, "c1")

    mock_queries["remove_member"].assert_not_awaited()


@pytest.mark.asyncio
async def test_member_leaves(community_service, mock_queries, user_id):
    owner = str(uuid4())
    mock_queries["load_circle"].return_value = make_circle(owner, members=[owner, user_id])

    result = await community_service.leave_circle(user_id, "c1")

    assert result == {"circle_deleted": False}
    mock_queries["delete_circle"].assert_not_awaited()


# ============================================================================
# Messages / leaderboard
# ============================================================================

@pytest.mark.asyncio
async def test_post_message(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(user_id)
    mock_queries["insert_message"].return_value = {"id": "m1", "content": "Hello"}

    message = await community_service.post_message(user_id, "c1", "Hello")

    assert message["content"] == "Hello"
    assert mock_queries["load_circle"].await_args.kwargs["messages_since"] is not None


@pytest.mark.asyncio
async def test_post_message_daily_limit(community_service, mock_queries, user_id):
    sent = [
        {"user_id": user_id, "content": f"msg {i}", "created_at": now_utc()}
        for i in range(10)
    ]
    mock_queries["load_circle"].return_value = make_circle(user_id, messages=sent)

    with pytest.raises(CommunityError, match="Daily message limit"):
        await community_service.post_message(user_id, "c1", "one more")

    mock_queries["insert_message"].assert_not_awaited()


@pytest.mark.asyncio
async def test_post_message_non_member(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(str(uuid4()))

    with pytest.raises(CommunityError, match="Only members"):
        await community_service.post_message(user_id, "c1", "Hello")


@pytest.mark.asyncio
async def test_get_message_stats(community_service, mock_queries, user_id):
    mock_queries["get_circle"].return_value = make_circle(
        user_id, moderation_settings={"max_messages_per_day": 5}
    )
    mock_queries["count_messages_since"].return_value = 3

    stats = await community_service.get_message_stats(user_id, "c1")

    assert stats == {"messages_today": 3, "daily_limit": 5, "remaining": 2}


@pytest.mark.asyncio
async def test_get_leaderboard_ranks(community_service, mock_queries, user_id):
    mock_queries["get_circle"].return_value = make_circle(user_id)
    mock_queries["get_leaderboard"].return_value = [
        {"user_id": "u1", "name": "Ada", "community_points": 120},
        {"user_id": "u2", "name": "Bo", "community_points": 80},
    ]

    board = await community_service.get_leaderboard(user_id, "c1")

    assert [(e["rank"], e["name"]) for e in board] == [(1, "Ada"), (2, "Bo")]


@pytest.mark.asyncio
async def test_toggle_leaderboard_opt_out(community_service, mock_queries, user_id):
    mock_queries["get_circle"].return_value = make_circle(user_id)

    result = await community_service.toggle_leaderboard_opt_out(user_id, "c1")

    assert result == {"opt_out_of_leaderboard": True}
    mock_queries["set_leaderboard_opt_out"].assert_awaited_once_with("c1", user_id, True)


# ============================================================================
# Events & challenges
# ============================================================================

def _window():
    start = now_utc()
    return {"start_date": start, "end_date": start + timedelta(days=7)}


@pytest.mark.asyncio
async def test_create_event_requires_admin(community_service, mock_queries, user_id):
    owner = str(uuid4())
    mock_queries["load_circle"].return_value = make_circle(owner, members=[owner, user_id])

    with pytest.raises(AuthorizationError):
        await community_service.create_event(user_id, "c1", EventCreate(title="Group run", **_window()))

    mock_queries["insert_event"].assert_not_awaited()


@pytest.mark.asyncio
async def test_create_event(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(user_id)
    mock_queries["insert_event"].return_value = {"id": "e1", "title": "Group run"}

    event = await community_service.create_event(user_id, "c1", EventCreate(title="Group run", **_window()))

    assert event["title"] == "Group run"
    payload = mock_queries["insert_event"].await_args.args[2]
    assert str(payload["created_by"]) == user_id


@pytest.mark.asyncio
async def test_create_challenge(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(user_id)
    mock_queries["insert_challenge"].return_value = {"id": "ch1", "title": "30 day run"}

    challenge = await community_service.create_challenge(
        user_id, "c1", ChallengeCreate(title="30 day run", type="streak", target=30, **_window())
    )

    assert challenge["participants"] == []
    payload = mock_queries["insert_challenge"].await_args.args[2]
    assert payload["points_reward"] == 50


def _circle_with_challenge(user_id, participants=None):
    challenge_id = str(uuid4())
    window = _window()
    circle = make_circle(user_id, challenges=[{
        "id": challenge_id,
        "title": "Ten runs",
        "type": "completion",
        "target": 10,
        "points_reward": 40,
        "participants": participants or [],
        "created_by": user_id,
        **window,
    }])
    return circle, challenge_id


@pytest.mark.asyncio
async def test_join_challenge(community_service, mock_queries, user_id):
    circle, challenge_id = _circle_with_challenge(user_id)
    mock_queries["load_circle"].return_value = circle

    result = await community_service.join_challenge(user_id, "c1", challenge_id)

    assert result == {"challenge_id": challenge_id, "progress": 0, "completed": False}
    mock_queries["add_challenge_participant"].assert_awaited_once()


@pytest.mark.asyncio
async def test_join_challenge_twice(community_service, mock_queries, user_id):
    circle, challenge_id = _circle_with_challenge(user_id, participants=[{"user_id": user_id}])
    mock_queries["load_circle"].return_value = circle

    with pytest.raises(CommunityError, match="Already joined"):
        await community_service.join_challenge(user_id, "c1", challenge_id)


@pytest.mark.asyncio
async def test_join_unknown_challenge(community_service, mock_queries, user_id):
    mock_queries["load_circle"].return_value = make_circle(user_id)

    with pytest.raises(RecordNotFoundError):
        await community_service.join_challenge(user_id, "c1", str(uuid4()))


@pytest.mark.asyncio
async def test_challenge_progress_awards_points_on_completion(community_service, mock_queries, user_id):
    circle, challenge_id = _circle_with_challenge(user_id, participants=[{"user_id": user_id, "progress": 8}])
    mock_queries["load_circle"].return_value = circle

    result = await community_service.update_challenge_progress(user_id, "c1", challenge_id, 10)

    assert result["completed"] is True
    assert result["points_awarded"] == 40
    assert result["completed_at"] is not None
    mock_queries["add_community_points"].assert_awaited_once()
    assert mock_queries["add_community_points"].await_args.args[3] == 40


@pytest.mark.asyncio
async def test_challenge_progress_below_target(community_service, mock_queries, user_id):
    circle, challenge_id = _circle_with_challenge(user_id, participants=[{"user_id": user_id}])
    mock_queries["load_circle"].return_value = circle

    result = await community_service.update_challenge_progress(user_id, "c1", challenge_id, 4)

    assert result["completed"] is False
    assert result["points_awarded"] == 0
    mock_queries["add_community_points"].assert_not_awaited()
    assert mock_queries["update_challenge_participant"].await_args.kwargs["progress"] == 4
