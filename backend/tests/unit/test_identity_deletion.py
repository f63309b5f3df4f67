import pytest

from circl.domain.circles import service as circles_service
from circl.domain.circles.schemas import CircleCreateRequest, JoinByCodeRequest
from circl.domain.identity import deletion
from circl.domain.identity.service import ProfileNotFound, users
from circl.domain.proximity import locations, service as proximity_service
from circl.domain.proximity.schemas import LocationUpdatePayload
from circl.domain.proximity.tracker import tracker
from circl.domain.social import service as social_service
from circl.infra.auth import AuthenticatedUser


@pytest.mark.asyncio
async def test_delete_account_cascades(make_user, befriend, emitted):
    amy = await make_user("amy")
    bob = await make_user("bob")
    await befriend(amy, bob)
    owned = await circles_service.create_circle(amy, CircleCreateRequest(name="Amy's"))
    await circles_service.join_by_code(bob, JoinByCodeRequest(invite_code=owned.invite_code))
    joined = await circles_service.create_circle(bob, CircleCreateRequest(name="Bob's"))
    await circles_service.join_by_code(amy, JoinByCodeRequest(invite_code=joined.invite_code))
    await proximity_service.handle_location_update(amy, LocationUpdatePayload(lat=40.0, lon=-75.0))
    await proximity_service.handle_location_update(bob, LocationUpdatePayload(lat=40.001, lon=-75.0))

    await deletion.delete_account(amy)

    assert await users.get("amy") is None
    assert await locations.load_position("amy") is None
    assert await tracker.snapshot("amy") == {}
    assert await social_service.friend_ids("bob") == []
    assert [c.id for c in await circles_service.list_my_circles(bob)] == [joined.id]
    assert await circles_service.member_ids(joined.id) == ["bob"]
    assert ("bob", {"user_id": "bob", "friend_id": "amy", "status": "none"}) in emitted.for_event("friend:update")


@pytest.mark.asyncio
async def test_delete_unknown_account():
    with pytest.raises(ProfileNotFound):
        await deletion.delete_account(AuthenticatedUser(id="ghost"))


@pytest.mark.asyncio
async def test_email_can_be_reused_after_deletion(make_user):
    amy = await make_user("amy")
    await deletion.delete_account(amy)
    again = await make_user("amy")
    assert (await users.get(again.id)).email == "amy@example.com"
