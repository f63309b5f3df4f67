import pytest

from circl.domain.identity.service import users
from circl.domain.social import service
from circl.domain.social.exceptions import (
    AlreadyFriends,
    FriendRequestRateLimitExceeded,
    RequestAlreadySent,
    RequestForbidden,
    RequestGone,
    RequestNotFound,
    SelfRequestError,
)
from circl.domain.social.policy import normalise_friend_code
from circl.domain.social.schemas import FriendRequestSend


def test_normalise_friend_code():
    assert normalise_friend_code(" ab12cd34 ") == "AB12CD34"
    assert normalise_friend_code("zz12cd34") is None
    assert normalise_friend_code("ABC") is None


def test_send_payload_requires_exactly_one_target():
    with pytest.raises(ValueError):
        FriendRequestSend()
    with pytest.raises(ValueError):
        FriendRequestSend(friend_code="AB12CD34", email="a@example.com")


@pytest.mark.asyncio
async def test_friend_code_regeneration_invalidates_old_code(make_user):
    amy = await make_user("amy")
    first = await service.generate_friend_code(amy)
    second = await service.generate_friend_code(amy)
    assert len(second.friend_code) == 8
    assert first.friend_code != second.friend_code
    assert await users.get_by_friend_code(first.friend_code) is None
    assert (await users.get_by_friend_code(second.friend_code)).id == "amy"


@pytest.mark.asyncio
async def test_send_by_code_and_accept(make_user, emitted):
    amy = await make_user("amy")
    bob = await make_user("bob")
    code = await service.generate_friend_code(bob)

    request = await service.send_request(amy, FriendRequestSend(friend_code=code.friend_code.lower()))
    assert request.status == "pending"
    assert request.to_user_id == "bob"
    assert request.from_display_name == "Amy"
    assert [uid for uid, _ in emitted.for_event("friend:request")] == ["bob"]
    assert [r.id for r in await service.list_incoming(bob)] == [request.id]
    assert [r.id for r in await service.list_outgoing(amy)] == [request.id]

    accepted = await service.accept_request(bob, request.id)
    assert accepted.status == "accepted"
    assert await service.are_friends("amy", "bob")
    assert await service.are_friends("bob", "amy")
    assert await service.list_incoming(bob) == []
    friends = await service.list_friends(amy)
    assert [(f.user_id, f.display_name) for f in friends] == [("bob", "Bob")]
    assert sorted(uid for uid, _ in emitted.for_event("friend:update")) == ["amy", "bob"]


@pytest.mark.asyncio
async def test_send_guards(make_user, befriend):
    amy = await make_user("amy")
    bob = await make_user("bob")
    await make_user("cal")

    with pytest.raises(SelfRequestError):
        await service.send_request(amy, FriendRequestSend(email="amy@example.com"))
    with pytest.raises(RequestNotFound):
        await service.send_request(amy, FriendRequestSend(email="nobody@example.com"))

    await service.send_request(amy, FriendRequestSend(email="cal@example.com"))
    with pytest.raises(RequestAlreadySent):
        await service.send_request(amy, FriendRequestSend(email="CAL@example.com"))

    await befriend(amy, bob)
    with pytest.raises(AlreadyFriends):
        await service.send_request(bob, FriendRequestSend(email="amy@example.com"))


@pytest.mark.asyncio
async def test_crossing_requests_auto_accept(make_user):
    amy = await make_user("amy")
    bob = await make_user("bob")
    await service.send_request(amy, FriendRequestSend(email="bob@example.com"))
    result = await service.send_request(bob, FriendRequestSend(email="amy@example.com"))
    assert result.status == "accepted"
    assert result.from_user_id == "amy"
    assert await service.are_friends("amy", "bob")


@pytest.mark.asyncio
async def test_only_recipient_accepts_and_only_sender_cancels(make_user):
    amy = await make_user("amy")
    bob = await make_user("bob")
    request = await service.send_request(amy, FriendRequestSend(email="bob@example.com"))

    with pytest.raises(RequestForbidden):
        await service.accept_request(amy, request.id)
    with pytest.raises(RequestForbidden):
        await service.cancel_request(bob, request.id)

    cancelled = await service.cancel_request(amy, request.id)
    assert cancelled.status == "cancelled"
    with pytest.raises(RequestGone):
        await service.accept_request(bob, request.id)
    with pytest.raises(RequestNotFound):
        await service.deny_request(bob, "missing")


@pytest.mark.asyncio
async def test_deny_then_resend(make_user):
    amy = await make_user("amy")
    bob = await make_user("bob")
    request = await service.send_request(amy, FriendRequestSend(email="bob@example.com"))
    denied = await service.deny_request(bob, request.id)
    assert denied.status == "denied"
    again = await service.send_request(amy, FriendRequestSend(email="bob@example.com"))
    assert again.status == "pending"
    assert again.id != request.id


@pytest.mark.asyncio
async def test_remove_friend(make_user, befriend):
    amy = await make_user("amy")
    bob = await make_user("bob")
    await befriend(amy, bob)
    await service.remove_friend(amy, "bob")
    assert not await service.are_friends("bob", "amy")
    with pytest.raises(RequestNotFound):
        await service.remove_friend(amy, "bob")


@pytest.mark.asyncio
async def test_request_rate_limit(make_user, monkeypatch):
    from circl.domain.social import policy

    monkeypatch.setattr(policy, "REQUEST_PER_MINUTE", 2)
    amy = await make_user("amy")
    for name in ("bob", "cal"):
        await make_user(name)
        await service.send_request(amy, FriendRequestSend(email=f"{name}@example.com"))
    await make_user("dan")
    with pytest.raises(FriendRequestRateLimitExceeded):
        await service.send_request(amy, FriendRequestSend(email="dan@example.com"))


@pytest.mark.asyncio
async def test_purge_user_drops_requests_and_friendships(make_user, befriend):
    amy = await make_user("amy")
    bob = await make_user("bob")
    cal = await make_user("cal")
    await befriend(amy, bob)
    await service.send_request(cal, FriendRequestSend(email="amy@example.com"))

    former = await service.purge_user("amy")
    assert former == ["bob"]
    assert await service.friend_ids("bob") == []
    assert await service.list_outgoing(cal) == []
