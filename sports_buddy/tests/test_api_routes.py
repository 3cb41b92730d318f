"""
Route tests through the FastAPI app: auth guards, error bodies and the main
matchmaking flows end to end.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from sports_buddy.database.models import Match
from sports_buddy.services import identity_service
from sports_buddy.utils.datetime_utils import utcnow
from sports_buddy.utils.errors import ValidationError
from sports_buddy.utils.geo_utils import GeoPoint

PARK = GeoPoint(-122.4, 37.8)


def _match_payload(sport_id, **overrides):
    payload = {
        "sport_id": sport_id,
        "title": "Sunday kickabout",
        "location": [-122.4, 37.8],
        "location_name": "Golden Gate Park",
        "scheduled_at": (utcnow() + timedelta(days=1)).isoformat(),
    }
    payload.update(overrides)
    return payload


# ============================================================================
# Health and error shape
# ============================================================================

def test_health(api):
    response = api.client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


def test_missing_token_is_401(api):
    response = api.client.get("/api/friends")
    assert response.status_code == 401
    assert response.json() == {
        "error": "Missing or invalid authorization header",
        "code": "unauthorized",
    }


def test_unknown_token_is_401(api):
    response = api.client.get("/api/friends", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


def test_not_found_body(api):
    response = api.client.get("/api/matches/missing")
    assert response.status_code == 404
    assert response.json() == {"error": "Match not found", "code": "not_found"}


def test_request_validation_is_400(api):
    headers = api.add_user("alice", "alice_99")
    soccer = api.sport_id("Football/Soccer")

    response = api.client.post(
        "/api/matches", json=_match_payload(soccer, duration=5), headers=headers
    )

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"
    assert "duration" in response.json()["error"]


def test_value_error_prefix_is_stripped(api):
    headers = api.add_user("alice", "alice_99")

    response = api.client.put("/api/location/update", json={"latitude": 37.8}, headers=headers)

    assert response.status_code == 400
    assert response.json() == {
        "error": "Latitude and longitude are required",
        "code": "validation_error",
    }


# ============================================================================
# Auth
# ============================================================================

def test_signup_creates_profile(api, monkeypatch):
    async def fake_sign_up(email, password, username, full_name=None):
        return {"id": "new-user", "email": email}

    monkeypatch.setattr(identity_service, "sign_up", fake_sign_up)

    response = api.client.post(
        "/api/auth/signup",
        json={"email": "new@example.com", "password": "secret1", "username": "New_Player"},
    )

    assert response.status_code == 201
    assert response.json()["user"]["id"] == "new-user"
    profile = api.client.get("/api/profiles/new-user").json()
    assert profile["username"] == "new_player"


def test_signup_rejects_taken_username(api):
    api.add_user("alice", "alice_99")

    response = api.client.post(
        "/api/auth/signup",
        json={"email": "other@example.com", "password": "secret1", "username": "ALICE_99"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Username already taken"


def test_signup_validates_password(api):
    response = api.client.post(
        "/api/auth/signup",
        json={"email": "a@example.com", "password": "123", "username": "alice"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Password must be at least 6 characters"


def test_signin_reports_profile_setup(api, monkeypatch):
    api.add_user("alice", "alice_99")

    async def fake_sign_in(email, password):
        return {
            "user": {"id": "alice", "email": email},
            "session": {"access_token": "at", "refresh_token": "rt", "expires_at": 1},
        }

    monkeypatch.setattr(identity_service, "sign_in", fake_sign_in)

    response = api.client.post(
        "/api/auth/signin", json={"email": "alice@example.com", "password": "secret1"}
    )

    assert response.status_code == 200
    assert response.json()["session"]["access_token"] == "at"
    assert response.json()["needs_profile_setup"] is True


def test_signin_blocked_after_repeated_failures(api, monkeypatch):
    async def fake_sign_in(email, password):
        raise ValidationError("Invalid login credentials")

    monkeypatch.setattr(identity_service, "sign_in", fake_sign_in)
    credentials = {"email": "alice@example.com", "password": "wrong1"}

    for _ in range(5):
        response = api.client.post("/api/auth/signin", json=credentials)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid login credentials"

    response = api.client.post("/api/auth/signin", json=credentials)
    assert response.status_code == 429
    assert response.json()["code"] == "rate_limited"


# ============================================================================
# Profiles
# ============================================================================

def test_update_other_profile_is_forbidden(api):
    alice = api.add_user("alice", "alice_99")
    api.add_user("bob", "bob")

    response = api.client.put("/api/profiles/bob", json={"bio": "hi"}, headers=alice)

    assert response.status_code == 403
    assert response.json() == {"error": "Access denied", "code": "forbidden"}


def test_profile_setup_and_sports(api):
    headers = api.add_user("alice", "alice_99")
    tennis = api.sport_id("Tennis")
    golf = api.sport_id("Golf")

    response = api.client.post(
        "/api/profiles/setup",
        json={
            "full_name": "Alice",
            "skill_level": "advanced",
            "location": [-122.4, 37.8],
            "location_name": "Mission",
            "preferred_sports": [tennis],
        },
        headers=headers,
    )
    assert response.status_code == 200
    profile = response.json()["profile"]
    assert profile["location"] == {"latitude": 37.8, "longitude": -122.4}
    assert [us["sport_id"] for us in profile["user_sports"]] == [tennis]

    response = api.client.put(
        "/api/profiles/sports",
        json={"sports": [{"sport_id": golf, "skill_level": "beginner", "preferred": True}]},
        headers=headers,
    )
    assert response.status_code == 200
    assert [us["sport_id"] for us in response.json()["user_sports"]] == [golf]

    response = api.client.delete(f"/api/profiles/alice/sports/{golf}", headers=headers)
    assert response.status_code == 200
    assert api.client.get("/api/profiles/alice").json()["user_sports"] == []


def test_sports_catalog(api):
    sports = api.client.get("/api/sports").json()
    names = [s["name"] for s in sports]
    assert names == sorted(names)
    assert "Tennis" in names

    assert api.client.get(f"/api/sports/{sports[0]['id']}").json()["name"] == names[0]
    assert api.client.get("/api/sports/missing").status_code == 404


# ============================================================================
# Matches and proximity
# ============================================================================

def test_create_match_and_find_it_nearby(api):
    headers = api.add_user("alice", "alice_99", location=PARK)
    soccer = api.sport_id("Football/Soccer")

    response = api.client.post("/api/matches", json=_match_payload(soccer), headers=headers)
    assert response.status_code == 201
    match = response.json()
    assert match["status"] == "open"
    assert [p["user_id"] for p in match["participants"]] == ["alice"]

    response = api.client.get(
        "/api/location/nearby/matches",
        params={"latitude": "37.81", "longitude": "-122.41", "radius": "5000"},
    )
    assert response.status_code == 200
    body = response.json()
    assert [m["id"] for m in body["matches"]] == [match["id"]]
    assert body["matches"][0]["distance"] <= 5000
    assert body["count"] == 1

    listed = api.client.get("/api/matches", params={"location": "37.81,-122.41", "radius": 5000})
    assert [m["id"] for m in listed.json()["matches"]] == [match["id"]]


def test_nearby_matches_input_errors(api):
    response = api.client.get("/api/location/nearby/matches", params={"latitude": "37.8"})
    assert response.status_code == 400
    assert response.json()["error"] == "Latitude and longitude are required"

    response = api.client.get(
        "/api/location/nearby/matches",
        params={"latitude": "37.8", "longitude": "-122.4", "date_from": "not-a-date"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid date format"


def test_join_until_full_then_leave(api):
    alice = api.add_user("alice", "alice_99")
    bob = api.add_user("bob", "bob")
    carol = api.add_user("carol", "carol")
    soccer = api.sport_id("Football/Soccer")
    match_id = api.client.post("/api/matches", json=_match_payload(soccer), headers=alice).json()["id"]

    response = api.client.post(f"/api/matches/{match_id}/join", headers=bob)
    assert response.status_code == 201
    assert response.json()["match_status"] == "full"

    response = api.client.post(f"/api/matches/{match_id}/join", headers=carol)
    assert response.status_code == 404

    assert api.client.post(f"/api/matches/{match_id}/leave", headers=bob).status_code == 200
    assert api.client.get(f"/api/matches/{match_id}").json()["status"] == "open"


def test_only_creator_updates_and_invites(api):
    alice = api.add_user("alice", "alice_99")
    bob = api.add_user("bob", "bob")
    soccer = api.sport_id("Football/Soccer")
    match_id = api.client.post(
        "/api/matches", json=_match_payload(soccer, max_participants=4), headers=alice
    ).json()["id"]

    response = api.client.put(f"/api/matches/{match_id}", json={"title": "Mine now"}, headers=bob)
    assert response.status_code == 403
    assert response.json()["error"] == "Only the match creator can perform this action"

    response = api.client.put(f"/api/matches/{match_id}", json={"title": "Evening game"}, headers=alice)
    assert response.status_code == 200
    assert response.json()["title"] == "Evening game"

    response = api.client.post(f"/api/matches/{match_id}/invite", json={"user_id": "bob"}, headers=bob)
    assert response.status_code == 403

    response = api.client.post(f"/api/matches/{match_id}/invite", json={"user_id": "bob"}, headers=alice)
    assert response.status_code == 201
    assert response.json()["status"] == "pending"

    response = api.client.post(
        f"/api/matches/{match_id}/respond", json={"response": "accept"}, headers=bob
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    mine = api.client.get("/api/matches/user", headers=bob).json()
    assert [m["id"] for m in mine["participated"]] == [match_id]
    assert mine["created"] == []


def test_join_open_match_at_capacity_is_match_full(api):
    alice = api.add_user("alice", "alice_99")
    bob = api.add_user("bob", "bob")
    carol = api.add_user("carol", "carol")
    soccer = api.sport_id("Football/Soccer")
    match_id = api.client.post(
        "/api/matches", json=_match_payload(soccer, max_participants=3), headers=alice
    ).json()["id"]
    api.client.post(f"/api/matches/{match_id}/join", headers=bob)

    # Shrink capacity under the open status, as a stale row would
    async def _shrink(session):
        await session.execute(update(Match).where(Match.id == match_id).values(max_participants=2))

    api.run(_shrink)

    response = api.client.post(f"/api/matches/{match_id}/join", headers=carol)

    assert response.status_code == 409
    assert response.json() == {"error": "Match is full", "code": "match_full"}


def test_update_capacity_recomputes_status(api):
    alice = api.add_user("alice", "alice_99")
    bob = api.add_user("bob", "bob")
    carol = api.add_user("carol", "carol")
    soccer = api.sport_id("Football/Soccer")
    match_id = api.client.post(
        "/api/matches", json=_match_payload(soccer, max_participants=2), headers=alice
    ).json()["id"]
    api.client.post(f"/api/matches/{match_id}/join", headers=bob)

    response = api.client.put(
        f"/api/matches/{match_id}", json={"status": "open"}, headers=alice
    )
    assert response.status_code == 400

    response = api.client.put(
        f"/api/matches/{match_id}", json={"max_participants": 3}, headers=alice
    )
    assert response.status_code == 200
    assert response.json()["status"] == "open"

    response = api.client.post(f"/api/matches/{match_id}/join", headers=carol)
    assert response.status_code == 201


def test_update_location_and_popular_areas(api):
    alice = api.add_user("alice", "alice_99")
    api.add_user("bob", "bob", location=PARK, location_name="Mission")

    response = api.client.put(
        "/api/location/update",
        json={"latitude": 37.76, "longitude": -122.42, "location_name": "Mission"},
        headers=alice,
    )
    assert response.status_code == 200
    assert response.json()["profile"]["location_name"] == "Mission"

    areas = api.client.get("/api/location/popular-areas").json()["areas"]
    assert [(a["location_name"], a["user_count"]) for a in areas] == [("Mission", 2)]

    nearby = api.client.get(
        "/api/location/nearby/users",
        params={"latitude": "37.81", "longitude": "-122.41", "radius": "10000"},
        headers=alice,
    ).json()
    assert [u["id"] for u in nearby["users"]] == ["bob"]


# ============================================================================
# Friends
# ============================================================================

def test_friendship_flow(api):
    alice = api.add_user("alice", "alice_99", location=PARK)
    bob = api.add_user("bob", "bob", location=PARK)

    response = api.client.post("/api/friends/request", json={"friend_id": "bob"}, headers=alice)
    assert response.status_code == 201
    connection_id = response.json()["connection"]["id"]

    # The sender cannot accept their own request
    response = api.client.put(f"/api/friends/request/{connection_id}/accept", headers=alice)
    assert response.status_code == 404

    requests = api.client.get("/api/friends/requests", headers=bob).json()["requests"]
    assert [r["user"]["id"] for r in requests] == ["alice"]

    response = api.client.put(f"/api/friends/request/{connection_id}/accept", headers=bob)
    assert response.status_code == 200

    alice_friends = api.client.get("/api/friends", headers=alice).json()["friends"]
    bob_friends = api.client.get("/api/friends", headers=bob).json()["friends"]
    assert [f["friend"]["id"] for f in alice_friends] == ["bob"]
    assert [f["friend"]["id"] for f in bob_friends] == ["alice"]

    users = api.client.get("/api/friends/search", params={"query": "bo"}, headers=alice).json()["users"]
    assert [(u["id"], u["relationship_status"]) for u in users] == [("bob", "friends")]

    response = api.client.post("/api/friends/request", json={"friend_id": "bob"}, headers=alice)
    assert response.status_code == 409
    assert response.json()["error"] == "Already friends"

    assert api.client.delete("/api/friends/alice", headers=bob).status_code == 200
    assert api.client.get("/api/friends", headers=alice).json()["friends"] == []


@pytest.mark.parametrize("query", ["", "b"])
def test_friend_search_query_too_short(api, query):
    headers = api.add_user("alice", "alice_99")
    response = api.client.get("/api/friends/search", params={"query": query}, headers=headers)
    assert response.status_code == 400


def test_friend_suggestions_need_location(api):
    headers = api.add_user("alice", "alice_99")
    response = api.client.get("/api/friends/suggestions", headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Location required for suggestions"


def test_friend_suggestions(api):
    alice = api.add_user("alice", "alice_99", location=PARK)
    api.add_user("bob", "bob", location=GeoPoint(-122.401, 37.801))

    suggestions = api.client.get("/api/friends/suggestions", headers=alice).json()["suggestions"]

    assert [s["id"] for s in suggestions] == ["bob"]
    assert suggestions[0]["suggestion_score"] > 10
