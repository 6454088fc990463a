"""API tests for the event lifecycle.

Covers:
- Event create and its validation (past date, overlap, timezone)
- Invitations, RSVP responses, capacity and the quorum transition
- Organizer-only actions, cancellation and rescheduling
- Version checks surfaced as 409 stale_version
- Recommendations -> voting -> finalize through the HTTP layer
- Waitlist, templates and maintenance endpoints
"""
import uuid

from tests.conftest import future_day, wait_for


def _uid() -> str:
    return str(uuid.uuid4())


def _make_event(client, organizer_id: str, title: str = "Team outing", days: int = 14, **fields):
    """Create an event via the API."""
    payload = {
        "organizer_id": organizer_id,
        "title": title,
        "scheduled_date": future_day(days).isoformat(),
        "scheduled_time": "18:00:00",
        "expected_attendees": 4,  # quorum 3 at the default threshold
    }
    payload.update(fields)
    return client.post("/api/events/", json=payload)


def _invite(client, event_id: str, organizer_id: str, user_ids: list):
    return client.post(f"/api/events/{event_id}/invitations", json={"actor_id": organizer_id, "user_ids": user_ids})


def _gathering_event(client):
    """Event with organizer plus two guests accepted (quorum reached)."""
    organizer = _uid()
    guests = [_uid(), _uid(), _uid()]
    event = _make_event(client, organizer).json()
    _invite(client, event["event_id"], organizer, guests)
    for guest in guests[:2]:
        client.post(f"/api/events/{event['event_id']}/accept", json={"user_id": guest})
    return organizer, guests, event["event_id"]


class TestEventCreate:
    """Event creation and initial state."""

    def test_create_event(self, client):
        organizer = _uid()
        resp = _make_event(client, organizer, title="Dinner")
        assert resp.status_code == 201
        data = resp.json()
        assert data["title"] == "Dinner"
        assert data["status"] == "draft"
        assert data["version"] == 1
        assert data["accepted_count"] == 1
        assert data["quorum"] == 3
        assert [p["user_id"] for p in data["participants"]] == [organizer]
        assert data["rsvp_deadline"] is not None

    def test_past_date_rejected(self, client):
        resp = _make_event(client, _uid(), days=-3)
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

    def test_unknown_timezone_rejected(self, client):
        assert _make_event(client, _uid(), timezone="Mars/Olympus").status_code == 422

    def test_too_few_attendees_rejected(self, client):
        assert _make_event(client, _uid(), expected_attendees=1).status_code == 422

    def test_overlap_with_own_event(self, client):
        organizer = _uid()
        assert _make_event(client, organizer, title="First").status_code == 201
        resp = _make_event(client, organizer, title="Second")
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    def test_overlap_compared_across_timezones(self, client):
        organizer = _uid()
        # 18:00 in Tokyo is 09:00 UTC
        assert _make_event(client, organizer, title="Tokyo", timezone="Asia/Tokyo").status_code == 201
        resp = _make_event(client, organizer, title="London", scheduled_time="09:30:00", timezone="UTC")
        assert resp.status_code == 409
        assert _make_event(client, organizer, title="Evening", timezone="UTC").status_code == 201

    def test_same_slot_other_organizer_allowed(self, client):
        assert _make_event(client, _uid()).status_code == 201
        assert _make_event(client, _uid()).status_code == 201

    def test_final_place_confirms_immediately(self, client):
        place = _uid()
        resp = _make_event(client, _uid(), final_place_id=place)
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "confirmed"
        assert data["final_place_id"] == place
        assert data["final_option_id"] is not None

    def test_get_unknown_event(self, client):
        resp = client.get(f"/api/events/{_uid()}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"


class TestInvitations:
    """Invitations and responses."""

    def test_invite_moves_to_inviting(self, client):
        organizer = _uid()
        event = _make_event(client, organizer).json()
        resp = _invite(client, event["event_id"], organizer, [_uid(), _uid(), organizer])
        assert resp.status_code == 201
        assert len(resp.json()) == 2
        assert all(p["invitation_status"] == "pending" for p in resp.json())

        data = client.get(f"/api/events/{event['event_id']}").json()
        assert data["status"] == "inviting"
        assert data["version"] == 3

    def test_only_organizer_invites(self, client):
        event = _make_event(client, _uid()).json()
        resp = _invite(client, event["event_id"], _uid(), [_uid()])
        assert resp.status_code == 403

    def test_quorum_opens_preference_gathering(self, client):
        organizer = _uid()
        guests = [_uid(), _uid(), _uid()]
        event_id = _make_event(client, organizer).json()["event_id"]
        _invite(client, event_id, organizer, guests)

        client.post(f"/api/events/{event_id}/accept", json={"user_id": guests[0]})
        assert client.get(f"/api/events/{event_id}").json()["status"] == "inviting"

        resp = client.post(
            f"/api/events/{event_id}/accept",
            json={"user_id": guests[1], "preferences": {"cuisine": "thai"}},
        )
        assert resp.status_code == 200
        assert resp.json()["preferences"] == {"cuisine": "thai"}
        data = client.get(f"/api/events/{event_id}").json()
        assert data["status"] == "gathering_preferences"
        assert data["accepted_count"] == 3

    def test_uninvited_user_cannot_accept(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        _invite(client, event_id, organizer, [_uid()])
        assert client.post(f"/api/events/{event_id}/accept", json={"user_id": _uid()}).status_code == 404

    def test_capacity(self, client):
        organizer = _uid()
        first, second = _uid(), _uid()
        event_id = _make_event(client, organizer, max_attendees=2).json()["event_id"]
        _invite(client, event_id, organizer, [first, second])

        assert client.post(f"/api/events/{event_id}/accept", json={"user_id": first}).status_code == 200
        resp = client.post(f"/api/events/{event_id}/accept", json={"user_id": second})
        assert resp.status_code == 409
        assert client.get(f"/api/events/{event_id}").json()["accepted_count"] == 2

    def test_decline(self, client):
        organizer = _uid()
        guest = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        _invite(client, event_id, organizer, [guest])
        resp = client.post(f"/api/events/{event_id}/decline", json={"user_id": guest})
        assert resp.status_code == 200
        assert resp.json()["invitation_status"] == "declined"

    def test_organizer_cannot_decline(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        assert client.post(f"/api/events/{event_id}/decline", json={"user_id": organizer}).status_code == 422

    def test_update_preferences(self, client):
        organizer, guests, event_id = _gathering_event(client)
        resp = client.put(
            f"/api/events/{event_id}/preferences",
            json={"user_id": guests[0], "preferences": {"budget": "low"}},
        )
        assert resp.status_code == 200
        assert resp.json()["preferences"] == {"budget": "low"}

    def test_pending_guest_cannot_submit_preferences(self, client):
        organizer, guests, event_id = _gathering_event(client)
        resp = client.put(f"/api/events/{event_id}/preferences", json={"user_id": guests[2], "preferences": {}})
        assert resp.status_code == 422


class TestAdvanceAndCancel:
    """Organizer-driven transitions."""

    def test_advance_draft_to_planning(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = client.post(f"/api/events/{event_id}/advance", json={"actor_id": organizer, "target": "planning"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "planning"

    def test_advance_along_missing_edge(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = client.post(f"/api/events/{event_id}/advance", json={"actor_id": organizer, "target": "voting"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state"
        assert client.get(f"/api/events/{event_id}").json()["status"] == "draft"

    def test_advance_with_stale_version(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = client.post(
            f"/api/events/{event_id}/advance",
            json={"actor_id": organizer, "target": "planning", "version": 5},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "stale_version"

    def test_cancel(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = client.post(
            f"/api/events/{event_id}/cancel",
            json={"cancelled_by_user_id": organizer, "cancel_reason": "Venue closed", "version": 1},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "cancelled"
        assert data["cancel_reason"] == "Venue closed"
        assert data["cancelled_by_user_id"] == organizer
        assert data["cancelled_at"] is not None

    def test_cancel_requires_reason(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        assert client.post(
            f"/api/events/{event_id}/cancel", json={"cancelled_by_user_id": organizer},
        ).status_code == 422
        assert client.post(
            f"/api/events/{event_id}/cancel", json={"cancelled_by_user_id": organizer, "cancel_reason": "  "},
        ).status_code == 422

    def test_cancel_by_non_organizer(self, client):
        event_id = _make_event(client, _uid()).json()["event_id"]
        resp = client.post(
            f"/api/events/{event_id}/cancel", json={"cancelled_by_user_id": _uid(), "cancel_reason": "No"},
        )
        assert resp.status_code == 403

    def test_cancelled_event_cannot_be_cancelled_again(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        body = {"cancelled_by_user_id": organizer, "cancel_reason": "Rain"}
        client.post(f"/api/events/{event_id}/cancel", json=body)
        assert client.post(f"/api/events/{event_id}/cancel", json=body).status_code == 409

    def test_list_filters(self, client):
        organizer = _uid()
        kept = _make_event(client, organizer, title="Kept").json()
        dropped = _make_event(client, organizer, title="Dropped", days=15).json()
        client.post(
            f"/api/events/{dropped['event_id']}/cancel",
            json={"cancelled_by_user_id": organizer, "cancel_reason": "Rain"},
        )
        resp = client.get("/api/events/", params={"organizer_id": organizer, "include_finished": False})
        assert [e["event_id"] for e in resp.json()] == [kept["event_id"]]
        resp = client.get("/api/events/", params={"organizer_id": organizer, "status": "cancelled"})
        assert [e["event_id"] for e in resp.json()] == [dropped["event_id"]]


class TestRecommendationToConfirmation:
    """Full path from quorum to a confirmed venue."""

    def test_full_flow(self, client):
        organizer, guests, event_id = _gathering_event(client)

        resp = client.post(f"/api/events/{event_id}/recommendations", json={"actor_id": organizer})
        assert resp.status_code == 202
        assert wait_for(lambda: client.get(f"/api/events/{event_id}").json()["status"] == "voting", timeout=10)

        progress = client.get(f"/api/events/{event_id}/recommendations/progress").json()
        assert progress["current_step_name"] == "completed"

        options = client.get(f"/api/events/{event_id}/options").json()
        assert len(options) == 2
        chosen = options[1]["option_id"]

        for voter, value in [(organizer, 5), (guests[0], 4)]:
            resp = client.post(
                f"/api/events/{event_id}/votes",
                json={"option_id": chosen, "voter_id": voter, "vote_value": value},
            )
            assert resp.status_code == 200
        stats = client.get(f"/api/events/{event_id}/votes/statistics").json()
        assert {o["option_id"]: o["total"] for o in stats["options"]}[chosen] == 9
        assert stats["voted_count"] == 2
        assert stats["total_participants"] == 3

        resp = client.post(f"/api/events/{event_id}/finalize", json={"actor_id": organizer, "option_id": chosen})
        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmed"
        assert resp.json()["final_option_id"] == chosen

        history = client.get(f"/api/events/{event_id}/transitions").json()
        assert [h["to_status"] for h in history] == [
            "draft", "planning", "inviting", "gathering_preferences", "ai_recommending", "voting", "confirmed",
        ]
        assert history[0]["from_status"] is None

    def test_recommendations_before_quorum(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = client.post(f"/api/events/{event_id}/recommendations", json={"actor_id": organizer})
        assert resp.status_code == 409

    def test_vote_before_voting_opens(self, client):
        organizer, _, event_id = _gathering_event(client)
        option = client.post(
            f"/api/events/{event_id}/options",
            json={"actor_id": organizer, "external_place_name": "Picnic"},
        )
        assert option.status_code == 201
        resp = client.post(
            f"/api/events/{event_id}/votes",
            json={"option_id": option.json()["option_id"], "voter_id": organizer, "vote_value": 4},
        )
        assert resp.status_code == 409


class TestWaitlistApi:
    """Waitlist endpoints."""

    def test_join_and_promote_head(self, client):
        organizer, guest, queued = _uid(), _uid(), _uid()
        event_id = _make_event(client, organizer, max_attendees=2).json()["event_id"]
        _invite(client, event_id, organizer, [guest])
        client.post(f"/api/events/{event_id}/accept", json={"user_id": guest})

        resp = client.post(f"/api/events/{event_id}/waitlist", json={"user_id": queued, "notes": "Any time"})
        assert resp.status_code == 201
        assert [e["user_id"] for e in client.get(f"/api/events/{event_id}/waitlist").json()] == [queued]

        # No free spot yet
        assert client.post(
            f"/api/events/{event_id}/waitlist/promote", json={"actor_id": organizer},
        ).status_code == 409

        client.post(f"/api/events/{event_id}/decline", json={"user_id": guest})
        resp = client.post(f"/api/events/{event_id}/waitlist/promote", json={"actor_id": organizer})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == queued
        assert resp.json()["status"] == "promoted"
        assert client.get(f"/api/events/{event_id}/waitlist").json() == []
        assert client.get(f"/api/events/{event_id}").json()["accepted_count"] == 2

    def test_join_open_event_rejected(self, client):
        event_id = _make_event(client, _uid(), max_attendees=5).json()["event_id"]
        assert client.post(f"/api/events/{event_id}/waitlist", json={"user_id": _uid()}).status_code == 422


class TestTemplatesApi:
    """Recurring template endpoints."""

    def _payload(self, organizer):
        return {
            "organizer_id": organizer,
            "title": "Weekly lunch",
            "recurrence_pattern": "weekly",
            "days_of_week": ["friday"],
            "scheduled_time": "12:00:00",
            "expected_attendees": 4,
            "start_date": future_day(30).isoformat(),
        }

    def test_create_toggle_delete(self, client):
        organizer = _uid()
        resp = client.post("/api/templates/", json=self._payload(organizer))
        assert resp.status_code == 201
        template = resp.json()
        assert template["status"] == "active"
        assert template["acceptance_threshold"] == 0.7
        assert template["next_occurrence"] is not None

        listed = client.get("/api/templates/", params={"organizer_id": organizer}).json()
        assert [t["template_id"] for t in listed] == [template["template_id"]]

        resp = client.post(f"/api/templates/{template['template_id']}/toggle", json={"actor_id": organizer})
        assert resp.json()["status"] == "paused"

        assert client.delete(
            f"/api/templates/{template['template_id']}", params={"actor_id": _uid()},
        ).status_code == 403
        assert client.delete(
            f"/api/templates/{template['template_id']}", params={"actor_id": organizer},
        ).status_code == 204
        assert client.get(f"/api/templates/{template['template_id']}").status_code == 404

    def test_invalid_weekday(self, client):
        payload = self._payload(_uid())
        payload["days_of_week"] = ["someday"]
        assert client.post("/api/templates/", json=payload).status_code == 422


class TestMaintenance:
    """Manual job triggers."""

    def test_sweep_report(self, client):
        resp = client.post("/api/maintenance/sweep")
        assert resp.status_code == 200
        assert set(resp.json()) == {
            "started_at", "cancelled", "finalized", "completed", "awaiting_finalize", "skipped", "failed",
        }

    def test_recurring_generation(self, client):
        organizer = _uid()
        payload = {
            "organizer_id": organizer,
            "title": "Daily standup walk",
            "recurrence_pattern": "daily",
            "scheduled_time": "23:30:00",
            "expected_attendees": 3,
            "start_date": future_day(2).isoformat(),
            "days_in_advance": 3,
        }
        client.post("/api/templates/", json=payload)
        resp = client.post("/api/maintenance/recurring")
        assert resp.status_code == 200
        created = resp.json()
        assert len(created) >= 1
        assert all(e["status"] == "draft" and e["organizer_id"] == organizer for e in created)

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}


class TestReschedule:
    """Moving a live event to a new slot."""

    def _reschedule(self, client, event_id, actor_id, days, at="12:00:00", **fields):
        body = {
            "actor_id": actor_id,
            "scheduled_date": future_day(days).isoformat(),
            "scheduled_time": at,
            "reason": "Venue double-booked",
        }
        body.update(fields)
        return client.post(f"/api/events/{event_id}/reschedule", json=body)

    def test_reschedule_keeps_previous_slot(self, client):
        organizer = _uid()
        created = _make_event(client, organizer).json()
        resp = self._reschedule(client, created["event_id"], organizer, 20, version=1)
        assert resp.status_code == 200
        data = resp.json()
        assert data["scheduled_date"] == future_day(20).isoformat()
        assert data["scheduled_time"] == "12:00:00"
        assert data["previous_scheduled_date"] == created["scheduled_date"]
        assert data["previous_scheduled_time"] == "18:00:00"
        assert data["previous_timezone"] == "UTC"
        assert data["reschedule_count"] == 1
        assert data["reschedule_reason"] == "Venue double-booked"
        assert data["last_rescheduled_at"] is not None
        assert data["version"] == 2
        assert data["status"] == "draft"
        assert data["rsvp_deadline"].startswith(f"{future_day(19).isoformat()}T12:00:00")

    def test_moving_within_own_slot_is_not_a_conflict(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = self._reschedule(client, event_id, organizer, 14, at="18:30:00")
        assert resp.status_code == 200
        assert resp.json()["scheduled_time"] == "18:30:00"

    def test_moving_onto_another_event_conflicts(self, client):
        organizer = _uid()
        _make_event(client, organizer, title="Bowling")
        later = _make_event(client, organizer, title="Karaoke", days=15).json()
        resp = self._reschedule(client, later["event_id"], organizer, 14, at="19:00:00")
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"
        assert client.get(f"/api/events/{later['event_id']}").json()["scheduled_date"] == future_day(15).isoformat()

    def test_new_timezone(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = self._reschedule(client, event_id, organizer, 14, at="18:00:00", timezone="Asia/Tokyo")
        assert resp.status_code == 200
        assert resp.json()["timezone"] == "Asia/Tokyo"
        assert resp.json()["previous_timezone"] == "UTC"

    def test_only_organizer(self, client):
        event_id = _make_event(client, _uid()).json()["event_id"]
        assert self._reschedule(client, event_id, _uid(), 20).status_code == 403

    def test_past_date_rejected(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        assert self._reschedule(client, event_id, organizer, -2).status_code == 422

    def test_reason_required(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        assert self._reschedule(client, event_id, organizer, 20, reason="").status_code == 422

    def test_stale_version(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        resp = self._reschedule(client, event_id, organizer, 20, version=7)
        assert resp.status_code == 409
        assert resp.json()["error"] == "stale_version"
        assert client.get(f"/api/events/{event_id}").json()["reschedule_count"] == 0

    def test_cancelled_event_cannot_be_rescheduled(self, client):
        organizer = _uid()
        event_id = _make_event(client, organizer).json()["event_id"]
        client.post(
            f"/api/events/{event_id}/cancel",
            json={"cancelled_by_user_id": organizer, "cancel_reason": "Rain"},
        )
        resp = self._reschedule(client, event_id, organizer, 20)
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state"
