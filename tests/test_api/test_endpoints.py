"""API endpoint integration tests against an in-memory database."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ehr_guard.api.app import create_app
from ehr_guard.core.auth import create_access_token
from ehr_guard.core.database import get_db
from ehr_guard.core.models import ClinicalNote
from ehr_guard.triggers.notifications import HIGH_RISK_TOPIC

START = datetime(2026, 5, 4, 14, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def app(engine, seed, dispatcher):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with factory() as sess:
            try:
                yield sess
                await sess.commit()
            except Exception:
                await sess.rollback()
                raise

    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.state.dispatcher = dispatcher
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth(auth_ref: str, role: str | None = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(auth_ref, role=role)}"}


def _appointment_body(seed, provider="provider_a"):
    return {
        "patient_id": str(seed.patient_1.id),
        "provider_id": str(getattr(seed, provider).id),
        "appointment_type": "individual",
        "start_time": START.isoformat(),
        "end_time": (START + timedelta(minutes=50)).isoformat(),
        "duration": 50,
    }


class TestHealth:
    async def test_health_needs_no_token(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["lock_sweeper"] == "stopped"
        assert "X-Process-Time" in response.headers

    async def test_liveness(self, client):
        response = await client.get("/health/live")
        assert response.json() == {"status": "alive"}


class TestRequestIds:
    async def test_generated_when_absent(self, client):
        response = await client.get("/health/live")
        assert len(response.headers["X-Request-Id"]) == 8

    async def test_caller_id_is_echoed_and_reaches_decision_log(self, client, seed, obs_logger):
        response = await client.get(
            f"/api/v1/patients/{seed.patient_1.id}",
            headers={**auth("auth-dr-a"), "X-Request-Id": "req-7f3a"},
        )
        assert response.headers["X-Request-Id"] == "req-7f3a"

        (event,) = obs_logger.get_recent_events("access")
        assert event["request_id"] == "req-7f3a"
        assert event["record_id"] == str(seed.patient_1.id)

    async def test_oversized_id_is_replaced(self, client):
        response = await client.get("/health/live", headers={"X-Request-Id": "x" * 200})
        assert response.headers["X-Request-Id"] != "x" * 200


class TestAuthentication:
    async def test_missing_token_is_401(self, client):
        response = await client.get("/api/v1/patients")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_garbage_token_is_401(self, client):
        response = await client.get("/api/v1/patients", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_expired_token_is_401(self, client):
        token = create_access_token("auth-dr-a", expires_minutes=-5)
        response = await client.get("/api/v1/patients", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_unknown_identity_is_401(self, client):
        response = await client.get("/api/v1/patients", headers=auth("auth-stranger"))
        assert response.status_code == 401

    async def test_me_reports_resolved_role_not_claimed(self, client, seed):
        response = await client.get("/api/v1/me", headers=auth("auth-staff", role="admin"))
        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "staff"
        assert data["user_id"] == str(seed.staff.id)

    async def test_me_for_provider_includes_caseload_size(self, client):
        data = (await client.get("/api/v1/me", headers=auth("auth-dr-a"))).json()
        assert data["role"] == "provider"
        assert data["caseload_size"] == 1


class TestPatients:
    async def test_provider_lists_caseload(self, client, seed):
        response = await client.get("/api/v1/patients", headers=auth("auth-dr-a"))
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [str(seed.patient_1.id)]

    async def test_foreign_patient_is_404(self, client, seed):
        response = await client.get(f"/api/v1/patients/{seed.patient_2.id}", headers=auth("auth-dr-a"))
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_patient_reads_self(self, client, seed):
        response = await client.get(f"/api/v1/patients/{seed.patient_1.id}", headers=auth("auth-patient-1"))
        assert response.status_code == 200
        assert response.json()["first_name"] == "Pat"

    async def test_patient_field_restriction_is_422_with_fields(self, client, seed):
        response = await client.patch(
            f"/api/v1/patients/{seed.patient_1.id}",
            json={"phone_cell": "555-0101", "primary_provider_id": str(seed.provider_b.id)},
            headers=auth("auth-patient-1"),
        )
        assert response.status_code == 422
        assert response.json()["fields"] == ["primary_provider_id"]

    async def test_patient_updates_contact(self, client, seed):
        response = await client.patch(
            f"/api/v1/patients/{seed.patient_1.id}",
            json={"phone_cell": "555-0101"},
            headers=auth("auth-patient-1"),
        )
        assert response.status_code == 200
        assert response.json()["phone_cell"] == "555-0101"

    async def test_unknown_update_field_is_rejected(self, client, seed):
        response = await client.patch(
            f"/api/v1/patients/{seed.patient_1.id}",
            json={"favorite_color": "teal"},
            headers=auth("auth-staff"),
        )
        assert response.status_code == 422

    async def test_staff_cannot_delete_patient(self, client, seed):
        response = await client.delete(f"/api/v1/patients/{seed.patient_2.id}", headers=auth("auth-staff"))
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_summary(self, client, seed):
        response = await client.get(f"/api/v1/patients/{seed.patient_1.id}/summary", headers=auth("auth-dr-a"))
        assert response.status_code == 200
        data = response.json()
        assert data["patient_name"] == "Pat One"
        assert data["primary_provider"] == "Alice Avery"
        assert data["recent_assessments"] == []

    async def test_summary_of_foreign_patient_is_404(self, client, seed):
        response = await client.get(f"/api/v1/patients/{seed.patient_1.id}/summary", headers=auth("auth-dr-b"))
        assert response.status_code == 404


class TestAppointments:
    async def test_create_and_complete_creates_note(self, client, seed):
        headers = auth("auth-dr-a")
        created = await client.post("/api/v1/appointments", json=_appointment_body(seed), headers=headers)
        assert created.status_code == 201
        appointment_id = created.json()["id"]

        updated = await client.patch(
            f"/api/v1/appointments/{appointment_id}", json={"status": "completed"}, headers=headers
        )
        assert updated.status_code == 200
        assert updated.json()["status"] == "completed"

        notes = await client.get(
            "/api/v1/notes", params={"patient_id": str(seed.patient_1.id)}, headers=headers
        )
        assert [n["appointment_id"] for n in notes.json()] == [appointment_id]

    async def test_provider_cannot_book_for_another_provider(self, client, seed):
        response = await client.post(
            "/api/v1/appointments", json=_appointment_body(seed, provider="provider_b"), headers=auth("auth-dr-a")
        )
        assert response.status_code == 403

    async def test_followup(self, client, seed):
        headers = auth("auth-staff")
        created = (await client.post("/api/v1/appointments", json=_appointment_body(seed), headers=headers)).json()

        response = await client.post(
            f"/api/v1/appointments/{created['id']}/followup",
            json={"days_until_followup": 21},
            headers=headers,
        )
        assert response.status_code == 201
        followup = response.json()
        assert followup["status"] == "scheduled"
        start = datetime.fromisoformat(followup["start_time"])
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        assert start == START + timedelta(days=21)

    async def test_followup_with_invalid_days_is_422(self, client, seed):
        headers = auth("auth-staff")
        created = (await client.post("/api/v1/appointments", json=_appointment_body(seed), headers=headers)).json()
        response = await client.post(
            f"/api/v1/appointments/{created['id']}/followup",
            json={"days_until_followup": 0},
            headers=headers,
        )
        assert response.status_code == 422

    async def test_followup_for_missing_appointment_is_404(self, client):
        response = await client.post(f"/api/v1/appointments/{uuid.uuid4()}/followup", headers=auth("auth-admin"))
        assert response.status_code == 404


class TestNotes:
    async def _note(self, engine, seed, **kwargs):
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as sess:
            note = ClinicalNote(
                patient_id=seed.patient_1.id,
                provider_id=seed.provider_a.id,
                note_type="soap",
                subjective="Initial intake.",
                **kwargs,
            )
            sess.add(note)
            await sess.commit()
            return note.id

    async def test_sign_then_patient_can_read(self, client, engine, seed):
        note_id = await self._note(engine, seed)

        hidden = await client.get(f"/api/v1/notes/{note_id}", headers=auth("auth-patient-1"))
        assert hidden.status_code == 404

        signed = await client.post(
            f"/api/v1/notes/{note_id}/sign", json={"signature": "Alice Avery"}, headers=auth("auth-dr-a")
        )
        assert signed.status_code == 200
        assert signed.json()["is_signed"] is True

        visible = await client.get(f"/api/v1/notes/{note_id}", headers=auth("auth-patient-1"))
        assert visible.status_code == 200

    async def test_locked_note_is_409(self, client, engine, seed):
        note_id = await self._note(engine, seed, is_signed=True, signed_at=START, is_locked=True, locked_at=START)
        response = await client.patch(f"/api/v1/notes/{note_id}", json={"plan": "x"}, headers=auth("auth-admin"))
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_state_fields_are_not_part_of_update_schema(self, client, engine, seed):
        note_id = await self._note(engine, seed)
        response = await client.patch(
            f"/api/v1/notes/{note_id}", json={"is_locked": False}, headers=auth("auth-dr-a")
        )
        assert response.status_code == 422


class TestAssessments:
    async def test_high_score_notifies_after_commit(self, client, seed, sink, dispatcher):
        response = await client.post(
            "/api/v1/assessments",
            json={
                "patient_id": str(seed.patient_1.id),
                "provider_id": str(seed.provider_a.id),
                "assessment_type": "GAD-7",
                "assessment_date": "2026-05-04",
                "score": 17,
            },
            headers=auth("auth-dr-a"),
        )
        assert response.status_code == 201
        await dispatcher.drain()
        (notification,) = sink.for_topic(HIGH_RISK_TOPIC)
        assert notification.payload["provider_contact"] == "dr.a@clinic.test"


class TestAudit:
    async def test_audit_visibility(self, client, seed):
        await client.patch(f"/api/v1/patients/{seed.patient_1.id}", json={"city": "Austin"}, headers=auth("auth-staff"))

        admin = await client.get("/api/v1/audit", headers=auth("auth-admin"))
        assert admin.status_code == 200
        (record,) = admin.json()
        assert record["action"] == "UPDATE"
        assert record["changed_data"] == {"city": "Austin"}

        provider = await client.get("/api/v1/audit", headers=auth("auth-dr-a"))
        assert len(provider.json()) == 1

        other = await client.get("/api/v1/audit", headers=auth("auth-dr-b"))
        assert other.json() == []

        staff = await client.get("/api/v1/audit", headers=auth("auth-staff"))
        assert staff.status_code == 403


class TestUsers:
    async def test_role_change_is_rejected(self, client, seed):
        response = await client.patch(
            f"/api/v1/users/{seed.staff.id}", json={"role": "admin"}, headers=auth("auth-admin")
        )
        assert response.status_code == 422
        assert response.json()["fields"] == ["role"]

    async def test_provider_cannot_see_admin_user(self, client, seed):
        response = await client.get(f"/api/v1/users/{seed.admin.id}", headers=auth("auth-dr-a"))
        assert response.status_code == 404
