import os

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from homefix import __version__
from homefix.llm.questions import create_fallback_questions
from homefix.main_api import _parse_limit, _read_limited, app, get_pipeline
from homefix.pipeline.run import AnalysisOutcome
from homefix.schemas.analysis import RepairAnalysis
from homefix.store.repo import Repo

client = TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def fake_pipeline(sample_analysis_dict):
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=AnalysisOutcome(
        ticket_id=42,
        analysis=RepairAnalysis.model_validate(sample_analysis_dict),
        youtube_url="https://www.youtube.com/watch?v=xDMP3i36naA",
    ))
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield pipeline
    app.dependency_overrides.pop(get_pipeline, None)


class TestAnalyze:
    def test_requires_description_or_image(self, fake_pipeline):
        response = client.post("/api/analyze", data={"description": ""})
        assert response.status_code == 400
        assert response.json() == {"error": "Provide a description or an image."}
        fake_pipeline.run.assert_not_awaited()

    def test_rejects_non_image_upload(self, fake_pipeline):
        response = client.post(
            "/api/analyze",
            data={"description": "Leak"},
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Only image files are allowed"}

    def test_rejects_oversized_upload(self, fake_pipeline):
        from homefix.main_api import settings
        with patch.object(settings, "MAX_UPLOAD_BYTES", 10):
            response = client.post(
                "/api/analyze",
                files={"image": ("big.jpg", b"x" * 11, "image/jpeg")},
            )
        assert response.status_code == 400
        assert response.json() == {"error": "File size too large. Maximum size is 25MB."}

    def test_oversized_upload_never_written(self, fake_pipeline):
        from homefix.main_api import settings
        before = set(os.listdir(settings.UPLOAD_DIR))
        with patch.object(settings, "MAX_UPLOAD_BYTES", 10), \
             patch("homefix.main_api.UPLOAD_CHUNK_BYTES", 4):
            response = client.post(
                "/api/analyze",
                files={"image": ("big.jpg", b"x" * 100, "image/jpeg")},
            )
        assert response.status_code == 400
        assert set(os.listdir(settings.UPLOAD_DIR)) == before
        fake_pipeline.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_stops_once_limit_exceeded(self):
        """
        WHY: A huge upload must not be buffered whole just to be rejected.
        HOW: Feed 25 four-byte chunks against a 10-byte limit.
        EXPECTED: None after the third chunk; the rest is never read.
        """
        upload = MagicMock()
        upload.read = AsyncMock(side_effect=[b"aaaa"] * 25 + [b""])

        assert await _read_limited(upload, 10) is None
        assert upload.read.await_count == 3

    @pytest.mark.asyncio
    async def test_read_within_limit(self):
        upload = MagicMock()
        upload.read = AsyncMock(side_effect=[b"abc", b"def", b""])
        assert await _read_limited(upload, 10) == b"abcdef"

    def test_text_analysis(self, fake_pipeline):
        """
        WHY: The client renders the plan straight from this response.
        HOW: Post a description with the pipeline replaced by a stub.
        EXPECTED:
            1. HTTP 200 with ticketId, plan fields and youtube_url.
            2. Persistence scheduled in the background with the same outcome.
        """
        response = client.post("/api/analyze", data={"description": "Hole in drywall", "email": "a@b.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["ticketId"] == 42
        assert body["tools"] == [{"name": "Putty knife", "purpose": "apply compound"}]
        assert body["likelihood"] == {"small_hole": 0.8, "water_damage": 0.2}
        assert body["youtube_url"] == "https://www.youtube.com/watch?v=xDMP3i36naA"
        fake_pipeline.run.assert_awaited_once_with("Hole in drywall", "a@b.com", None)
        fake_pipeline.persist.assert_called_once_with(fake_pipeline.run.return_value)

    def test_image_saved_to_upload_dir(self, fake_pipeline):
        response = client.post(
            "/api/analyze",
            files={"image": ("leak.png", b"\x89PNG data", "image/png")},
        )

        assert response.status_code == 200
        description, email, upload = fake_pipeline.run.await_args.args
        assert description is None
        assert email is None
        assert upload.original_name == "leak.png"
        assert upload.mime == "image/png"
        assert upload.size_bytes == 9
        assert upload.path.endswith(".png")
        assert os.path.exists(upload.path)

    def test_pipeline_failure(self, fake_pipeline):
        fake_pipeline.run.side_effect = RuntimeError("db gone")
        response = client.post("/api/analyze", data={"description": "Leak"})
        assert response.status_code == 500
        assert response.json() == {"error": "Server error"}
        fake_pipeline.persist.assert_not_called()


class TestTickets:
    def test_list_tickets(self, test_db):
        ticket_id = Repo.create_ticket("Leaky faucet")
        Repo.create_analysis(ticket_id, [], [], ["Tighten nut"])

        response = client.get("/api/tickets", params={"limit": 10})

        assert response.status_code == 200
        tickets = response.json()
        assert tickets[0]["id"] == ticket_id
        assert tickets[0]["latest_analysis"]["steps"] == ["Tighten nut"]

    @pytest.mark.parametrize("raw, expected", [
        ("abc", 50),
        ("10abc", 10),
        (" 7", 7),
        ("0", 50),
        ("", 50),
        (None, 50),
        ("-3", -3),
    ])
    def test_parse_limit(self, raw, expected):
        assert _parse_limit(raw) == expected

    def test_non_numeric_limit_serves_default(self, test_db):
        """
        WHY: A sloppy query string should still list tickets, not fail validation.
        HOW: Create 55 tickets and ask for ?limit=abc.
        EXPECTED: HTTP 200 with the default 50 rows.
        """
        for i in range(55):
            Repo.create_ticket(f"Ticket {i}")

        response = client.get("/api/tickets", params={"limit": "abc"})

        assert response.status_code == 200
        assert len(response.json()) == 50

    def test_storage_failure(self):
        with patch.object(Repo, "get_tickets_with_analysis", side_effect=RuntimeError("locked")):
            response = client.get("/api/tickets")
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch tickets"}


class TestContact:
    @pytest.mark.parametrize("payload", [
        {},
        {"name": "Ann", "email": "ann@example.com", "subject": "Hi"},
        {"name": "", "email": "ann@example.com", "subject": "Hi", "message": "Hello"},
    ])
    def test_missing_fields(self, payload):
        response = client.post("/api/contact", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "All fields are required (name, email, subject, message)."}

    def test_invalid_email(self):
        response = client.post("/api/contact", json={
            "name": "Ann", "email": "not-an-email", "subject": "Hi", "message": "Hello",
        })
        assert response.status_code == 400
        assert response.json() == {"error": "Please provide a valid email address."}

    def test_submission_saved(self, test_db):
        response = client.post("/api/contact", json={
            "name": " Ann ", "email": "ann@example.com", "subject": "Hi", "message": "Love it ",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Thank you for your message! We'll get back to you soon."
        assert isinstance(body["submissionId"], int)

    def test_malformed_body(self):
        response = client.post("/api/contact", content=b"{oops", headers={"content-type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request"}


class TestQuestions:
    def test_description_required(self):
        response = client.post("/api/generate-questions", json={"description": "   "})
        assert response.status_code == 400
        assert response.json() == {"error": "Description is required"}

    def test_returns_question_set(self):
        with patch("homefix.main_api.generate_questions", return_value=create_fallback_questions()) as gen:
            response = client.post("/api/generate-questions", json={"description": " Leaky faucet "})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [q["id"] for q in body["questionSet"]["questions"]] == ["location", "urgency"]
        assert gen.call_args.args[0] == "Leaky faucet"


def test_health():
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


def test_root():
    assert client.get("/").json() == {"name": "HomeFix API", "version": __version__, "status": "running"}


def test_unknown_route():
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}
