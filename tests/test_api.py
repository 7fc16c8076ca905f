from fastapi.testclient import TestClient

from phishtrainer.config import settings
from phishtrainer.core.generators import ContentGenerator, GeneratedBatch
from phishtrainer.database import get_db
from phishtrainer.main import create_app

API = settings.API_PREFIX


def test_health(client):
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_root(client):
    assert client.get("/").json()["docs"] == "/docs"


def test_analyze_suspicious_email(client):
    response = client.post(f"{API}/analyze", json={
        "subject": "URGENT: Verify Your Account Now!",
        "body_html": '<p><a href="http://amazon-verify.com/confirm">Confirm</a></p>',
        "from_email": "security@amazon-verify.com",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["difficulty"] == 3
    assert body["phish_score"] >= 7
    assert "domain_misspelling" in body["flag_keys"]


def test_analyze_malformed_link(client):
    response = client.post(f"{API}/analyze", json={"subject": "Hello", "body_html": "<p>Visit http://[oops/login now</p>"})
    assert response.status_code == 200
    assert "http_not_https" in response.json()["flag_keys"]


def test_analyze_requires_body(client):
    assert client.post(f"{API}/analyze", json={"subject": "No body"}).status_code == 422


def test_classify_with_noop_provider(client):
    response = client.post(f"{API}/classify", json={"subject": "Hi", "body_markup": "<p>Lunch?</p>"})
    body = response.json()
    assert body["provider"] == "noop"
    assert body["classifier"]["prob_phish"] == 0.5
    assert body["classifier"]["has_insight"] is False
    assert body["heuristics"]["flags"] == []


def test_generate_clamps_count_and_dedupes(client):
    first = client.post(f"{API}/emails/generate", json={"count": 50})
    assert first.status_code == 200
    report = first.json()
    assert report["generated"] == 20
    assert report["inserted"] == 12
    assert report["skipped"] == 8

    again = client.post(f"{API}/emails/generate", json={"count": 3}).json()
    assert again["inserted"] == 0
    assert again["skipped"] == 3

    stats = client.get(f"{API}/emails/stats").json()
    assert stats["total"] == 12
    assert stats["phish"] == 6
    assert sum(stats["by_difficulty"].values()) == 12


def test_play_loop(client):
    client.post(f"{API}/emails/generate", json={"count": 2})

    item = client.get(f"{API}/emails/next", params={"player_id": "p1"}).json()
    assert item["done"] is False
    assert item["difficulty"] in ("easy", "medium", "hard")
    assert "is_phish" not in item

    guess = client.post(f"{API}/guess", json={"player_id": "p1", "email_id": item["id"], "guess_is_phish": True})
    assert guess.status_code == 200
    assert set(guess.json()) >= {"correct", "points_delta", "snapshot", "badges", "explanation"}

    repeat = client.post(f"{API}/guess", json={"player_id": "p1", "email_id": item["id"], "guess_is_phish": True})
    assert repeat.status_code == 409

    summary = client.get(f"{API}/profile/p1/summary").json()
    assert summary["total_guesses"] == 1

    second = client.get(f"{API}/emails/next", params={"player_id": "p1"}).json()
    assert second["id"] != item["id"]
    client.post(f"{API}/guess", json={"player_id": "p1", "email_id": second["id"], "guess_is_phish": False})
    assert client.get(f"{API}/emails/next", params={"player_id": "p1"}).json() == {"done": True}


def test_guess_unknown_email(client):
    response = client.post(f"{API}/guess", json={"player_id": "p1", "email_id": 999, "guess_is_phish": True})
    assert response.status_code == 404


def test_unknown_profile(client):
    assert client.get(f"{API}/profile/ghost/summary").status_code == 404


def test_stored_email_analysis(client):
    report = client.post(f"{API}/emails/generate", json={"count": 1}).json()
    item_id = report["inserted_ids"][0]
    first = client.get(f"{API}/emails/{item_id}/analysis")
    assert first.status_code == 200
    assert first.json() == client.get(f"{API}/emails/{item_id}/analysis").json()
    assert client.get(f"{API}/emails/4242/analysis").status_code == 404


def test_badges_table(client):
    badges = client.get(f"{API}/badges").json()
    assert len(badges) == 12
    assert badges[0]["id"] == "first_steps"
    assert badges[2]["requirement_type"] == "correctAtLevel"


class BrokenGenerator(ContentGenerator):
    name = "broken"

    def generate(self, count, timeout=None):
        return GeneratedBatch(items=[{"subject": "no other fields"}], source=self.name)


def test_generate_with_no_valid_candidates_is_422(session_factory):
    app = create_app(generator=BrokenGenerator(), init_database=False)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        response = test_client.post(f"{API}/emails/generate", json={"count": 1})
    assert response.status_code == 422
    assert response.json()["detail"]["errors"]
