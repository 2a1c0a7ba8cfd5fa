import pytest
from firebase_admin import firestore

from conftest import auth
from services.auth_service import EMAIL_IN_USE, INVALID_CREDENTIALS, AuthError, AuthSession
from services.quiz_service.utils import today_in


def _answer_for(problem):
    a, b = problem["num1"], problem["num2"]
    return {"add": a + b, "sub": a - b, "mul": a * b, "div": a // b}[problem["operation"]]


def _start(client, uid="kid-1", **body):
    body.setdefault("difficulty", "beginner")
    body.setdefault("operation", "add")
    body.setdefault("count", 3)
    return client.post("/api/quiz/start", json=body, headers=auth(uid))


def _registry(app):
    return app.extensions["math_genius"].registry


# -------------------- Auth & public --------------------

def test_health_is_public(client) -> None:
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json()["store"] == "memory"


def test_quiz_routes_require_token(client) -> None:
    assert client.post("/api/quiz/start", json={}).status_code == 401
    assert client.get("/api/accounts/me", headers={"Authorization": "Token x"}).status_code == 401


def test_badges_are_public(client) -> None:
    body = client.get("/api/quiz/badges").get_json()
    assert [b["name"] for b in body["badges"]] == ["Beginner", "Genius", "The King", "The Legend"]
    assert [b["required"] for b in body["badges"]] == [50, 100, 200, 300]


def test_unknown_route_is_json_404(client) -> None:
    res = client.get("/api/nothing-here")
    assert res.status_code == 404
    assert res.get_json() == {"ok": False, "error": "Not found"}


# -------------------- Quiz flow --------------------

def test_full_round_saves_stats(client, store, student) -> None:
    state = _start(client).get_json()["state"]
    assert state["phase"] == "active"
    assert state["totalQuestions"] == 3
    assert "correctAnswer" not in state["currentProblem"]

    # first question wrong twice, the rest right
    client.post("/api/quiz/answer", json={"answer": -1}, headers=auth("kid-1"))
    res = client.post("/api/quiz/answer", json={"answer": "-1"}, headers=auth("kid-1")).get_json()
    assert res["outcome"]["final"] is True
    assert res["finished"] is None
    state = res["state"]

    while state["phase"] == "active":
        res = client.post("/api/quiz/answer", json={"answer": _answer_for(state["currentProblem"])},
                          headers=auth("kid-1")).get_json()
        assert res["outcome"]["isCorrect"] is True
        state = res["state"]

    finished = res["finished"]
    assert state["phase"] == "finished"
    assert finished["result"]["score"] == 2
    assert finished["result"]["totalQuestions"] == 3
    assert finished["stats_saved"] is True
    assert finished["stats"]["totalCorrect"] == 2

    doc = store.get_document("users", "kid-1")
    assert (doc["totalCorrect"], doc["totalIncorrect"], doc["streak"]) == (2, 1, 1)

    status = client.get("/api/quiz/state", headers=auth("kid-1")).get_json()
    assert status["has_active_session"] is False
    assert status["last_finished"]["result"]["score"] == 2


def test_finish_without_profile_reports_unsaved(client, store) -> None:
    state = _start(client, uid="no-profile", count=1).get_json()["state"]
    res = client.post("/api/quiz/answer", json={"answer": _answer_for(state["currentProblem"])},
                      headers=auth("no-profile")).get_json()
    assert res["finished"]["stats_saved"] is False
    assert res["finished"]["reason"] == "profile_unavailable"
    assert store.get_document("users", "no-profile") is None


def test_malformed_answer_is_not_counted(client, student) -> None:
    _start(client)
    res = client.post("/api/quiz/answer", json={"answer": "twelve"}, headers=auth("kid-1")).get_json()
    assert res["outcome"]["accepted"] is False
    assert res["state"]["attemptsOnCurrent"] == 0


@pytest.mark.parametrize("body", [
    {"difficulty": "genius"},
    {"operation": "pow"},
    {"count": 0},
    {"count": 51},
    {"count": "many"},
    {"duration": 5},
])
def test_start_rejects_bad_settings(client, body) -> None:
    res = _start(client, **body)
    assert res.status_code == 400
    assert res.get_json()["ok"] is False


def test_quick_start_is_short_mixed_beginner_round(client) -> None:
    state = client.post("/api/quiz/quick-start", headers=auth("kid-1")).get_json()["state"]
    assert state["totalQuestions"] == 5
    assert state["durationSeconds"] == 60
    assert state["difficulty"] == "beginner"
    assert state["operation"] == "mixed"
    assert state["currentProblem"]["operation"] in {"add", "sub", "mul", "div"}


def test_routes_without_session_return_404(client) -> None:
    assert client.post("/api/quiz/answer", json={"answer": 1}, headers=auth("kid-1")).status_code == 404
    assert client.post("/api/quiz/skip", headers=auth("kid-1")).status_code == 404
    assert client.post("/api/quiz/restart", headers=auth("kid-1")).status_code == 404
    assert client.post("/api/quiz/feedback", headers=auth("kid-1")).status_code == 404


def test_skip_needs_a_wrong_attempt_first(client, student) -> None:
    _start(client)
    assert client.post("/api/quiz/skip", headers=auth("kid-1")).status_code == 409

    client.post("/api/quiz/answer", json={"answer": 99}, headers=auth("kid-1"))
    res = client.post("/api/quiz/skip", headers=auth("kid-1"))
    assert res.status_code == 200
    assert res.get_json()["state"]["currentIndex"] == 1


def test_restart_only_after_timeout(app, client, student) -> None:
    _start(client, duration=30)
    assert client.post("/api/quiz/restart", headers=auth("kid-1")).status_code == 409

    _registry(app).get("kid-1").tick(30)
    state = client.get("/api/quiz/state", headers=auth("kid-1")).get_json()["state"]
    assert state["phase"] == "timed_out"

    res = client.post("/api/quiz/restart", headers=auth("kid-1"))
    assert res.status_code == 200
    assert res.get_json()["state"]["phase"] == "active"
    assert res.get_json()["state"]["remainingSeconds"] == 30


def test_exit_discards_session(client, store, student) -> None:
    _start(client)
    assert client.post("/api/quiz/exit", headers=auth("kid-1")).get_json()["exited"] is True
    assert client.get("/api/quiz/state", headers=auth("kid-1")).get_json()["has_active_session"] is False
    assert client.post("/api/quiz/exit", headers=auth("kid-1")).get_json()["exited"] is False
    assert store.get_document("users", "kid-1")["totalCorrect"] == 0


def test_new_start_replaces_running_session(app, client) -> None:
    first = _start(client).get_json()["state"]["sessionId"]
    second = _start(client).get_json()["state"]["sessionId"]
    assert first != second
    assert _registry(app).get("kid-1").session_id == second


def test_feedback_after_finish(client, student, text_generator) -> None:
    state = _start(client, count=1, difficulty="expert").get_json()["state"]
    client.post("/api/quiz/answer", json={"answer": _answer_for(state["currentProblem"])}, headers=auth("kid-1"))

    res = client.post("/api/quiz/feedback", headers=auth("kid-1"))
    assert res.status_code == 200
    assert res.get_json()["feedback"] == "Well done!"
    assert '"expert"' in text_generator.prompts[0]


# -------------------- Accounts --------------------

class FakeIssuer:
    def __init__(self, error=None):
        self.error = error

    def sign_up(self, email, password, display_name):
        if self.error:
            raise self.error
        return AuthSession(uid="new-kid", id_token="tok", email=email, display_name=display_name)

    def sign_in(self, email, password):
        if self.error:
            raise self.error
        return AuthSession(uid="kid-1", id_token="tok", email=email)


def test_signup_creates_student_profile(app, client, store) -> None:
    app.extensions["math_genius"].issuer = FakeIssuer()
    res = client.post("/api/accounts/signup", json={
        "email": "sara@example.com", "password": "secret1", "displayName": "Sara", "teacherId": "T1",
    })
    assert res.status_code == 201
    body = res.get_json()
    assert body["session"]["uid"] == "new-kid"
    assert body["profile"]["displayName"] == "Sara"
    doc = store.get_document("users", "new-kid")
    assert doc["teacherId"] == "T1"
    assert doc["totalCorrect"] == 0


@pytest.mark.parametrize("error, status", [
    (AuthError(EMAIL_IN_USE), 409),
    (AuthError(INVALID_CREDENTIALS), 401),
    (AuthError("unknown"), 400),
])
def test_auth_errors_map_to_status(app, client, error, status) -> None:
    app.extensions["math_genius"].issuer = FakeIssuer(error)
    res = client.post("/api/accounts/login", json={"email": "a@b.co", "password": "x"})
    assert res.status_code == status
    assert res.get_json()["error"] == error.code


def test_login_returns_profile(app, client, student) -> None:
    app.extensions["math_genius"].issuer = FakeIssuer()
    body = client.post("/api/accounts/login", json={"email": "kid1@example.com", "password": "x"}).get_json()
    assert body["profile"]["id"] == "kid-1"
    assert client.post("/api/accounts/login", json={"email": "a@b.co"}).status_code == 400


def test_me_and_rename(client, student) -> None:
    assert client.get("/api/accounts/me", headers=auth("kid-1")).get_json()["profile"]["displayName"] == "Kid One"
    assert client.get("/api/accounts/me", headers=auth("stranger")).status_code == 404

    res = client.patch("/api/accounts/me", json={"displayName": "Captain"}, headers=auth("kid-1"))
    assert res.get_json()["profile"]["displayName"] == "Captain"
    assert client.patch("/api/accounts/me", json={}, headers=auth("kid-1")).status_code == 400


def test_history_has_seven_days(client, student) -> None:
    body = client.get("/api/accounts/me/history?timezone=Africa/Cairo", headers=auth("kid-1")).get_json()
    assert len(body["days"]) == 7
    assert body["streak"] == 0
    assert all(d["correct"] == 0 for d in body["days"])


def test_teacher_lookup(client, teacher) -> None:
    body = client.get("/api/accounts/teachers/T1", headers=auth("kid-1")).get_json()
    assert body["teacher"]["displayName"] == "Ms. Noor"
    assert client.get("/api/accounts/teachers/none", headers=auth("kid-1")).status_code == 404


def test_leaderboard_route(client, store, student, teacher) -> None:
    store.merge_write("users", "kid-2", {"displayName": "Kid Two", "totalCorrect": 75, "teacherId": "T9"})
    body = client.get("/api/accounts/leaderboard", headers=auth("kid-1")).get_json()
    assert [e["id"] for e in body["leaderboard"]][0] == "kid-2"
    assert body["leaderboard"][0]["badgesCount"] == 1

    body = client.get("/api/accounts/leaderboard?teacher_id=T1", headers=auth("kid-1")).get_json()
    assert {e["id"] for e in body["leaderboard"]} == {"kid-1", "T1"}

    assert client.get("/api/accounts/leaderboard?limit=x", headers=auth("kid-1")).status_code == 400


def test_me_reflects_writes_made_elsewhere(client, store, student) -> None:
    assert client.get("/api/accounts/me", headers=auth("kid-1")).get_json()["profile"]["totalCorrect"] == 0

    day = today_in("UTC").isoformat()
    store.merge_write("users", "kid-1", {
        "totalCorrect": firestore.Increment(7),
        "streak": 3,
        "dailyHistory": {day: {"date": day, "correct": 5, "incorrect": 2}},
    })

    profile = client.get("/api/accounts/me", headers=auth("kid-1")).get_json()["profile"]
    assert (profile["totalCorrect"], profile["streak"]) == (7, 3)
    history = client.get("/api/accounts/me/history?timezone=UTC", headers=auth("kid-1")).get_json()
    assert history["days"][-1]["correct"] == 5
    assert history["totalCorrect"] == 7


def test_signup_with_store_down_reports_it_and_login_creates_profile(app, client, store) -> None:
    app.extensions["math_genius"].issuer = FakeIssuer()
    store.fail_writes = True
    res = client.post("/api/accounts/signup", json={
        "email": "sara@example.com", "password": "secret1", "displayName": "Sara",
    })
    assert res.status_code == 503
    body = res.get_json()
    assert body["error"] == "profile_unavailable"
    assert body["session"]["uid"] == "new-kid"
    assert store.get_document("users", "new-kid") is None

    store.fail_writes = False
    app.extensions["math_genius"].issuer.sign_in = lambda email, password: AuthSession(
        uid="new-kid", id_token="tok", email=email, display_name="Sara",
    )
    body = client.post("/api/accounts/login", json={"email": "sara@example.com", "password": "secret1"}).get_json()
    assert body["profile"]["id"] == "new-kid"
    assert body["profile"]["displayName"] == "Sara"
    assert store.get_document("users", "new-kid")["role"] == "student"
