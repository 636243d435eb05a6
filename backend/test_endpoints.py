#!/usr/bin/env python3
"""
API 엔드포인트 테스트
- pytest: DB/인증/Gemini 를 가짜 객체로 바꿔 FastAPI TestClient 로 확인
- python test_endpoints.py: 실행 중인 서버에 요청을 보내 응답 코드 확인
"""
import io
import json
import logging
from datetime import datetime, timezone

import pandas as pd
import pymysql
import pytest
import requests
from fastapi import HTTPException
from fastapi.testclient import TestClient

import main
from growth.auth_client import AuthServiceError
from growth.diagnosis import DEFAULT_DIAGNOSIS_DOMAINS, domains_to_questions

BASE_URL = "http://localhost:8000"
HEADERS = {"Authorization": "Bearer good"}

client = TestClient(main.app)


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.lastrowid = 1
        self.rowcount = 1

    def execute(self, query, params=None):
        self.conn.queries.append((" ".join(query.split()), params))
        self.lastrowid = len(self.conn.queries)

    def fetchone(self):
        return None

    def fetchall(self):
        return []

    def close(self):
        pass


class FakeConnection:
    def __init__(self):
        self.queries = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self, *args):
        return FakeCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True

    def find(self, prefix):
        return [q for q in self.queries if q[0].startswith(prefix)]


class FakeGemini:
    def __init__(self, reply="AI 결과", keys=True):
        self.reply = reply
        self.keys = keys
        self.prompts = []

    def has_keys(self):
        return self.keys

    def generate(self, prompt, **kwargs):
        self.prompts.append(prompt)
        return self.reply


def make_user(role="teacher", school="가람초", email="t@school.kr", user_id="u1", name="김교사"):
    metadata = {"name": name, "schoolName": school}
    if role:
        metadata["role"] = role
    return {"id": user_id, "email": email, "user_metadata": metadata, "created_at": "2026-03-01T00:00:00Z"}


@pytest.fixture
def db(monkeypatch):
    conn = FakeConnection()
    monkeypatch.setattr(main, "get_db_connection", lambda: conn)
    monkeypatch.setattr(main, "fetch_school_settings_json", lambda cursor, school: None)
    return conn


@pytest.fixture
def login(monkeypatch):
    def _login(user):
        monkeypatch.setattr(main.auth_client, "get_user", lambda token: user if token == "good" else None)
        return user
    return _login


@pytest.fixture
def teacher(login):
    return login(make_user())


@pytest.fixture
def admin(login):
    return login(make_user(role="admin", email="admin@school.kr", user_id="a1", name="관리자"))


@pytest.fixture
def gemini(monkeypatch):
    fake = FakeGemini()
    monkeypatch.setattr(main, "gemini_client", fake)
    return fake


# ==================== 공통 ====================

def test_health_connected(db):
    response = client.get("/health")
    assert response.json() == {"status": "healthy", "database": "connected"}
    assert db.closed


def test_health_unhealthy(monkeypatch):
    def broken():
        raise HTTPException(status_code=503, detail="데이터베이스 서버 점검 중|연결 불가")
    monkeypatch.setattr(main, "get_db_connection", broken)
    assert client.get("/health").json()["status"] == "unhealthy"


@pytest.mark.parametrize("code,title", [
    (2003, "데이터베이스 서버 점검 중"),
    (1045, "데이터베이스 인증 오류"),
    (2002, "데이터베이스 연결 실패"),
    (1234, "데이터베이스 오류"),
])
def test_db_errors_become_503(monkeypatch, code, title):
    def fail(**kwargs):
        raise pymysql.err.OperationalError(code, "fail")
    monkeypatch.setattr(main.pymysql, "connect", fail)
    with pytest.raises(HTTPException) as excinfo:
        main.get_db_connection()
    assert excinfo.value.status_code == 503
    assert excinfo.value.detail.startswith(title + "|")


def test_endpoint_filter_hides_polling_logs():
    def record(message):
        return logging.LogRecord("uvicorn.access", logging.INFO, "", 0, message, None, None)
    log_filter = main.EndpointFilter()
    assert not log_filter.filter(record('127.0.0.1 - "GET /api/points/me HTTP/1.1" 200 OK'))
    assert log_filter.filter(record('127.0.0.1 - "POST /api/mileage-entries HTTP/1.1" 200 OK'))
    assert log_filter.filter(record('127.0.0.1 - "GET /api/points/me HTTP/1.1" 500 Internal Server Error'))


# ==================== 인증 ====================

def test_missing_token_is_401(db):
    response = client.get("/api/mileage-progress")
    assert response.status_code == 401
    assert response.json()["detail"] == "인증이 필요합니다."


def test_invalid_token_is_401(db, teacher):
    response = client.get("/api/mileage-progress", headers={"Authorization": "Bearer expired"})
    assert response.status_code == 401


def test_auth_server_failure_is_503(db, monkeypatch):
    def fail(token):
        raise AuthServiceError("down", 500)
    monkeypatch.setattr(main.auth_client, "get_user", fail)
    assert client.get("/api/mileage-progress", headers=HEADERS).status_code == 503


def test_role_checks(db, login):
    login(make_user(role=None))
    assert client.get("/api/mileage-progress", headers=HEADERS).status_code == 403
    login(make_user(role="teacher"))
    assert client.get("/api/points/school-settings", headers=HEADERS).status_code == 403
    login(make_user(role=["teacher", "admin"]))
    assert client.get("/api/points/school-settings", headers=HEADERS).status_code == 200


def test_complete_profile(db, login, monkeypatch):
    login(make_user(role=None))
    saved = {}
    monkeypatch.setattr(main.auth_client, "update_user_by_id",
                        lambda user_id, password=None, user_metadata=None: saved.update(id=user_id, meta=user_metadata))

    response = client.post("/api/auth/complete-profile", headers=HEADERS,
                           json={"role": "teacher", "name": " 김교사 ", "schoolName": " 가람초 "})
    assert response.status_code == 200
    assert saved == {"id": "u1", "meta": {"role": "teacher", "name": "김교사", "schoolName": "가람초", "gradeClass": ""}}

    bad = client.post("/api/auth/complete-profile", headers=HEADERS,
                      json={"role": "student", "name": "a", "schoolName": "b"})
    assert bad.status_code == 400


def test_complete_profile_rejects_existing_role(db, teacher):
    response = client.post("/api/auth/complete-profile", headers=HEADERS,
                           json={"role": "admin", "name": "a", "schoolName": "b"})
    assert response.status_code == 400


# ==================== 마일리지 ====================

def test_mileage_progress(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "fetch_latest_plan", lambda cursor, email: {
        "annual_goal": "60시간", "expense_annual_goal": "4", "education_annual_goal_unit": "시간"
    })
    monkeypatch.setattr(main, "fetch_mileage_entries", lambda cursor, email: [
        {"category": "training", "content": "연수 30시간"},
        {"category": "class_open", "content": "공개수업 2회"},
    ])
    data = client.get("/api/mileage-progress", headers=HEADERS).json()
    by_key = {c["key"]: c for c in data["categories"]}
    assert by_key["training"]["progress"] == 50
    assert by_key["class_open"]["progress"] == 50
    assert data["overall_progress"] == 17
    assert data["difficulty"]["training"] == {"level": 2, "stars": "★★☆☆☆"}
    assert data["difficulty"]["class_open"]["level"] == 3


def test_mileage_entries_include_format_flag(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "fetch_mileage_entries", lambda cursor, email: [
        {"id": 1, "category": "training", "content": "연수 참석"},
        {"id": 2, "category": "training", "content": "연수 2시간"},
    ])
    entries = client.get("/api/mileage-entries", headers=HEADERS).json()
    assert [e["valid_format"] for e in entries] == [False, True]


def test_create_mileage_entry(db, teacher):
    bad = client.post("/api/mileage-entries", headers=HEADERS, json={"content": "x", "category": "sports"})
    assert bad.status_code == 400
    empty = client.post("/api/mileage-entries", headers=HEADERS, json={"content": "  ", "category": "health"})
    assert empty.status_code == 400

    response = client.post("/api/mileage-entries", headers=HEADERS,
                           json={"content": " 걷기 1시간 ", "category": "health"})
    assert response.status_code == 200
    assert response.json()["content"] == "걷기 1시간"
    insert = db.find("INSERT INTO mileage_entries")[0]
    assert insert[1] == ("t@school.kr", "걷기 1시간", "health")
    assert db.committed


def test_batch_skips_invalid_entries(db, teacher):
    response = client.post("/api/mileage-entries/batch", headers=HEADERS, json={"entries": [
        {"category": "training", "content": "연수 3시간"},
        {"category": "nope", "content": "x"},
        {"category": "other", "content": "봉사 1건"},
    ]})
    assert response.json()["saved"] == 2
    assert response.json()["skipped"] == 1
    assert len(db.find("INSERT INTO mileage_entries")) == 2

    assert client.post("/api/mileage-entries/batch", headers=HEADERS, json={"entries": []}).status_code == 400


def test_update_other_users_entry_is_404(db, teacher):
    response = client.put("/api/mileage-entries/9", headers=HEADERS, json={"content": "x 1회", "category": "other"})
    assert response.status_code == 404
    assert client.delete("/api/mileage-entries/9", headers=HEADERS).status_code == 404


def test_move_entry_category(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "fetch_owned_row", lambda cursor, table, row_id, email: {"id": row_id})
    response = client.put("/api/mileage-entries/3/category", headers=HEADERS, json={"category": "community"})
    assert response.json() == {"id": 3, "category": "community"}
    assert db.find("UPDATE mileage_entries SET category")[0][1] == ("community", 3)


def test_relative_difficulty(db, teacher, monkeypatch):
    peers = {f"{c}@school.kr": {"community": i, "book_edutech": 0, "health": 0, "other": 0}
             for i, c in enumerate("abcde")}
    peers["t@school.kr"] = {"community": 99, "book_edutech": 0, "health": 0, "other": 0}
    monkeypatch.setattr(main, "collect_peer_goals", lambda school: peers)
    data = client.post("/api/mileage-relative-difficulty", headers=HEADERS).json()
    assert data["community"] == 3
    assert data["stars"]["community"] == "★★★★★"


def test_relative_difficulty_falls_back_to_normal(db, teacher, monkeypatch):
    def fail(school):
        raise RuntimeError("auth down")
    monkeypatch.setattr(main, "collect_peer_goals", fail)
    data = client.post("/api/mileage-relative-difficulty", headers=HEADERS).json()
    assert {data[k] for k in ("community", "book_edutech", "health", "other")} == {2}


# ==================== 역량 진단 ====================

def full_answers(value=60):
    return {q["id"]: value for q in domains_to_questions(DEFAULT_DIAGNOSIS_DOMAINS)}


def test_diagnosis_questions(db, teacher):
    data = client.get("/api/diagnosis-questions", headers=HEADERS).json()
    assert len(data["questions"]) == 30
    assert data["title"] == ""


def test_submit_diagnosis_requires_all_answers(db, teacher, gemini):
    answers = full_answers()
    del answers["30"]
    response = client.post("/api/diagnosis-results", headers=HEADERS, json={"answers": answers})
    assert response.status_code == 400
    assert "30" in response.json()["detail"]

    bad_type = client.post("/api/diagnosis-results", headers=HEADERS,
                           json={"answers": full_answers(), "diagnosis_type": "mid"})
    assert bad_type.status_code == 400


def test_submit_diagnosis_saves_and_runs_analysis(db, teacher, gemini):
    response = client.post("/api/diagnosis-results", headers=HEADERS, json={"answers": full_answers()})
    assert response.status_code == 200
    data = response.json()
    assert data["total_score"] == 60 * 30
    assert data["domain1"] == 300
    assert len(data["strengths"]) == 3

    insert = db.find("INSERT INTO diagnosis_results")[0]
    assert insert[1][-1] == "pre"
    assert json.loads(insert[1][10])["domain1"] == {"score": 300, "count": 5}
    # 응답 후 백그라운드 작업으로 AI 분석 저장
    assert gemini.prompts
    assert db.find("UPDATE diagnosis_results SET ai_analysis")[0][1][0] == "AI 결과"


def test_submit_without_gemini_keys_skips_analysis(db, teacher, monkeypatch):
    fake = FakeGemini(keys=False)
    monkeypatch.setattr(main, "gemini_client", fake)
    response = client.post("/api/diagnosis-results", headers=HEADERS,
                           json={"answers": full_answers(), "diagnosis_type": "post"})
    assert response.status_code == 200
    assert not fake.prompts
    assert not db.find("UPDATE diagnosis_results")


def test_latest_diagnosis(db, teacher, monkeypatch):
    assert client.get("/api/diagnosis-results/latest?type=mid", headers=HEADERS).status_code == 400
    assert client.get("/api/diagnosis-results/latest", headers=HEADERS).json() == {"result": None, "summary": None}

    result = {"domain1": 450, "domain2": 100, "domain3": 300, "domain4": 50, "domain5": 400, "domain6": 200}
    monkeypatch.setattr(main, "fetch_latest_diagnosis", lambda cursor, email, diagnosis_type: result)
    data = client.get("/api/diagnosis-results/latest?type=post", headers=HEADERS).json()
    assert data["summary"]["strengths"][0] == "수업 설계·운영"


SCORED_RESULT = {"domain1": 450, "domain2": 100, "domain3": 300, "domain4": 50, "domain5": 400, "domain6": 200}


def school_domains_json():
    domains = [{"name": f"우리영역{i + 1}", "items": [f"문항{i + 1}-{j + 1}" for j in range(5)]} for i in range(6)]
    return json.dumps({"diagnosisDomains": domains}, ensure_ascii=False)


def test_latest_diagnosis_uses_school_domain_names(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "fetch_school_settings_json", lambda cursor, school: school_domains_json())
    monkeypatch.setattr(main, "fetch_latest_diagnosis", lambda cursor, email, diagnosis_type: SCORED_RESULT)
    domains = client.get("/api/diagnosis-questions", headers=HEADERS).json()["domains"]
    assert domains[0]["name"] == "우리영역1"

    summary = client.get("/api/diagnosis-results/latest", headers=HEADERS).json()["summary"]
    assert summary["strengths"] == ["우리영역1", "우리영역5", "우리영역3"]
    assert summary["weaknesses"] == ["우리영역4", "우리영역2", "우리영역6"]


# ==================== 계획서 ====================

def test_save_plan_warns_missing_goals(db, teacher):
    response = client.post("/api/development-plans", headers=HEADERS, json={
        "development_goal": "목표",
        "annual_goal": "60",
        "expense_annual_goal": "2",
        "community_annual_goal": "5",
        "book_annual_goal": "3",
        "education_annual_goal": "",
        "other_annual_goal": "1",
        "training_plans": [{"name": "연수", "period": "3월", "duration": "15", "remarks": ""}],
    })
    data = response.json()
    assert data["missing_goals"] == ["건강/체력"]
    assert data["warning"].startswith("건강/체력 항목 연간목표가 비어있습니다.")

    query, params = db.find("INSERT INTO development_plans")[0]
    columns = query.split("(")[1].split(")")[0].split(", ")
    stored = dict(zip(columns, params))
    assert json.loads(stored["training_plans"])[0]["name"] == "연수"
    assert stored["education_annual_goal_unit"] == "시간"


def test_plan_draft(db, teacher, monkeypatch):
    assert client.patch("/api/development-plans/draft", headers=HEADERS, json={}).status_code == 400

    monkeypatch.setattr(main, "fetch_latest_plan", lambda cursor, email: {"id": 7})
    response = client.patch("/api/development-plans/draft", headers=HEADERS,
                            json={"expected_outcome": "기대효과"})
    assert response.json() == {"id": 7, "updated": ["expected_outcome"]}
    assert db.find("UPDATE development_plans SET expected_outcome")[0][1] == ["기대효과", 7]


def test_latest_plan_fill_ratio(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "fetch_latest_plan", lambda cursor, email: {
        "development_goal": "목표", "expected_outcome": "효과", "training_plans": [],
    })
    data = client.get("/api/development-plans/latest", headers=HEADERS).json()
    assert data["fill_ratio"] == 1
    assert data["completed"] is True


# ==================== 성찰·보고서 ====================

def test_daily_reflection_strips_date(db, teacher):
    bad = client.post("/api/daily-reflections", headers=HEADERS,
                      json={"reflection_date": "2026/03/14", "content": "x"})
    assert bad.status_code == 400

    response = client.post("/api/daily-reflections", headers=HEADERS,
                           json={"reflection_date": "2026-03-14", "content": "26.03.14(토) 수업 나눔"})
    assert response.json()["content"] == "수업 나눔"


def test_user_preference_keys(db, teacher):
    assert client.get("/api/user-preferences/theme", headers=HEADERS).status_code == 400
    data = client.get("/api/user-preferences/reflection_evidence_text", headers=HEADERS).json()
    assert data == {"pref_key": "reflection_evidence_text", "pref_value": ""}


def test_reflection_draft_upsert(db, teacher):
    response = client.put("/api/reflection-drafts", headers=HEADERS,
                          json={"goal_achievement_text": "달성", "reflection_text": None})
    assert response.json() == {"ok": True}
    assert db.find("INSERT INTO reflection_drafts")[0][1] == ("t@school.kr", "달성", "")


def test_reflection_context(db, teacher):
    data = client.get("/api/reflection/context", headers=HEADERS).json()
    assert data == {"plan_summary": "계획서가 없습니다.", "mileage_text": "마일리지에 기록된 내용이 없습니다."}


# ==================== 포인트 ====================

def test_login_points_once_per_day(db, teacher, monkeypatch):
    today = datetime.now(timezone.utc).date().isoformat()
    monkeypatch.setattr(main, "fetch_user_points", lambda cursor, email: {
        "base_points": 100, "login_points": 4, "last_login_date": today
    })
    assert client.post("/api/points/login", headers=HEADERS).json()["added"] == 0

    monkeypatch.setattr(main, "fetch_user_points", lambda cursor, email: None)
    data = client.post("/api/points/login", headers=HEADERS).json()
    assert data == {"added": 2, "login_points": 2, "message": "열정 포인트 +2점 획득"}


def test_my_points(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "fetch_user_points", lambda cursor, email: {"base_points": 100, "login_points": 6})
    monkeypatch.setattr(main, "fetch_mileage_entries", lambda cursor, email: [
        {"category": "training", "content": "연수 3시간"},
    ])
    data = client.get("/api/points/me", headers=HEADERS).json()
    assert data["total"] == 109
    assert data["mileage"] == 3


def test_point_settings_keep_diagnosis_domains(db, admin, monkeypatch):
    stored = json.dumps({"points": {}, "categories": [], "diagnosisTitle": "우리 학교 진단"})
    monkeypatch.setattr(main, "fetch_school_settings_json", lambda cursor, school: stored)
    saved = {}
    monkeypatch.setattr(main, "save_school_settings_json",
                        lambda cursor, school, settings_json: saved.update(school=school, json=json.loads(settings_json)))

    response = client.post("/api/points/school-settings", headers=HEADERS, json={
        "settings": {"training": 2, "login_points": 3},
        "categories": [{"key": "health", "label": "걷기", "unit": "km"}],
    })
    assert response.status_code == 200
    assert saved["school"] == "가람초"
    assert saved["json"]["diagnosisTitle"] == "우리 학교 진단"
    assert saved["json"]["points"]["training"] == 2
    assert saved["json"]["points"]["class_open"] == 1
    assert saved["json"]["categories"][4] == {"key": "health", "label": "걷기", "unit": "km"}


# ==================== AI ====================

def test_ai_recommend_without_keys(db, teacher, monkeypatch):
    monkeypatch.setattr(main, "gemini_client", FakeGemini(keys=False))
    response = client.post("/api/ai-recommend", headers=HEADERS, json={"type": "goal", "weakDomains": ["a"]})
    assert response.status_code == 500


def test_ai_recommend_effect_needs_plan(db, teacher, gemini):
    response = client.post("/api/ai-recommend", headers=HEADERS, json={"type": "effect"})
    assert response.json()["recommendation"].startswith("수행 계획이 충분하지 않아")
    assert not gemini.prompts


def test_ai_recommend_validation_and_result(db, teacher, gemini):
    assert client.post("/api/ai-recommend", headers=HEADERS, json={"type": "x"}).status_code == 400
    data = client.post("/api/ai-recommend", headers=HEADERS, json={"type": "goal", "weakDomains": ["a"]}).json()
    assert data == {"recommendation": "AI 결과"}


def test_ai_fill_rows(db, teacher, gemini):
    body = {"type": "plan_fill_rows", "cardType": "other", "count": 1}
    gemini.reply = '```json\n[{"text": "학급 문고"}]\n```'
    assert client.post("/api/ai-recommend", headers=HEADERS, json=body).json() == {"rows": [{"text": "학급 문고"}]}
    gemini.reply = "형식 없음"
    assert client.post("/api/ai-recommend", headers=HEADERS, json=body).status_code == 500


def test_ai_fill_rows_clamps_infinite_count(db, teacher, gemini):
    gemini.reply = '[{"text": "학급 문고"}]'
    body = {"type": "plan_fill_rows", "cardType": "other", "count": "Infinity"}
    response = client.post("/api/ai-recommend", headers=HEADERS, json=body)
    assert response.status_code == 200
    assert "정확히 20개" in gemini.prompts[-1]


def test_ai_classify_and_summarize(db, teacher, gemini):
    assert client.post("/api/ai-classify-mileage", headers=HEADERS, json={"text": " "}).status_code == 400
    gemini.reply = '[{"category": "health", "content": "26.03.02(월) 걷기 1시간"}]'
    data = client.post("/api/ai-classify-mileage", headers=HEADERS, json={"text": "걷기 1시간"}).json()
    assert data == {"entries": [{"category": "health", "content": "26.03.02(월) 걷기 1시간"}]}

    assert client.post("/api/ai-summarize-reflections", headers=HEADERS, json={}).status_code == 400
    gemini.reply = "요약"
    assert client.post("/api/ai-summarize-reflections", headers=HEADERS,
                       json={"reflections": "기록"}).json() == {"summary": "요약"}


# ==================== 관리자 ====================

def school_users():
    return [
        make_user(role="admin", email="admin@school.kr", user_id="a1"),
        make_user(email="t@school.kr", user_id="u1"),
        make_user(email="Other@school.kr", user_id="u2", school="나래중"),
        make_user(role=["teacher", "admin"], email="both@school.kr", user_id="u3"),
    ]


def test_verify_code(monkeypatch):
    monkeypatch.setattr(main, "ADMIN_CODE", "pbk")
    wrong = client.post("/api/admin/verify-code", json={"code": "nope"})
    assert wrong.status_code == 401
    assert wrong.json() == {"ok": False, "error": "관리자 인증코드가 올바르지 않습니다."}
    assert client.post("/api/admin/verify-code", json={"code": " pbk "}).json() == {"ok": True}


def test_count_by_school(monkeypatch):
    monkeypatch.setattr(main.auth_client, "list_users", lambda page=1, per_page=1000: school_users())
    assert client.post("/api/admin/count-by-school", json={"schoolName": " 가람초 "}).json() == {"adminCount": 2}
    assert client.post("/api/admin/count-by-school", json={}).status_code == 400


def test_admin_teachers(db, admin, monkeypatch):
    monkeypatch.setattr(main.auth_client, "list_users", lambda page=1, per_page=1000: school_users())
    data = client.post("/api/admin/teachers", headers=HEADERS, json={}).json()
    assert [t["email"] for t in data["teachers"]] == ["t@school.kr", "both@school.kr"]
    other = client.post("/api/admin/teachers", headers=HEADERS, json={"schoolName": "나래중"})
    assert other.status_code == 403


def test_teacher_summaries_and_export(db, admin, monkeypatch):
    monkeypatch.setattr(main, "list_school_teachers", lambda school: [make_user()])
    monkeypatch.setattr(main, "fetch_latest_diagnosis",
                        lambda cursor, email, diagnosis_type: {"id": 1} if diagnosis_type == "pre" else None)
    data = client.post("/api/admin/teacher-summaries", headers=HEADERS, json={}).json()
    summary = data["teachers"][0]
    assert summary["has_pre_diagnosis"] is True
    assert summary["has_post_diagnosis"] is False
    assert summary["plan_completed"] is False
    assert summary["mileage_summary"]["overall_progress"] == 0
    assert len(summary["mileage_summary"]["categories"]) == 6

    response = client.get("/api/admin/teacher-summaries/export", headers=HEADERS)
    assert response.status_code == 200
    assert "attachment; filename=teacher_summaries_" in response.headers["content-disposition"]
    df = pd.read_excel(io.BytesIO(response.content), engine="openpyxl")
    assert df.loc[0, "이름"] == "김교사"
    assert df.loc[0, "사전검사"] == "O"


def test_verify_teacher_email(db, admin, monkeypatch):
    monkeypatch.setattr(main.auth_client, "list_users", lambda page=1, per_page=1000: school_users())
    ok = client.post("/api/admin/verify-teacher-email", headers=HEADERS, json={"email": "T@SCHOOL.KR"})
    assert ok.json()["email"] == "t@school.kr"
    assert client.post("/api/admin/verify-teacher-email", headers=HEADERS,
                       json={"email": "other@school.kr"}).status_code == 403
    assert client.post("/api/admin/verify-teacher-email", headers=HEADERS,
                       json={"email": "ghost@school.kr"}).status_code == 404


def test_result_report_by_email(db, admin, monkeypatch):
    monkeypatch.setattr(main.auth_client, "list_users", lambda page=1, per_page=1000: school_users())
    monkeypatch.setattr(main, "fetch_preference",
                        lambda cursor, email, key: "근거" if key == "reflection_evidence_text" else None)
    data = client.post("/api/admin/result-report-by-email", headers=HEADERS, json={"email": "t@school.kr"}).json()
    assert data["evidence_text"] == "근거"
    assert data["next_year_goal_text"] == ""
    assert data["pre_result"] is None


def test_plan_by_email_uses_school_domain_names(db, admin, monkeypatch):
    monkeypatch.setattr(main.auth_client, "list_users", lambda page=1, per_page=1000: school_users())
    monkeypatch.setattr(main, "fetch_school_settings_json", lambda cursor, school: school_domains_json())
    monkeypatch.setattr(main, "fetch_latest_diagnosis",
                        lambda cursor, email, diagnosis_type: SCORED_RESULT if diagnosis_type == "pre" else None)
    data = client.post("/api/admin/plan-by-email", headers=HEADERS, json={"email": "t@school.kr"}).json()
    assert data["name"] == "김교사"
    assert data["diagnosis_summary"]["strengths"][0] == "우리영역1"
    assert data["diagnosis_summary"]["weaknesses"][0] == "우리영역4"


def test_reset_password(db, admin, monkeypatch):
    monkeypatch.setattr(main, "RESET_PASSWORD", "123456")
    targets = {"u1": make_user(), "u2": make_user(school="나래중", user_id="u2")}
    updated = []
    monkeypatch.setattr(main.auth_client, "get_user_by_id", lambda user_id: targets.get(user_id))
    monkeypatch.setattr(main.auth_client, "update_user_by_id",
                        lambda user_id, password=None, user_metadata=None: updated.append((user_id, password)))

    ok = client.post("/api/admin/reset-password", headers=HEADERS, json={"userId": "u1"})
    assert ok.json()["message"] == "비밀번호가 123456으로 초기화되었습니다."
    assert updated == [("u1", "123456")]
    assert client.post("/api/admin/reset-password", headers=HEADERS, json={"userId": "u2"}).status_code == 403
    assert client.post("/api/admin/reset-password", headers=HEADERS, json={"userId": "u9"}).status_code == 404


def test_admin_diagnosis_settings(db, admin, monkeypatch):
    saved = {}
    monkeypatch.setattr(main, "save_school_settings_json",
                        lambda cursor, school, settings_json: saved.update(json=json.loads(settings_json)))
    bad = client.post("/api/admin/diagnosis-settings", headers=HEADERS, json={"domains": [{"name": "a"}]})
    assert bad.status_code == 400

    domains = [{"name": f"영역{i}", "items": ["문항"] * 5} for i in range(6)]
    response = client.post("/api/admin/diagnosis-settings", headers=HEADERS,
                           json={"domains": domains, "title": " 사전 진단 "})
    assert response.json()["title"] == "사전 진단"
    assert saved["json"]["diagnosisDomains"][0]["name"] == "영역0"


def test_check_env_only_in_development(monkeypatch):
    monkeypatch.setattr(main, "APP_ENV", "production")
    assert client.get("/api/check-env").status_code == 404


# ==================== 실행 중인 서버 확인 ====================

def check_endpoint(method, path):
    url = f"{BASE_URL}{path}"
    try:
        if method == "GET":
            response = requests.get(url, timeout=5)
        else:
            response = requests.post(url, json={}, timeout=5)
        print(f"✅ {method} {path}: {response.status_code}")
        return True
    except requests.exceptions.ConnectionError:
        print(f"❌ {method} {path}: 서버 연결 실패 - 서버가 실행 중인지 확인하세요")
        return False
    except requests.exceptions.Timeout:
        print(f"⏱️ {method} {path}: 타임아웃")
        return False


if __name__ == "__main__":
    print("=" * 60)
    print("API 엔드포인트 확인 (인증 없이 호출 → 401/400 이 정상)")
    print("=" * 60)
    for method, path in [
        ("GET", "/health"),
        ("GET", "/api/mileage-progress"),
        ("POST", "/api/admin/count-by-school"),
    ]:
        check_endpoint(method, path)
    print("=" * 60)
    print("서버가 실행 중이 아니라면:")
    print("  cd backend")
    print("  python main.py")
    print("=" * 60)
