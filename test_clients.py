#!/usr/bin/env python3
"""
외부 API 클라이언트(Gemini, Supabase Auth) 테스트 - requests 호출은 가짜 응답으로 대체
Usage: pytest test_clients.py
"""
import pytest
import requests

from growth import auth_client as auth_module
from growth import gemini_client as gemini_module
from growth.auth_client import (
    SupabaseAuthClient, AuthServiceError, extract_bearer_token,
    has_role, is_teacher, is_admin, school_of,
)
from growth.gemini_client import GeminiClient, GeminiAPIError, load_gemini_keys


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


def gemini_reply(text):
    return FakeResponse(200, {"candidates": [{"content": {"parts": [{"text": text}]}}]})


# ==================== Gemini ====================

def test_load_gemini_keys_prefers_numbered(monkeypatch):
    for i in range(1, 6):
        monkeypatch.delenv(f"GEMINI_API_KEY_{i}", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "single")
    assert load_gemini_keys() == ["single"]

    monkeypatch.setenv("GEMINI_API_KEY_1", "k1")
    monkeypatch.setenv("GEMINI_API_KEY_3", " k3 ")
    assert load_gemini_keys() == ["k1", "k3"]


def test_generate_rotates_start_key(monkeypatch):
    used = []

    def fake_post(url, params=None, json=None, timeout=None):
        used.append(params["key"])
        return gemini_reply(" 결과 ")

    monkeypatch.setattr(gemini_module.requests, "post", fake_post)
    client = GeminiClient(keys=["a", "b"])
    assert client.generate("prompt") == "결과"
    assert client.generate("prompt") == "결과"
    assert used == ["a", "b"]


def test_generate_retries_on_quota(monkeypatch):
    used = []

    def fake_post(url, params=None, json=None, timeout=None):
        used.append(params["key"])
        if params["key"] == "a":
            return FakeResponse(429, text="RESOURCE_EXHAUSTED")
        return gemini_reply("ok")

    monkeypatch.setattr(gemini_module.requests, "post", fake_post)
    assert GeminiClient(keys=["a", "b"]).generate("prompt") == "ok"
    assert used == ["a", "b"]


def test_generate_raises_other_errors(monkeypatch):
    monkeypatch.setattr(gemini_module.requests, "post",
                        lambda url, params=None, json=None, timeout=None: FakeResponse(400, text="bad request"))
    with pytest.raises(GeminiAPIError) as excinfo:
        GeminiClient(keys=["a", "b"]).generate("prompt")
    assert excinfo.value.status_code == 400
    assert not excinfo.value.is_quota_error()


def test_generate_without_keys():
    client = GeminiClient(keys=[])
    assert not client.has_keys()
    with pytest.raises(GeminiAPIError):
        client.generate("prompt")


def test_empty_candidates_return_empty_text(monkeypatch):
    monkeypatch.setattr(gemini_module.requests, "post",
                        lambda url, params=None, json=None, timeout=None: FakeResponse(200, {"candidates": []}))
    assert GeminiClient(keys=["a"]).generate("prompt") == ""


# ==================== Supabase Auth ====================

def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("bearer  abc ") == "abc"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token("Bearer") is None
    assert extract_bearer_token(None) is None


def test_role_helpers():
    assert has_role({"role": ["teacher", "admin"]}, "admin")
    assert is_teacher({"role": "admin"})
    assert not is_teacher({"role": "student"})
    assert not is_admin({})
    assert school_of({"user_metadata": {"schoolName": " 가람초 "}}) == "가람초"
    assert school_of(None) == ""


def test_get_user(monkeypatch):
    calls = []

    def fake_get(url, headers=None, params=None, timeout=None):
        calls.append((url, headers))
        token = headers["Authorization"]
        if token == "Bearer good":
            return FakeResponse(200, {"id": "u1", "email": "t@school.kr"})
        if token == "Bearer broken":
            return FakeResponse(500, {"msg": "server down"})
        return FakeResponse(401, {"msg": "invalid"})

    monkeypatch.setattr(auth_module.requests, "get", fake_get)
    client = SupabaseAuthClient("https://proj.supabase.co/", "anon", "service")
    assert client.get_user("good")["email"] == "t@school.kr"
    assert calls[0][0] == "https://proj.supabase.co/auth/v1/user"
    assert calls[0][1]["apikey"] == "anon"
    assert client.get_user("expired") is None
    with pytest.raises(AuthServiceError) as excinfo:
        client.get_user("broken")
    assert str(excinfo.value) == "server down"


def test_unconfigured_client_raises():
    client = SupabaseAuthClient("", "", "")
    assert not client.is_configured()
    assert not client.check_health()
    with pytest.raises(AuthServiceError):
        client.get_user("token")
    with pytest.raises(AuthServiceError):
        SupabaseAuthClient("https://proj.supabase.co", "anon", "").list_users()


def test_list_and_update_users(monkeypatch):
    sent = {}

    def fake_get(url, headers=None, params=None, timeout=None):
        sent["params"] = params
        sent["auth"] = headers["Authorization"]
        return FakeResponse(200, {"users": [{"id": "u1"}]})

    def fake_put(url, headers=None, json=None, timeout=None):
        sent["url"] = url
        sent["body"] = json
        return FakeResponse(200, {"id": "u1"})

    monkeypatch.setattr(auth_module.requests, "get", fake_get)
    monkeypatch.setattr(auth_module.requests, "put", fake_put)
    client = SupabaseAuthClient("https://proj.supabase.co", "anon", "service")

    assert client.list_users() == [{"id": "u1"}]
    assert sent["params"] == {"page": 1, "per_page": 1000}
    assert sent["auth"] == "Bearer service"

    client.update_user_by_id("u1", password="123456")
    assert sent["url"].endswith("/auth/v1/admin/users/u1")
    assert sent["body"] == {"password": "123456"}


def test_check_health_handles_connection_error(monkeypatch):
    def fake_get(url, headers=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(auth_module.requests, "get", fake_get)
    assert not SupabaseAuthClient("https://proj.supabase.co", "anon", "service").check_health()
