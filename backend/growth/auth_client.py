"""
인증 서비스(Supabase Auth) REST 클라이언트 모듈
Bearer 토큰으로 사용자를 확인하고, service role 키로 회원 목록 조회·수정
"""

from typing import List, Dict, Optional

import requests


class AuthServiceError(Exception):
    """인증 서비스 호출 실패"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Authorization 헤더에서 토큰 추출 ('Bearer ' 접두사, 대소문자 무시)"""
    if not header:
        return None
    parts = header.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _roles(metadata: Optional[Dict]) -> List[str]:
    role = (metadata or {}).get("role")
    if not role:
        return []
    if isinstance(role, list):
        return [r for r in role if isinstance(r, str)]
    return [role] if isinstance(role, str) else []


def has_role(metadata: Optional[Dict], role: str) -> bool:
    """role 이 문자열 또는 배열인 경우 모두 확인"""
    return role in _roles(metadata)


def is_teacher(metadata: Optional[Dict]) -> bool:
    """관리자는 교원 권한도 가진다"""
    roles = _roles(metadata)
    return "teacher" in roles or "admin" in roles


def is_admin(metadata: Optional[Dict]) -> bool:
    return has_role(metadata, "admin")


def metadata_of(user: Optional[Dict]) -> Dict:
    return (user or {}).get("user_metadata") or {}


def school_of(user: Optional[Dict]) -> str:
    school = metadata_of(user).get("schoolName")
    return school.strip() if isinstance(school, str) else ""


def _error_message(response) -> str:
    try:
        data = response.json()
        return data.get("msg") or data.get("error_description") or data.get("message") or f"HTTP {response.status_code}"
    except ValueError:
        return f"HTTP {response.status_code}"


class SupabaseAuthClient:
    """Supabase Auth REST API 클라이언트"""

    def __init__(self, url: str, anon_key: str, service_role_key: str, timeout: int = 10):
        """
        Args:
            url: 프로젝트 URL (https://xxx.supabase.co)
            anon_key: 공개 키 (토큰 확인용)
            service_role_key: 관리자 키 (회원 목록·수정용)
            timeout: 요청 제한 시간(초)
        """
        self.url = (url or "").rstrip("/")
        self.anon_key = anon_key or ""
        self.service_role_key = service_role_key or ""
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.url and (self.anon_key or self.service_role_key))

    def _admin_headers(self) -> Dict[str, str]:
        if not self.url or not self.service_role_key:
            raise AuthServiceError("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY 설정이 필요합니다.")
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    def get_user(self, access_token: str) -> Optional[Dict]:
        """
        토큰 소유자 조회

        Returns:
            사용자 dict, 토큰이 유효하지 않으면 None
        """
        if not self.is_configured():
            raise AuthServiceError("SUPABASE_URL / SUPABASE_ANON_KEY 설정이 필요합니다.")
        response = requests.get(
            f"{self.url}/auth/v1/user",
            headers={
                "apikey": self.anon_key or self.service_role_key,
                "Authorization": f"Bearer {access_token}",
            },
            timeout=self.timeout,
        )
        if response.status_code in (401, 403, 404):
            return None
        if response.status_code != 200:
            raise AuthServiceError(_error_message(response), response.status_code)
        return response.json()

    def list_users(self, page: int = 1, per_page: int = 1000) -> List[Dict]:
        response = requests.get(
            f"{self.url}/auth/v1/admin/users",
            headers=self._admin_headers(),
            params={"page": page, "per_page": per_page},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise AuthServiceError(_error_message(response), response.status_code)
        data = response.json() or {}
        if isinstance(data, list):
            return data
        return data.get("users") or []

    def get_user_by_id(self, user_id: str) -> Optional[Dict]:
        response = requests.get(
            f"{self.url}/auth/v1/admin/users/{user_id}",
            headers=self._admin_headers(),
            timeout=self.timeout,
        )
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise AuthServiceError(_error_message(response), response.status_code)
        return response.json()

    def update_user_by_id(self, user_id: str, password: Optional[str] = None,
                          user_metadata: Optional[Dict] = None) -> Dict:
        payload = {}
        if password is not None:
            payload["password"] = password
        if user_metadata is not None:
            payload["user_metadata"] = user_metadata
        response = requests.put(
            f"{self.url}/auth/v1/admin/users/{user_id}",
            headers=self._admin_headers(),
            json=payload,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise AuthServiceError(_error_message(response), response.status_code)
        return response.json()

    def check_health(self) -> bool:
        """연결 확인 (/auth/v1/health)"""
        if not self.is_configured():
            return False
        try:
            response = requests.get(
                f"{self.url}/auth/v1/health",
                headers={"apikey": self.anon_key or self.service_role_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            print(f"[WARN] 인증 서비스 연결 실패: {e}")
            return False
        return response.status_code == 200
