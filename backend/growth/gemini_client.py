"""
Gemini API 클라이언트 모듈
여러 API 키를 라운드로빈으로 사용하고, 한도(quota/rate) 오류 시 다음 키로 재시도
"""

import os
from typing import List, Optional

import requests


GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_MODEL = "gemini-2.5-flash"
MAX_NUMBERED_KEYS = 5

QUOTA_MARKERS = ("quota", "rate", "limit", "resource_exhausted")


class GeminiAPIError(Exception):
    """Gemini API 호출 실패"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code

    def is_quota_error(self) -> bool:
        message = str(self).lower()
        return self.status_code == 429 or any(marker in message for marker in QUOTA_MARKERS)


def load_gemini_keys() -> List[str]:
    """GEMINI_API_KEY_1 ~ _5, 없으면 GEMINI_API_KEY"""
    keys = []
    for i in range(1, MAX_NUMBERED_KEYS + 1):
        key = (os.getenv(f"GEMINI_API_KEY_{i}") or "").strip()
        if key:
            keys.append(key)
    single = (os.getenv("GEMINI_API_KEY") or "").strip()
    if not keys and single:
        keys.append(single)
    return keys


class GeminiClient:
    """Gemini generateContent REST 호출"""

    def __init__(self, keys: Optional[List[str]] = None, model: str = DEFAULT_MODEL, timeout: int = 60):
        """
        Args:
            keys: API 키 목록 (None 이면 환경변수에서 로드)
            model: 모델명
            timeout: 요청 제한 시간(초)
        """
        self.keys = keys if keys is not None else load_gemini_keys()
        self.model = model
        self.timeout = timeout
        self._next_index = 0

    def has_keys(self) -> bool:
        return len(self.keys) > 0

    def _call(self, key: str, prompt: str, temperature: float, max_tokens: int) -> str:
        payload = {
            "contents": [{
                "parts": [{"text": prompt}]
            }],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.95
            }
        }
        response = requests.post(
            GEMINI_API_URL.format(model=self.model),
            params={"key": key},
            json=payload,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise GeminiAPIError(f"Gemini API 오류: {response.text}", response.status_code)

        result = response.json()
        try:
            parts = result["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "".join(part.get("text", "") for part in parts).strip()

    def generate(self, prompt: str, temperature: float = 0.7, max_tokens: int = 4096) -> str:
        """
        프롬프트로 텍스트 생성

        호출마다 시작 키를 하나씩 옮기고, 한도 오류가 나면 남은 키로 차례대로 재시도한다.

        Raises:
            GeminiAPIError: 키가 없거나 모든 키가 실패했을 때
        """
        if not self.keys:
            raise GeminiAPIError("GEMINI_API_KEY 또는 GEMINI_API_KEY_1~5 중 하나 이상 설정해주세요.")

        start = self._next_index % len(self.keys)
        self._next_index += 1

        for attempt in range(len(self.keys)):
            key = self.keys[(start + attempt) % len(self.keys)]
            try:
                return self._call(key, prompt, temperature, max_tokens)
            except GeminiAPIError as e:
                if e.is_quota_error() and attempt < len(self.keys) - 1:
                    print(f"[WARN] Gemini 키 한도 초과, 다음 키로 재시도 ({attempt + 1}/{len(self.keys)})")
                    continue
                raise
        raise GeminiAPIError("Gemini API 호출에 실패했습니다.")
