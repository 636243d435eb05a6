"""
학교 설정 모듈
school_point_settings.settings_json 에 저장되는 학교별 설정(영역별 포인트, 6개 영역 이름·단위,
사전/사후검사 문항) 파싱과 정규화

settings_json 형식:
    {"points": {...}, "categories": [...], "diagnosisDomains": [...], "diagnosisTitle": "..."}
레거시 형식은 포인트 숫자만 담은 평면 객체
"""

import json
from typing import List, Dict, Optional, Tuple

from growth.mileage_progress import CATEGORY_KEYS, UNIT_OPTIONS
from growth.diagnosis import DEFAULT_DIAGNOSIS_DOMAINS


DEFAULT_CATEGORY_POINTS = 1
DEFAULT_LOGIN_POINTS = 2


def default_points() -> Dict[str, float]:
    points = {key: DEFAULT_CATEGORY_POINTS for key in CATEGORY_KEYS}
    points["login_points"] = DEFAULT_LOGIN_POINTS
    return points


def default_categories() -> List[Dict]:
    return [
        {"key": "training", "label": "연수(직무·자율)", "unit": "시간"},
        {"key": "class_open", "label": "수업 공개", "unit": "회"},
        {"key": "community", "label": "교원학습 공동체", "unit": "회"},
        {"key": "book_edutech", "label": "전문 서적/에듀테크", "unit": "회"},
        {"key": "health", "label": "건강/체력", "unit": "시간"},
        {"key": "other", "label": "기타 계획", "unit": "건"},
    ]


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def load_settings_json(settings_json: Optional[str]) -> Dict:
    """저장된 JSON 문자열 → dict. 비어있거나 잘못된 형식이면 빈 dict"""
    if not settings_json:
        return {}
    try:
        parsed = json.loads(settings_json)
    except (TypeError, ValueError):
        print("[WARN] 학교 설정 JSON 파싱 실패, 기본값 사용")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def normalize_categories_input(raw) -> List[Dict]:
    """
    영역 설정 정규화. 6개 키 순서로 재구성하고, 이름은 공백 제거 후 비어있으면 기본값,
    단위는 허용 목록에 없으면 기본값
    """
    raw = raw if isinstance(raw, list) else []
    categories = []
    for default in default_categories():
        found = next((c for c in raw if isinstance(c, dict) and c.get("key") == default["key"]), None) or {}
        label = found.get("label")
        unit = found.get("unit")
        categories.append({
            "key": default["key"],
            "label": label.strip() if isinstance(label, str) and label.strip() else default["label"],
            "unit": unit if isinstance(unit, str) and unit in UNIT_OPTIONS else default["unit"],
        })
    return categories


def parse_stored(settings_json: Optional[str]) -> Tuple[Dict[str, float], List[Dict]]:
    """
    저장된 설정에서 (포인트, 영역 설정) 추출

    Args:
        settings_json: school_point_settings.settings_json 값

    Returns:
        (points, categories) - 없거나 잘못된 값은 기본값으로 채움
    """
    obj = load_settings_json(settings_json)
    points = default_points()

    if isinstance(obj.get("points"), dict) and isinstance(obj.get("categories"), list):
        points.update({k: v for k, v in obj["points"].items() if _is_number(v)})
        return points, normalize_categories_input(obj["categories"])

    if obj and not obj.get("points"):
        # 레거시: 포인트 숫자만 담긴 객체
        points.update({k: v for k, v in obj.items() if _is_number(v)})
    return points, default_categories()


def normalize_points_input(body: Dict) -> Dict[str, float]:
    """관리자 입력 포인트 정규화. 영역은 0 이상 숫자가 아니면 1, 로그인 포인트는 2"""
    body = body if isinstance(body, dict) else {}
    points = {}
    for key in CATEGORY_KEYS:
        value = body.get(key)
        points[key] = value if _is_number(value) and value >= 0 else DEFAULT_CATEGORY_POINTS
    login = body.get("login_points")
    points["login_points"] = login if _is_number(login) and login >= 0 else DEFAULT_LOGIN_POINTS
    return points


def _domain_name(raw: Dict, default: Dict) -> str:
    name = raw.get("name")
    return name.strip() if isinstance(name, str) and name.strip() else default["name"]


def parse_diagnosis_settings(settings_json: Optional[str]) -> Tuple[List[Dict], str]:
    """
    저장된 설정에서 (검사 영역 6개, 검사 제목) 추출

    영역이 정확히 6개가 아니면 기본 문항을 사용하고,
    영역 이름이나 문항이 비어있으면 해당 위치의 기본값으로 채운다.
    """
    obj = load_settings_json(settings_json)
    title = obj.get("diagnosisTitle")
    title = title.strip() if isinstance(title, str) else ""

    raw_domains = obj.get("diagnosisDomains")
    if not isinstance(raw_domains, list) or len(raw_domains) != 6:
        return DEFAULT_DIAGNOSIS_DOMAINS, title

    domains = []
    for index, raw in enumerate(raw_domains):
        default = DEFAULT_DIAGNOSIS_DOMAINS[index]
        if not isinstance(raw, dict):
            domains.append(default)
            continue
        raw_items = raw.get("items") if isinstance(raw.get("items"), list) else []
        items = []
        for i in range(5):
            item = raw_items[i] if i < len(raw_items) else None
            items.append(item.strip() if isinstance(item, str) and item.strip() else default["items"][i])
        domains.append({"name": _domain_name(raw, default), "items": items})
    return domains, title


def normalize_diagnosis_domains_input(raw_domains) -> List[Dict]:
    """
    관리자 입력 검사 영역 정규화

    Raises:
        ValueError: 영역이 6개가 아닐 때
    """
    if not isinstance(raw_domains, list) or len(raw_domains) != 6:
        raise ValueError("6개 역량 영역이 필요합니다.")

    domains = []
    for index, raw in enumerate(raw_domains):
        default = DEFAULT_DIAGNOSIS_DOMAINS[index]
        if not isinstance(raw, dict):
            domains.append(default)
            continue
        raw_items = raw.get("items") if isinstance(raw.get("items"), list) else []
        items = []
        for i in range(5):
            item = raw_items[i] if i < len(raw_items) else None
            items.append(item.strip() if isinstance(item, str) else default["items"][i])
        domains.append({"name": _domain_name(raw, default), "items": items})
    return domains


def merge_settings(settings_json: Optional[str], **updates) -> str:
    """기존 설정의 다른 키는 유지한 채 일부 키만 갱신한 JSON 문자열 반환"""
    merged = load_settings_json(settings_json)
    merged.update(updates)
    return json.dumps(merged, ensure_ascii=False)
