"""
마일리지 진행률 모듈
마일리지 기록 내용(content)에서 목표 단위(시간/분/회/건/권/km)에 맞는 수치를 파싱해
영역별로 합산하고 연간 목표 대비 진행률을 계산
"""

import math
import re
from typing import List, Dict, Optional


MILEAGE_CATEGORIES = [
    {"key": "training", "label": "연수(직무·자율)"},
    {"key": "class_open", "label": "수업 공개"},
    {"key": "community", "label": "교원학습 공동체"},
    {"key": "book_edutech", "label": "전문 서적/에듀테크"},
    {"key": "health", "label": "건강/체력"},
    {"key": "other", "label": "기타 계획"},
]

CATEGORY_KEYS = [c["key"] for c in MILEAGE_CATEGORIES]
CATEGORY_LABELS = {c["key"]: c["label"] for c in MILEAGE_CATEGORIES}

# 영역 → 계획서 연간목표 컬럼
PLAN_GOAL_KEYS = {
    "training": "annual_goal",
    "class_open": "expense_annual_goal",
    "community": "community_annual_goal",
    "book_edutech": "book_annual_goal",
    "health": "education_annual_goal",
    "other": "other_annual_goal",
}

UNIT_OPTIONS = ["시간", "분", "회", "건", "권", "km"]

HEALTH_UNIT_TIME = "시간"
HEALTH_UNIT_DISTANCE = "거리"

_NUMBER = r"([0-9]+(?:\.[0-9]+)?)"


def collect_unit_values(text: str, unit: str) -> float:
    """
    '숫자 + 단위' 패턴을 모두 찾아 합산 (대소문자 무시)

    Args:
        text: 마일리지 내용
        unit: 단위 토큰 (예: '시간', 'km')

    Returns:
        합계 (패턴이 없으면 0)
    """
    total = 0.0
    for match in re.finditer(_NUMBER + r"\s*" + re.escape(unit), text, re.IGNORECASE):
        total += float(match.group(1))
    return total


def _first_nonzero(*values):
    for value in values:
        if value:
            return value
    return 0


def parse_time_value(text: str) -> float:
    """시간 + 분(60분=1시간, 남는 분은 절삭)"""
    hours = collect_unit_values(text, "시간")
    minutes = collect_unit_values(text, "분")
    return hours + math.floor(minutes / 60)


def has_time_pattern(text: str) -> bool:
    return collect_unit_values(text, "시간") > 0 or collect_unit_values(text, "분") > 0


def _distance_value(text: str) -> float:
    return _first_nonzero(collect_unit_values(text, "km"), collect_unit_values(text, "킬로"))


def _has_distance_pattern(text: str) -> bool:
    return bool(re.search(_NUMBER + r"\s*(km|킬로)", text, re.IGNORECASE))


def _value_from_pattern_only(text: str, category: str, health_goal_unit: str) -> float:
    """폴백 없이 패턴으로만 추출한 값 (기재양식 검증용)"""
    if category == "training":
        return parse_time_value(text)
    if category in ("class_open", "community"):
        return collect_unit_values(text, "회")
    if category == "book_edutech":
        return _first_nonzero(collect_unit_values(text, "권"), collect_unit_values(text, "회"))
    if category == "health":
        if health_goal_unit == HEALTH_UNIT_DISTANCE:
            return _distance_value(text)
        return parse_time_value(text)
    if category == "other":
        return _first_nonzero(collect_unit_values(text, "건"), collect_unit_values(text, "회"))
    return 0


def has_valid_mileage_format(content: Optional[str], category: str, health_goal_unit: str,
                             category_unit: Optional[str] = None) -> bool:
    """
    기재양식 검증. 빈 내용은 통과, 단위가 지정되면 해당 단위 기준으로 판단

    Args:
        content: 마일리지 내용
        category: 영역 키
        health_goal_unit: 건강/체력 목표 단위 ('시간' 또는 '거리')
        category_unit: 학교 설정 단위 (선택)

    Returns:
        양식에 맞으면 True
    """
    text = (content or "").strip()
    if not text:
        return True

    if category_unit == "km":
        return _has_distance_pattern(text)
    if category_unit == "시간":
        return has_time_pattern(text)
    if category_unit == "분":
        return collect_unit_values(text, "분") > 0
    if category_unit in ("회", "건", "권"):
        # 횟수형 단위는 숫자가 없어도 1건으로 인정
        return True

    if category == "training":
        return has_time_pattern(text)
    if category == "health":
        if health_goal_unit == HEALTH_UNIT_DISTANCE:
            return _has_distance_pattern(text)
        return has_time_pattern(text)
    if category in ("class_open", "community", "book_edutech", "other"):
        return True
    return _value_from_pattern_only(text, category, health_goal_unit) > 0


def parse_by_unit(text: str, unit: str) -> float:
    """학교 설정 단위 기준으로 수치 추출. 단위가 맞지 않으면 0"""
    if unit == "시간":
        return parse_time_value(text)
    if unit == "분":
        return collect_unit_values(text, "분")
    if unit == "회":
        return collect_unit_values(text, "회")
    if unit == "건":
        return _first_nonzero(collect_unit_values(text, "건"), collect_unit_values(text, "회"))
    if unit == "권":
        return _first_nonzero(collect_unit_values(text, "권"), collect_unit_values(text, "회"))
    if unit == "km":
        return _distance_value(text)
    return _first_nonzero(parse_time_value(text), collect_unit_values(text, "회"))


def parse_value_from_content(content: Optional[str], category: str, health_goal_unit: str,
                             category_unit: Optional[str] = None) -> float:
    """
    마일리지 한 건에서 목표 단위에 맞는 수치 추출

    단위가 지정되면 그 단위로만 파싱하고, 없으면 영역별 기본 규칙을 따른다.
    횟수형 영역은 숫자가 없을 때 1로 계산한다.
    """
    text = (content or "").strip()
    if not text:
        return 0

    if category_unit in UNIT_OPTIONS:
        return parse_by_unit(text, category_unit)

    if category == "training":
        return parse_time_value(text) or 1
    if category == "health":
        if health_goal_unit == HEALTH_UNIT_DISTANCE:
            return _distance_value(text)
        return parse_time_value(text)
    if category in ("class_open", "community"):
        return collect_unit_values(text, "회") or 1
    if category == "book_edutech":
        return _first_nonzero(collect_unit_values(text, "권"), collect_unit_values(text, "회"), 1)
    if category == "other":
        return _first_nonzero(collect_unit_values(text, "건"), collect_unit_values(text, "회"), 1)
    return 1


def category_unit_for(category: str, health_goal_unit: str, override: Optional[str] = None) -> str:
    """영역 기본 단위"""
    if override:
        return override
    if category == "training":
        return "시간"
    if category == "health":
        return "km" if health_goal_unit == HEALTH_UNIT_DISTANCE else "시간"
    if category in ("class_open", "community", "book_edutech"):
        return "회"
    return "건"


def parse_goal_number(raw) -> float:
    """연간목표 문자열('30시간', '5 회')에서 숫자만 추출. 실패하면 0"""
    if raw is None:
        return 0
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    cleaned = re.sub(r"[^0-9.]", "", str(raw))
    match = re.match(r"[0-9]*\.?[0-9]+", cleaned)
    if not match:
        return 0
    try:
        return float(match.group(0))
    except ValueError:
        return 0


def plan_goals_from_row(plan: Optional[Dict]) -> Dict[str, float]:
    """계획서 행 → 영역별 연간목표 수치"""
    plan = plan or {}
    return {key: parse_goal_number(plan.get(column)) for key, column in PLAN_GOAL_KEYS.items()}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def default_category_config(health_goal_unit: str) -> List[Dict]:
    return [
        {"key": c["key"], "label": c["label"], "unit": category_unit_for(c["key"], health_goal_unit)}
        for c in MILEAGE_CATEGORIES
    ]


def compute_mileage_progress(entries: List[Dict], plan_goals: Dict[str, float], health_goal_unit: str,
                             school_categories: Optional[List[Dict]] = None) -> Dict:
    """
    영역별 합산 및 진행률 계산

    Args:
        entries: 마일리지 기록 [{content, category}]
        plan_goals: 영역별 연간목표 수치
        health_goal_unit: 건강/체력 목표 단위
        school_categories: 학교 영역 설정 (6개일 때만 반영)

    Returns:
        {"categories": [{key, label, progress, sum, goal, unit}], "overall_progress": int}
    """
    if school_categories and len(school_categories) == 6:
        cats = school_categories
    else:
        cats = default_category_config(health_goal_unit)

    sums = {c["key"]: 0 for c in cats}
    units = {c["key"]: c.get("unit") for c in cats}

    for entry in entries or []:
        key = entry.get("category")
        if key in sums:
            sums[key] += parse_value_from_content(entry.get("content"), key, health_goal_unit, units[key])

    categories = []
    for c in cats:
        goal = (plan_goals or {}).get(c["key"]) or 0
        total = sums.get(c["key"], 0)
        progress = min(100, total / goal * 100) if goal > 0 else 0
        categories.append({
            "key": c["key"],
            "label": c["label"],
            "progress": progress,
            "sum": total,
            "goal": goal,
            "unit": c.get("unit"),
        })

    overall = 0
    if categories:
        overall = min(100, round_half_up(sum(c["progress"] for c in categories) / len(categories)))

    return {"categories": categories, "overall_progress": overall}
