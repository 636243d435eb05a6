"""
자기역량 개발 계획서 모듈
계획서 필드 정의, 작성률 계산, 연간목표 누락 확인, 반성/보고서용 요약 텍스트 생성
"""

import re
from datetime import datetime, date
from typing import List, Dict, Optional

from growth.mileage_progress import CATEGORY_KEYS, CATEGORY_LABELS, PLAN_GOAL_KEYS, HEALTH_UNIT_DISTANCE, HEALTH_UNIT_TIME


TEXT_FIELDS = [
    "development_goal",
    "expected_outcome",
    "annual_goal",
    "expense_annual_goal",
    "community_annual_goal",
    "book_annual_goal",
    "education_annual_goal",
    "other_annual_goal",
]

# 목록 필드 → 행별 입력 항목
LIST_FIELDS = {
    "training_plans": ["name", "period", "duration", "remarks"],
    "education_plans": ["area", "period", "duration", "remarks"],
    "book_plans": ["title", "period", "method"],
    "expense_requests": ["activity", "period", "method", "remarks"],
    "community_plans": ["activity", "period", "method", "remarks"],
    "other_plans": ["text"],
}

PLAN_COMPLETED_RATIO = 0.7

DATE_PREFIX_PATTERN = re.compile(r"^\s*[0-9]{2}\.[0-9]{2}\.[0-9]{2}(\([^)]+\))?\s*")


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _rows(plan: Dict, field: str) -> List[Dict]:
    rows = plan.get(field)
    if not isinstance(rows, list):
        return []
    return [row for row in rows if isinstance(row, dict)]


def plan_fill_ratio(plan: Optional[Dict]) -> float:
    """목표·기대효과와 각 계획 행의 입력 칸 중 채워진 비율"""
    if not plan:
        return 0
    total = 0
    filled = 0
    for value in (plan.get("development_goal"), plan.get("expected_outcome")):
        total += 1
        if _text(value):
            filled += 1
    for field, keys in LIST_FIELDS.items():
        for row in _rows(plan, field):
            for key in keys:
                total += 1
                if _text(row.get(key)):
                    filled += 1
    return filled / total if total > 0 else 0


def is_plan_completed(plan: Optional[Dict]) -> bool:
    return plan_fill_ratio(plan) >= PLAN_COMPLETED_RATIO


def health_goal_unit_of(plan: Optional[Dict]) -> str:
    """계획서의 건강/체력 목표 단위 ('거리' 외에는 모두 '시간')"""
    if plan and plan.get("education_annual_goal_unit") == HEALTH_UNIT_DISTANCE:
        return HEALTH_UNIT_DISTANCE
    return HEALTH_UNIT_TIME


def missing_annual_goals(plan: Dict, labels: Optional[Dict[str, str]] = None) -> List[str]:
    """연간목표가 비어있는 영역의 이름 목록 (영역 순서 유지)"""
    labels = labels or CATEGORY_LABELS
    return [
        labels.get(key, CATEGORY_LABELS[key])
        for key in CATEGORY_KEYS
        if not _text(str(plan.get(PLAN_GOAL_KEYS[key]) or ""))
    ]


def missing_goals_warning(missing: List[str]) -> Optional[str]:
    if not missing:
        return None
    return f"{', '.join(missing)} 항목 연간목표가 비어있습니다. 계획서 출력이 불가합니다. 추후 기재 바랍니다."


def _clean_rows(raw, keys: List[str]) -> List[Dict]:
    if not isinstance(raw, list):
        return []
    rows = []
    for row in raw:
        if not isinstance(row, dict):
            continue
        rows.append({key: str(row.get(key) or "") for key in keys})
    return rows


def resolve_health_unit(body_unit, school_health_unit: Optional[str]) -> str:
    """입력 단위가 '시간'/'거리'면 그대로, 아니면 학교 설정 단위(km → 거리)로 결정"""
    if body_unit in (HEALTH_UNIT_TIME, HEALTH_UNIT_DISTANCE):
        return body_unit
    return HEALTH_UNIT_DISTANCE if school_health_unit == "km" else HEALTH_UNIT_TIME


def build_plan_record(body: Dict, email: str, school_name: str, school_health_unit: Optional[str] = None) -> Dict:
    """
    저장할 계획서 행 구성

    Args:
        body: 요청 본문
        email: 작성자 이메일
        school_name: 소속 학교
        school_health_unit: 학교 설정의 건강/체력 단위

    Returns:
        development_plans 행 dict (목록 필드는 list 그대로)
    """
    record = {"user_email": email, "school_name": school_name}
    for field in TEXT_FIELDS:
        value = body.get(field)
        record[field] = str(value) if value is not None else ""
    record["education_annual_goal_unit"] = resolve_health_unit(body.get("education_annual_goal_unit"), school_health_unit)
    for field, keys in LIST_FIELDS.items():
        record[field] = _clean_rows(body.get(field), keys)
    return record


def draft_updates(body: Dict) -> Dict:
    """임시 저장 시 갱신할 필드만 추출 (텍스트 필드와 건강/체력 단위)"""
    updates = {}
    for field in TEXT_FIELDS:
        if field in body and body[field] is not None:
            updates[field] = str(body[field])
    if body.get("education_annual_goal_unit") in (HEALTH_UNIT_TIME, HEALTH_UNIT_DISTANCE):
        updates["education_annual_goal_unit"] = body["education_annual_goal_unit"]
    return updates


def format_plan_summary(plan: Optional[Dict]) -> str:
    """반성/결과보고서 AI 요청에 넣을 계획서 요약 텍스트"""
    if not plan:
        return "계획서가 없습니다."

    lines = []
    goal = _text(plan.get("development_goal"))
    if goal:
        lines.append("[자기역량 개발 목표]\n" + goal)

    health_unit = plan.get("education_annual_goal_unit") or HEALTH_UNIT_TIME
    annual = [
        ("연수", plan.get("annual_goal"), "시간"),
        ("수업 공개", plan.get("expense_annual_goal"), "회"),
        ("교원학습 공동체", plan.get("community_annual_goal"), "회"),
        ("전문 서적/에듀테크", plan.get("book_annual_goal"), "회"),
        ("건강/체력", plan.get("education_annual_goal"), health_unit),
        ("기타", plan.get("other_annual_goal"), "건"),
    ]
    annual = [(label, _text(value), unit) for label, value, unit in annual]
    if any(value for _, value, _ in annual):
        lines.append("\n[연간 목표]")
        for label, value, unit in annual:
            if value:
                lines.append(f"- {label}: {value} {unit}")

    sections = [
        ("training_plans", "[연수(직무·자율) 계획]", "name",
         lambda r: f"- {r.get('name')} ({r.get('period') or ''}, {r.get('duration') or ''}) {r.get('remarks') or ''}"),
        ("book_plans", "[전문 서적/에듀테크 계획]", "title",
         lambda r: f"- {r.get('title')} ({r.get('period') or ''}) {r.get('method') or ''}"),
        ("expense_requests", "[수업 공개 계획]", "activity",
         lambda r: f"- {r.get('activity')} ({r.get('period') or ''}) {r.get('method') or ''}"),
        ("community_plans", "[교원학습 공동체 계획]", "activity",
         lambda r: f"- {r.get('activity')} ({r.get('period') or ''}) {r.get('method') or ''}"),
        ("education_plans", "[건강/체력 계획]", "area",
         lambda r: f"- {r.get('area')} ({r.get('period') or ''}, {r.get('duration') or ''})"),
        ("other_plans", "[기타 계획]", "text",
         lambda r: f"- {r.get('text')}"),
    ]
    for field, title, required, render in sections:
        rows = _rows(plan, field)
        if not rows:
            continue
        lines.append("\n" + title)
        for row in rows:
            if _text(row.get(required)):
                lines.append(render(row))

    return "\n".join(lines) if lines else "계획서에 작성된 내용이 없습니다."


def _short_date(value) -> str:
    if isinstance(value, (datetime, date)):
        d = value
    elif isinstance(value, str) and value:
        try:
            d = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return ""
    else:
        return ""
    return d.strftime("%y.%m.%d")


def format_mileage_text(entries: List[Dict], labels: Optional[Dict[str, str]] = None) -> str:
    """마일리지 기록 → '[영역] 내용 (YY.MM.DD)' 줄 목록"""
    labels = labels or CATEGORY_LABELS
    lines = []
    for entry in entries or []:
        category = entry.get("category") or ""
        label = labels.get(category, category)
        lines.append(f"[{label}] {entry.get('content') or ''} ({_short_date(entry.get('created_at'))})")
    return "\n\n".join(lines) if lines else "마일리지에 기록된 내용이 없습니다."


def strip_leading_date_prefix(content: str) -> str:
    """성찰 기록 앞의 '25.03.14(금)' 형식 날짜 제거"""
    return DATE_PREFIX_PATTERN.sub("", content or "", count=1).strip()
