"""
열정 포인트 모듈
기본 포인트 + 일일 로그인 포인트 + 마일리지 포인트(학교별 단위당 점수) 계산
"""

from typing import List, Dict, Optional, Tuple

from growth.mileage_progress import parse_value_from_content, round_half_up


BASE_POINTS = 100
DEFAULT_LOGIN_POINTS = 2


def initial_points_row(email: str) -> Dict:
    return {
        "user_email": email,
        "base_points": BASE_POINTS,
        "login_points": 0,
        "last_login_date": None,
        "login_points_that_day": 0,
    }


def login_points_per_day(points_settings: Optional[Dict]) -> float:
    """학교 설정의 1일 로그인 점수 (0 이상 숫자가 아니면 기본값)"""
    value = (points_settings or {}).get("login_points")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
        return value
    return DEFAULT_LOGIN_POINTS


def apply_daily_login(row: Optional[Dict], email: str, today: str, per_day: float) -> Tuple[float, Optional[Dict]]:
    """
    하루 첫 로그인 포인트 반영

    Args:
        row: 기존 user_points 행 (없으면 None)
        email: 사용자 이메일
        today: 오늘 날짜 'YYYY-MM-DD'
        per_day: 1일 로그인 점수

    Returns:
        (추가된 점수, 저장할 행) - 같은 날 이미 반영되었으면 (0, None)
    """
    row = row or {}
    last_date = row.get("last_login_date")
    if last_date is not None and str(last_date)[:10] == today:
        return 0, None

    base = row.get("base_points")
    new_row = {
        "user_email": email,
        "base_points": BASE_POINTS if base is None else base,
        "login_points": (row.get("login_points") or 0) + per_day,
        "last_login_date": today,
        "login_points_that_day": per_day,
    }
    return per_day, new_row


def login_message(added: float) -> Optional[str]:
    if added > 0:
        return f"열정 포인트 +{_display_number(added)}점 획득"
    return None


def _display_number(value: float):
    return int(value) if float(value).is_integer() else value


def mileage_breakdown(entries: List[Dict], points_settings: Dict, categories: List[Dict],
                      health_goal_unit: str) -> List[Dict]:
    """
    영역별 마일리지 포인트

    영역 단위로 합산한 수치에 단위당 점수를 곱하고 반올림한다.
    """
    units = {c["key"]: c["unit"] for c in categories}
    sums = {}
    for entry in entries or []:
        key = entry.get("category")
        value = parse_value_from_content(entry.get("content"), key, health_goal_unit, units.get(key))
        sums[key] = sums.get(key, 0) + value

    breakdown = []
    for c in categories:
        total = sums.get(c["key"], 0)
        per_unit = points_settings.get(c["key"], 0) or 0
        breakdown.append({
            "key": c["key"],
            "label": c["label"],
            "unit": c["unit"],
            "sum": total,
            "point_per_unit": per_unit,
            "points": round_half_up(total * per_unit),
        })
    return breakdown


def points_summary(row: Optional[Dict], breakdown: List[Dict]) -> Dict:
    row = row or {}
    base = row.get("base_points")
    base = BASE_POINTS if base is None else base
    login = row.get("login_points") or 0
    mileage = sum(item["points"] for item in breakdown)
    return {
        "total": base + login + mileage,
        "base": base,
        "login": login,
        "mileage": mileage,
        "mileage_breakdown": breakdown,
    }
