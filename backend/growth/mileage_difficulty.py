"""
마일리지 실행 난이도 모듈
직무연수·수업공개는 연간목표 기준 5단계, 나머지 영역은 같은 학교 교사 목표 대비 3단계(상대 난이도)
"""

from typing import List, Dict


RELATIVE_DIFFICULTY_KEYS = ["community", "book_edutech", "health", "other"]

# 상대 난이도: 1=쉬움, 2=보통, 3=어려움
RELATIVE_STARS = {
    1: "★☆☆☆☆",
    2: "★★★☆☆",
    3: "★★★★★",
}


def training_difficulty_level(goal_hours: float) -> int:
    """직무연수(시간) 기준 1~5단계: 30h→1, 60→2, 80→3, 120→4, 그 이상→5"""
    if goal_hours <= 30:
        return 1
    if goal_hours <= 60:
        return 2
    if goal_hours <= 80:
        return 3
    if goal_hours <= 120:
        return 4
    return 5


def class_open_difficulty_level(goal_count: float) -> int:
    """수업공개(회) 기준 1~5단계: 2회→1, 3→2, 5→3, 7→4, 그 이상→5"""
    if goal_count <= 2:
        return 1
    if goal_count <= 3:
        return 2
    if goal_count <= 5:
        return 3
    if goal_count <= 7:
        return 4
    return 5


def difficulty_stars(level: int) -> str:
    return "★" * level + "☆" * (5 - level)


def relative_difficulty_stars(level: int) -> str:
    return RELATIVE_STARS[level]


def uniform_difficulty(level: int) -> Dict[str, int]:
    return {key: level for key in RELATIVE_DIFFICULTY_KEYS}


def compute_relative_difficulty(peer_goals: Dict[str, Dict[str, float]], current_email: str) -> Dict[str, int]:
    """
    같은 학교 교사들의 연간목표로 상대 난이도 계산

    0~1명이면 쉬움, 2~5명이면 보통, 6명 이상이면 목표값 순위를 3등분한다.
    목표가 같으면 이메일 순으로 정렬한다.

    Args:
        peer_goals: {이메일: {영역 키: 목표값}} (본인 포함)
        current_email: 현재 교사 이메일

    Returns:
        {영역 키: 1|2|3}
    """
    n = len(peer_goals)
    if n <= 1:
        return uniform_difficulty(1)
    if n <= 5:
        return uniform_difficulty(2)

    result = {}
    third = max(1, n // 3)
    for key in RELATIVE_DIFFICULTY_KEYS:
        ranked: List = sorted(
            ((goals.get(key, 0) or 0, email) for email, goals in peer_goals.items()),
        )
        emails = [email for _, email in ranked]
        rank = emails.index(current_email) if current_email in emails else len(emails)
        if rank < third:
            result[key] = 1
        elif rank < 2 * third:
            result[key] = 2
        else:
            result[key] = 3
    return result
