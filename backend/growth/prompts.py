"""
AI 프롬프트 모듈
추천 유형별 프롬프트 구성, 요청 검증, 응답 파싱(마일리지 분류 JSON, 정리 문장, 계획 행 JSON)
"""

import json
import math
import re
from typing import List, Dict

from growth.diagnosis import DOMAIN_LABELS
from growth.mileage_progress import CATEGORY_KEYS


RECOMMEND_TYPES = [
    "goal",
    "effect",
    "analysis",
    "analysis_post",
    "mentor",
    "result_report",
    "plan_outline",
    "plan_fill_rows",
]

EFFECT_INSUFFICIENT_MESSAGE = "수행 계획이 충분하지 않아, 기대효과를 작성하기 어렵습니다. 수행 계획을 충분히 입력해 주세요."

# 계획서 카드 → (행 항목, 설명)
PLAN_CARD_TYPES = {
    "training": (["name", "period", "duration", "remarks"], "직무/자율 연수: name(연수명), period(시기), duration(시간 수), remarks(비고)"),
    "expense": (["activity", "period", "method", "remarks"], "수업 공개: activity(내용), period(시기), method(방법), remarks(비고)"),
    "community": (["activity", "period", "method", "remarks"], "교원학습 공동체: activity(활동 내용), period(시기), method(방법), remarks(비고)"),
    "book": (["title", "period", "method"], "전문 서적/에듀테크: title(서적 또는 도구명), period(시기), method(활용방법)"),
    "education": (["area", "period", "duration", "remarks"], "건강/체력: area(내용), period(시기), duration(기간), remarks(비고)"),
    "other": (["text"], "기타: text(계획 내용 한 줄)"),
}

MAX_FILL_ROWS = 20


class PromptInputError(ValueError):
    """요청 본문이 프롬프트를 만들기에 부족할 때"""


def _list(value) -> List:
    return value if isinstance(value, list) else []


def _str(value) -> str:
    return str(value).strip() if value is not None else ""


def _rows_text(rows, render) -> str:
    lines = [
        render(r).strip()
        for r in _list(rows)
        if isinstance(r, dict) and any(_str(v) for v in r.values())
    ]
    return "\n".join(lines) or "(없음)"


def plan_text_from_body(body: Dict) -> str:
    """요청 본문의 계획서 필드 → 프롬프트용 텍스트"""
    return "\n".join([
        "[자기역량 개발목표]",
        _str(body.get("development_goal")) or "(없음)",
        "[연수(직무, 자율) 계획]",
        _rows_text(body.get("training_plans"), lambda r: f"- {_str(r.get('name'))} ({_str(r.get('period'))}, {_str(r.get('duration'))}) {_str(r.get('remarks'))}"),
        "[수업 공개 계획]",
        _rows_text(body.get("expense_requests"), lambda r: f"- {_str(r.get('activity'))} ({_str(r.get('period'))}, {_str(r.get('method'))}) {_str(r.get('remarks'))}"),
        "[교원학습 공동체 활동 계획]",
        _rows_text(body.get("community_plans"), lambda r: f"- {_str(r.get('activity'))} ({_str(r.get('period'))}, {_str(r.get('method'))}) {_str(r.get('remarks'))}"),
        "[전문 서적 / 에듀테크 계획]",
        _rows_text(body.get("book_plans"), lambda r: f"- {_str(r.get('title'))} ({_str(r.get('period'))}, {_str(r.get('method'))})"),
        "[건강/체력 향상 계획]",
        _rows_text(body.get("education_plans"), lambda r: f"- {_str(r.get('area'))} ({_str(r.get('period'))}, {_str(r.get('duration'))}) {_str(r.get('remarks'))}"),
        "[기타 계획]",
        _rows_text(body.get("other_plans"), lambda r: f"- {_str(r.get('text'))}"),
    ])


def is_plan_sufficient_for_effect(body: Dict) -> bool:
    """목표 20자 이상 + 연수/건강/서적/수업공개 중 한 행 이상 작성"""
    has_goal = len(_str(body.get("development_goal"))) >= 20

    def any_filled(field, key):
        return any(isinstance(r, dict) and _str(r.get(key)) for r in _list(body.get(field)))

    has_rows = (
        any_filled("training_plans", "name")
        or any_filled("education_plans", "area")
        or any_filled("book_plans", "title")
        or any_filled("expense_requests", "activity")
    )
    return has_goal and has_rows


def fill_rows_count(raw) -> int:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 1
    if math.isnan(value):
        return 1
    return int(min(max(1, value), MAX_FILL_ROWS))


def _scores_text(scores: Dict, labels: Dict[str, str]) -> str:
    parts = []
    for key, label in labels.items():
        try:
            value = float(scores.get(key) or 0)
        except (TypeError, ValueError):
            value = 0
        parts.append(f"{label}: {value:g}점")
    return ", ".join(parts)


def build_recommend_prompt(body: Dict) -> str:
    """
    추천 유형별 프롬프트 구성

    Args:
        body: /api/ai-recommend 요청 본문 (type 필수)

    Returns:
        프롬프트 문자열

    Raises:
        PromptInputError: 유형이 잘못되었거나 필수 입력이 없을 때
    """
    rec_type = body.get("type")
    if rec_type not in RECOMMEND_TYPES:
        raise PromptInputError(f"올바른 type을 제공해주세요. {', '.join(RECOMMEND_TYPES)} 중 하나여야 합니다.")

    strong = ", ".join(str(d) for d in _list(body.get("strongDomains"))) or "없음"
    weak_list = [str(d) for d in _list(body.get("weakDomains"))]
    weak = ", ".join(weak_list) or "없음"

    if rec_type == "goal":
        if not weak_list:
            raise PromptInputError("약점 영역 데이터(weakDomains)를 제공해주세요.")
        weak_items = "\n".join(f"- {item}" for item in _list(body.get("weakItems"))) or "(없음)"
        return (
            "[역할] 역량 진단 결과를 바탕으로 올해 자기역량 개발 목표를 세우는 교사 본인으로서 작성한다.\n"
            "[어조] 1인칭, 공식 계획서 문체(~하고자 합니다). 인사말 없이 본문만.\n"
            f"[강점 영역] {strong}\n[약점 영역] {weak}\n[점수가 낮은 문항]\n{weak_items}\n"
            "[출력] 약점 보완을 중심으로 한 자기역량 개발 목표를 1~2문단으로 작성."
        )

    if rec_type == "effect":
        return (
            "[역할] 아래 계획을 실행한 뒤의 모습을 그리는 교사 본인으로서 작성한다.\n"
            "[어조] 1인칭, 미래형(~할 것이다). 인사말 없이 본문만.\n"
            f"[약점 영역] {weak}\n[계획서]\n---\n{plan_text_from_body(body)}\n---\n"
            "[출력] 계획과 약점 보완을 엮은 기대 효과를 두 문단으로 작성."
        )

    if rec_type == "analysis":
        return (
            "[역할] 교원 역량 개발 컨설턴트로서 진단 결과를 객관적으로 분석한다.\n"
            "[어조] 제3자 컨설팅 어조. 1인칭 금지. 인사말 없이 본문만.\n"
            f"[강점 영역] {strong}\n[약점 영역] {weak}\n"
            f"[전체 영역 점수] {_str(body.get('domainScores')) or '제공되지 않음'}\n"
            f"[총점] {body.get('totalScore') or 0}점\n"
            "[출력] 강점 활용, 약점 분석, 역량 개발 제안의 3문단."
        )

    if rec_type == "analysis_post":
        labels = dict(DOMAIN_LABELS)
        if isinstance(body.get("domainLabels"), dict):
            labels.update({k: str(v) for k, v in body["domainLabels"].items() if k in labels})
        pre = body.get("preScores") if isinstance(body.get("preScores"), dict) else {}
        post = body.get("postScores") if isinstance(body.get("postScores"), dict) else {}
        return (
            "[역할] 교원 역량 개발 컨설턴트로서 사전·사후 진단을 비교한다.\n"
            "[어조] 제3자 컨설팅 어조. 인사말 없이 본문만.\n"
            f"[사전 진단] {_scores_text(pre, labels)} / 총점 {body.get('preTotal') or 0}점\n"
            f"[사후 진단] {_scores_text(post, labels)} / 총점 {body.get('postTotal') or 0}점\n"
            "[출력] 향상된 영역 위주로 2~3문단, 마지막에 다음 단계 제안."
        )

    if rec_type == "mentor":
        return (
            "[역할] 진단 결과와 계획서를 비교해 솔직한 피드백을 주는 AI 멘토.\n"
            "[제약] 5문장 이내. 자기역량 개발목표 문단은 평가하지 않는다. 부족하면 부족하다고 말한다.\n"
            f"[강점 영역] {strong}\n[약점 영역] {weak}\n[계획서]\n---\n{plan_text_from_body(body)}\n---\n"
            "[출력] 약점 영역을 언급하며 데이터에 근거한 멘토링 코멘트."
        )

    if rec_type == "result_report":
        return (
            "[역할] 교원 역량 개발 결과를 정리하는 전문가.\n"
            "[형식] 목표마다 '[항목명] 목표 : [목표 수치] 이상 ( N% 완료)' 한 줄, 아래에 해당 실천을 '  - ' 불릿으로.\n"
            "[규칙] 달성률 = 실천 합계 / 목표 × 100 (최대 100). 정성 목표는 기록이 있으면 100%, 없으면 0%. "
            "기록이 없으면 '(해당 실천 기록 없음)'. 날짜 연도는 2자리.\n"
            f"[계획서]\n{_str(body.get('planSummary')) or '(없음)'}\n"
            f"[마일리지 실천 기록]\n{_str(body.get('mileageText')) or '(없음)'}"
        )

    if rec_type == "plan_outline":
        return (
            "[역할] 교원 역량 개발 계획을 정리하는 전문가.\n"
            "[출력] 연간 계획 목표와 달성 정도를 개조식 짧은 문장으로 나열 (100문장 이내).\n"
            f"[연간 계획서]\n{_str(body.get('planSummary')) or '(없음)'}\n"
            f"[마일리지 실천 기록]\n{_str(body.get('mileageText')) or '(없음)'}"
        )

    card_type = _str(body.get("cardType"))
    if card_type not in PLAN_CARD_TYPES:
        raise PromptInputError("cardType은 training, expense, community, book, education, other 중 하나여야 합니다.")
    keys, desc = PLAN_CARD_TYPES[card_type]
    count = fill_rows_count(body.get("count"))
    return (
        "[역할] 교원 자기역량 개발 계획서 작성을 돕는 전문가.\n"
        f"[지시] 아래 목표를 참고해 '{desc}' 형식의 계획 행을 정확히 {count}개 생성.\n"
        f"[자기역량 개발목표]\n{_str(body.get('developmentGoal')) or '(없음 - 일반적인 예시로 생성)'}\n"
        f"[출력] 키가 {', '.join(keys)} 인 객체의 JSON 배열만 출력."
    )


def build_classify_prompt(text: str, today: str) -> str:
    categories = ", ".join(CATEGORY_KEYS)
    return (
        "[역할] 교사의 역량 강화 활동을 6개 영역으로 분류한다.\n"
        "[영역] training(연수), class_open(수업 공개), community(교원학습 공동체), "
        "book_edutech(독서·에듀테크), health(운동·건강), other(기타)\n"
        "[지시] 입력에서 활동 단위를 나누고, 활동마다 영역 하나와 'YY.MM.DD(요일) 활동요약' 기록 문장을 만든다. "
        f"날짜가 없으면 오늘({today}).\n"
        f"[출력] [{{\"category\": \"...\", \"content\": \"...\"}}] 형식의 JSON 배열만. category는 {categories} 중 하나.\n"
        f"[입력]\n\"\"\"\n{text}\n\"\"\""
    )


def build_refine_prompt(text: str, today: str) -> str:
    return (
        "교사의 마일리지 기록 원문을 한 줄에 한 건씩 정리한다.\n"
        "[형식] YY.MM.DD(요일) 활동내용 (장소) 총 N시간(지역)\n"
        f"[규칙] 여러 건이면 각각 한 줄. 날짜가 없으면 오늘({today}). 시간/회수가 없으면 '총 1회'. 설명·번호 금지.\n"
        f"원문:\n\"\"\"\n{text}\n\"\"\""
    )


def build_reflection_summary_prompt(reflections: str) -> str:
    return (
        "[역할] 교사의 연간 일일성찰 기록을 요약한다.\n"
        "[형식] 1인칭 문단형, 500~1000자, 성장 과정·주요 경험·깨달음·개선점 중심. 제목·인사말 없이 본문만.\n"
        f"[일일성찰 기록]\n{reflections}"
    )


def build_diagnosis_analysis_body(summary: Dict[str, List[str]], domain_scores_text: str, total: int) -> Dict:
    """진단 제출 후 백그라운드 분석 요청 본문"""
    return {
        "type": "analysis",
        "strongDomains": summary["strengths"],
        "weakDomains": summary["weaknesses"],
        "domainScores": domain_scores_text,
        "totalScore": total,
    }


def parse_classified_entries(raw: str) -> List[Dict]:
    """
    분류 응답에서 첫 JSON 배열을 꺼내 유효한 항목만 반환

    Raises:
        ValueError: JSON 파싱 실패
    """
    match = re.search(r"\[[\s\S]*\]", raw or "")
    text = match.group(0) if match else (raw or "")
    parsed = json.loads(text)
    entries = []
    for item in parsed if isinstance(parsed, list) else []:
        if not isinstance(item, dict):
            continue
        category = item.get("category")
        content = item.get("content")
        if not isinstance(category, str) or not isinstance(content, str):
            continue
        if category not in CATEGORY_KEYS or not content.strip():
            continue
        entries.append({"category": category, "content": content.strip()})
    return entries


def parse_refined_lines(raw: str, original: str) -> List[str]:
    lines = [line.strip() for line in re.split(r"\n+", raw or "") if line.strip()]
    return lines or [original]


def parse_fill_rows(raw: str) -> List:
    """
    ```json 코드 블록을 벗겨낸 뒤 JSON 배열 파싱

    Raises:
        ValueError: 배열이 아니거나 파싱 실패
    """
    text = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip(), flags=re.IGNORECASE)
    text = re.sub(r"\s*```$", "", text).strip()
    rows = json.loads(text)
    if not isinstance(rows, list):
        raise ValueError("배열이 아님")
    return rows
