"""
교원 역량 진단 모듈
6개 역량 영역 × 5문항(총 30문항) 사전/사후 검사의 문항 구성, 채점, 강점·약점 요약
"""

import math
from typing import List, Dict, Optional


DIAGNOSIS_TYPES = ("pre", "post")

DOMAIN_KEYS = ["domain1", "domain2", "domain3", "domain4", "domain5", "domain6"]

DOMAIN_LABELS = {
    "domain1": "수업 설계·운영",
    "domain2": "학생 이해·생활지도",
    "domain3": "평가·피드백",
    "domain4": "학급경영·안전",
    "domain5": "전문성 개발·성찰",
    "domain6": "소통·협력 및 포용적 교육",
}

ITEMS_PER_DOMAIN = 5
MAX_ANSWER = 100

DEFAULT_DIAGNOSIS_DOMAINS = [
    {
        "name": "수업 설계·운영",
        "items": [
            "학습 목표를 학생 수준에 맞게 구체적 행동 목표로 제시한다.",
            "성취기준과 수업 활동이 일관되게 연결되도록 수업을 설계한다.",
            "학생 참여를 높이기 위해 질문, 토의, 활동을 균형 있게 운영한다.",
            "수업 중 학생 반응에 따라 설명·활동을 조정(즉각적 수정)한다.",
            "다양한 교수·학습 자료(교구/매체/실물 등)를 목적에 맞게 선택·활용한다.",
        ],
    },
    {
        "name": "학생 이해·생활지도",
        "items": [
            "학생의 발달 특성(인지·정서·사회성)을 고려하여 지도한다.",
            "학생의 강점과 어려움을 파악하기 위해 관찰·대화·기록을 지속한다.",
            "문제행동을 다룰 때 원인(상황/욕구)을 먼저 파악하고 지도한다.",
            "갈등 상황에서 학생이 감정을 조절하고 관계를 회복하도록 돕는다.",
            "학생의 다양성(가정·문화·개별차)을 존중하며 차별 없이 지도한다.",
        ],
    },
    {
        "name": "평가·피드백",
        "items": [
            "평가 계획을 수업 목표와 연계하여 사전에 안내한다.",
            "수행평가에서 평가기준(루브릭 등)을 명확히 제시한다.",
            "학생의 학습 과정을 평가에 반영하기 위해 형성평가를 활용한다.",
            "피드백을 \"잘함/보완점/다음 전략\"처럼 구체적으로 제공한다.",
            "평가 결과를 다음 수업 개선과 개별 지도에 실제로 반영한다.",
        ],
    },
    {
        "name": "학급경영·안전",
        "items": [
            "학급 규칙과 기대 행동을 학생과 함께 정하고 일관되게 적용한다.",
            "수업 전환(활동 이동, 정리, 모둠 전환 등)을 효율적으로 운영한다.",
            "교실 환경(자리 배치, 자료 동선 등)을 학습에 도움이 되게 구성한다.",
            "안전사고 예방을 위해 위험요소를 점검하고 예방지도를 실시한다.",
            "위기 상황(사고·응급·폭력·재난 등) 발생 시 절차에 따라 침착하게 대응한다.",
        ],
    },
    {
        "name": "전문성 개발·성찰",
        "items": [
            "수업 후 성찰(기록/회고)을 통해 개선점을 구체화한다.",
            "학생 학습자료, 평가 결과 등을 근거로 수업을 점검·개선한다.",
            "연수·독서·연구회 등으로 새로운 교수법을 지속적으로 학습한다.",
            "동료의 수업을 관찰하거나 피드백을 주고받으며 공동 성장한다.",
            "교육 정책/지침 변화가 수업과 학급 운영에 미치는 영향을 파악하고 반영한다.",
        ],
    },
    {
        "name": "소통·협력 및 포용적 교육",
        "items": [
            "학부모와의 소통에서 학생의 강점과 성장 중심으로 신뢰를 형성한다.",
            "민감한 사안(생활/평가/갈등)을 전달할 때 사실·근거·대안을 갖추어 설명한다.",
            "담임·전담·특수/상담 등과 협력하여 학생 지원을 연계한다.",
            "학습에 어려움이 있는 학생을 위해 지원(조정, 보조자료, 추가 지도)을 계획적으로 제공한다.",
            "교실에서 모든 학생이 참여할 수 있도록 포용적 활동(역할, 수준, 참여 방식)을 설계한다.",
        ],
    },
]


def domains_to_questions(domains: List[Dict]) -> List[Dict]:
    """영역 설정 → 문항 목록 [{id: "1"~"30", text, domain: "domain1"~"domain6"}]"""
    questions = []
    for di, domain in enumerate(domains):
        for ii, text in enumerate(domain.get("items", [])[:ITEMS_PER_DOMAIN]):
            questions.append({
                "id": str(di * ITEMS_PER_DOMAIN + ii + 1),
                "text": text,
                "domain": f"domain{di + 1}",
            })
    return questions


def _answer_value(answers: Dict, question_id: str) -> Optional[float]:
    value = answers.get(question_id)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value < 0 or value > MAX_ANSWER:
        return None
    return value


def score_answers(answers: Dict, questions: List[Dict]) -> Dict:
    """
    응답 채점

    Args:
        answers: {문항 id: 0~100 응답값}
        questions: domains_to_questions() 결과

    Returns:
        {"domain1": int, ..., "domain6": int, "total_score": int}

    Raises:
        ValueError: 응답하지 않았거나 범위를 벗어난 문항이 있을 때
    """
    if not isinstance(answers, dict):
        raise ValueError("응답 형식이 올바르지 않습니다.")

    missing = [q["id"] for q in questions if _answer_value(answers, q["id"]) is None]
    if missing:
        raise ValueError(f"모든 문항에 응답해 주세요. (미응답: {', '.join(missing)})")

    sums = {key: 0 for key in DOMAIN_KEYS}
    for q in questions:
        sums[q["domain"]] += _answer_value(answers, q["id"])

    scores = {key: int(math.floor(value)) for key, value in sums.items()}
    scores["total_score"] = int(math.floor(sum(sums.values())))
    return scores


def category_scores(scores: Dict) -> Dict:
    return {key: {"score": scores.get(key, 0), "count": ITEMS_PER_DOMAIN} for key in DOMAIN_KEYS}


def domain_averages(result: Dict, labels: Optional[Dict[str, str]] = None) -> List[Dict]:
    labels = labels or DOMAIN_LABELS
    return [
        {
            "domain": key,
            "label": labels.get(key, DOMAIN_LABELS[key]),
            "score": result.get(key) or 0,
            "avg": (result.get(key) or 0) / ITEMS_PER_DOMAIN,
        }
        for key in DOMAIN_KEYS
    ]


def summarize_strengths(result: Dict, labels: Optional[Dict[str, str]] = None) -> Dict[str, List[str]]:
    """평균이 높은 3개 영역은 강점, 낮은 3개 영역은 약점(가장 낮은 영역부터)"""
    ranked = sorted(domain_averages(result, labels), key=lambda d: d["avg"], reverse=True)
    return {
        "strengths": [d["label"] for d in ranked[:3]],
        "weaknesses": [d["label"] for d in reversed(ranked[-3:])],
    }


def format_domain_scores(averages: List[Dict]) -> str:
    return ", ".join(f"{d['label']}: {d['avg']:.1f}점" for d in averages)


def labels_from_domains(domains: List[Dict]) -> Dict[str, str]:
    """학교 설정 영역 이름 → {domainN: 이름}"""
    return {f"domain{i + 1}": d.get("name") or DOMAIN_LABELS[f"domain{i + 1}"] for i, d in enumerate(domains[:6])}
