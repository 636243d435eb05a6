# -*- coding: utf-8 -*-
from fastapi import FastAPI, HTTPException, Query, Request, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from typing import Optional, List, Dict
import pymysql
import pandas as pd
import io
import os
import json
import logging
from datetime import datetime, date, timezone
from dotenv import load_dotenv
import requests
from pathlib import Path

from growth.auth_client import (
    SupabaseAuthClient, AuthServiceError, extract_bearer_token,
    has_role, is_teacher, is_admin, metadata_of, school_of,
)
from growth.gemini_client import GeminiClient, GeminiAPIError, DEFAULT_MODEL, load_gemini_keys
from growth.mileage_progress import (
    CATEGORY_KEYS, compute_mileage_progress, plan_goals_from_row,
    has_valid_mileage_format,
)
from growth.mileage_difficulty import (
    training_difficulty_level, class_open_difficulty_level, difficulty_stars,
    relative_difficulty_stars, compute_relative_difficulty, uniform_difficulty,
    RELATIVE_DIFFICULTY_KEYS,
)
from growth.school_settings import (
    parse_stored, normalize_points_input, normalize_categories_input,
    parse_diagnosis_settings, normalize_diagnosis_domains_input, merge_settings,
    default_points, default_categories,
)
from growth.diagnosis import (
    DIAGNOSIS_TYPES, DEFAULT_DIAGNOSIS_DOMAINS, domains_to_questions, score_answers,
    category_scores, domain_averages, summarize_strengths, format_domain_scores,
    labels_from_domains, DOMAIN_KEYS,
)
from growth.development_plan import (
    LIST_FIELDS, plan_fill_ratio, is_plan_completed, health_goal_unit_of,
    missing_annual_goals, missing_goals_warning, build_plan_record, draft_updates,
    format_plan_summary, format_mileage_text, strip_leading_date_prefix,
)
from growth.points import (
    initial_points_row, login_points_per_day, apply_daily_login, login_message,
    mileage_breakdown, points_summary,
)
from growth.prompts import (
    build_recommend_prompt, build_classify_prompt, build_refine_prompt,
    build_reflection_summary_prompt, build_diagnosis_analysis_body,
    is_plan_sufficient_for_effect, parse_classified_entries, parse_refined_lines,
    parse_fill_rows, PromptInputError, EFFECT_INSUFFICIENT_MESSAGE,
)

# .env 파일을 상위 디렉토리에서 로드
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

# 로깅 필터 설정 (불필요한 200 OK 로그 제거)
class EndpointFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if '200 OK' in message:
            # 화면마다 새로고침 시 호출되는 GET 요청들 제외
            polling_apis = [
                '/api/school-category-settings',
                '/api/points/me',
                '/api/mileage-progress',
                '/health',
            ]
            for api in polling_apis:
                if f'GET {api} ' in message:
                    return False
        return True

# uvicorn 로거에 필터 적용
logging.getLogger("uvicorn.access").addFilter(EndpointFilter())

app = FastAPI(title="교원성장메이트 API")

# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 데이터베이스 연결 설정 (환경 변수에서 로드)
DB_CONFIG = {
    'host': os.getenv('DB_HOST', 'localhost'),
    'user': os.getenv('DB_USER', 'root'),
    'passwd': os.getenv('DB_PASSWORD', ''),
    'db': os.getenv('DB_NAME', 'teacher_mate'),
    'charset': 'utf8mb4',
    'port': int(os.getenv('DB_PORT', '3306'))
}

ADMIN_CODE = os.getenv('ADMIN_CODE', 'pbk')
RESET_PASSWORD = os.getenv('RESET_PASSWORD', '123456')
APP_ENV = os.getenv('APP_ENV', 'production')

PREFERENCE_KEYS = ['reflection_evidence_text', 'reflection_next_year_goal']

auth_client = SupabaseAuthClient(
    os.getenv('SUPABASE_URL', ''),
    os.getenv('SUPABASE_ANON_KEY', ''),
    os.getenv('SUPABASE_SERVICE_ROLE_KEY', ''),
)
gemini_client = GeminiClient(model=os.getenv('GEMINI_MODEL', DEFAULT_MODEL))


def get_db_connection():
    """데이터베이스 연결 (예외를 503 응답으로 변환)"""
    try:
        return pymysql.connect(**DB_CONFIG)
    except pymysql.err.OperationalError as e:
        error_code = e.args[0] if e.args else 0
        print(f"[ERROR] DB 연결 실패: {e}")

        if error_code == 2003:  # Can't connect to MySQL server
            raise HTTPException(
                status_code=503,
                detail="데이터베이스 서버 점검 중|현재 데이터베이스 서버에 연결할 수 없습니다.\n\n잠시 후 다시 시도해주세요."
            )
        elif error_code == 1045:  # Access denied
            raise HTTPException(
                status_code=503,
                detail="데이터베이스 인증 오류|데이터베이스 접근 권한 문제가 발생했습니다.\n\n시스템 관리자에게 문의해주세요."
            )
        elif error_code == 2002:  # Can't connect through socket
            raise HTTPException(
                status_code=503,
                detail="데이터베이스 연결 실패|데이터베이스 서버와의 연결이 끊어졌습니다.\n\n네트워크 상태를 확인해주세요."
            )
        else:
            raise HTTPException(
                status_code=503,
                detail="데이터베이스 오류|데이터베이스 서버에 일시적인 문제가 발생했습니다.\n\n오류 코드: " + str(error_code)
            )
    except Exception as e:
        print(f"[ERROR] DB 연결 중 예상치 못한 오류: {e}")
        raise HTTPException(
            status_code=503,
            detail="시스템 오류|데이터베이스 연결 중 오류가 발생했습니다.\n\n잠시 후 다시 시도해주세요."
        )


def convert_datetime(obj: dict) -> dict:
    """datetime/date 값을 ISO 문자열로 변환"""
    for key, value in obj.items():
        if isinstance(value, (datetime, date)):
            obj[key] = value.isoformat()
    return obj


def decode_json_fields(row: Optional[dict], fields: List[str], default_factory=list) -> Optional[dict]:
    """TEXT 컬럼에 저장된 JSON 값을 파싱"""
    if not row:
        return row
    for field in fields:
        value = row.get(field)
        if isinstance(value, (bytes, bytearray)):
            value = value.decode('utf-8')
        if isinstance(value, str):
            try:
                row[field] = json.loads(value) if value else default_factory()
            except ValueError:
                print(f"[WARN] {field} JSON 파싱 실패")
                row[field] = default_factory()
        elif value is None:
            row[field] = default_factory()
    return row


def to_json_text(value) -> str:
    return json.dumps(value, ensure_ascii=False)


# ==================== 테이블 생성 ====================

def ensure_development_plans_table(cursor):
    """development_plans 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS development_plans (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_email VARCHAR(255) NOT NULL,
                school_name VARCHAR(255),
                development_goal TEXT,
                expected_outcome TEXT,
                annual_goal VARCHAR(100),
                expense_annual_goal VARCHAR(100),
                community_annual_goal VARCHAR(100),
                book_annual_goal VARCHAR(100),
                education_annual_goal VARCHAR(100),
                education_annual_goal_unit VARCHAR(10) DEFAULT '시간',
                other_annual_goal VARCHAR(100),
                training_plans TEXT,
                education_plans TEXT,
                book_plans TEXT,
                expense_requests TEXT,
                community_plans TEXT,
                other_plans TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
                INDEX idx_user_created (user_email, created_at)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] development_plans 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] development_plans 테이블 생성 실패: {e}")


def ensure_diagnosis_results_table(cursor):
    """diagnosis_results 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS diagnosis_results (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_email VARCHAR(255) NOT NULL,
                school_name VARCHAR(255),
                domain1 INT DEFAULT 0,
                domain2 INT DEFAULT 0,
                domain3 INT DEFAULT 0,
                domain4 INT DEFAULT 0,
                domain5 INT DEFAULT 0,
                domain6 INT DEFAULT 0,
                total_score INT DEFAULT 0,
                raw_answers TEXT,
                category_scores TEXT,
                diagnosis_type VARCHAR(10) NULL,
                ai_analysis TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                INDEX idx_user_type (user_email, diagnosis_type)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] diagnosis_results 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] diagnosis_results 테이블 생성 실패: {e}")


def ensure_mileage_entries_table(cursor):
    """mileage_entries 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS mileage_entries (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_email VARCHAR(255) NOT NULL,
                content TEXT,
                category VARCHAR(30) NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
                INDEX idx_user_created (user_email, created_at)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] mileage_entries 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] mileage_entries 테이블 생성 실패: {e}")


def ensure_daily_reflections_table(cursor):
    """daily_reflections 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS daily_reflections (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_email VARCHAR(255) NOT NULL,
                reflection_date DATE NOT NULL,
                content TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
                INDEX idx_user_date (user_email, reflection_date)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] daily_reflections 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] daily_reflections 테이블 생성 실패: {e}")


def ensure_reflection_drafts_table(cursor):
    """reflection_drafts 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reflection_drafts (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_email VARCHAR(255) NOT NULL UNIQUE,
                goal_achievement_text TEXT,
                reflection_text TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] reflection_drafts 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] reflection_drafts 테이블 생성 실패: {e}")


def ensure_user_preferences_table(cursor):
    """user_preferences 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_preferences (
                id INT AUTO_INCREMENT PRIMARY KEY,
                user_email VARCHAR(255) NOT NULL,
                pref_key VARCHAR(100) NOT NULL,
                pref_value TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
                UNIQUE KEY uq_user_pref (user_email, pref_key)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] user_preferences 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] user_preferences 테이블 생성 실패: {e}")


def ensure_user_points_table(cursor):
    """user_points 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_points (
                user_email VARCHAR(255) PRIMARY KEY,
                base_points DOUBLE DEFAULT 100,
                login_points DOUBLE DEFAULT 0,
                last_login_date DATE NULL,
                login_points_that_day DOUBLE DEFAULT 0,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] user_points 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] user_points 테이블 생성 실패: {e}")


def ensure_school_point_settings_table(cursor):
    """school_point_settings 테이블이 없으면 생성"""
    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS school_point_settings (
                school_name VARCHAR(255) PRIMARY KEY,
                settings_json TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
        """)
        print("[OK] school_point_settings 테이블 확인/생성 완료")
    except Exception as e:
        print(f"[WARN] school_point_settings 테이블 생성 실패: {e}")


def ensure_all_tables(cursor):
    ensure_development_plans_table(cursor)
    ensure_diagnosis_results_table(cursor)
    ensure_mileage_entries_table(cursor)
    ensure_daily_reflections_table(cursor)
    ensure_reflection_drafts_table(cursor)
    ensure_user_preferences_table(cursor)
    ensure_user_points_table(cursor)
    ensure_school_point_settings_table(cursor)


# ==================== 조회 헬퍼 ====================

def fetch_latest_plan(cursor, email: str) -> Optional[dict]:
    """가장 최근 계획서 (JSON 목록 필드 파싱)"""
    cursor.execute("""
        SELECT * FROM development_plans
        WHERE user_email = %s
        ORDER BY created_at DESC, id DESC
        LIMIT 1
    """, (email,))
    plan = cursor.fetchone()
    if not plan:
        return None
    decode_json_fields(plan, list(LIST_FIELDS.keys()))
    return convert_datetime(plan)


def fetch_school_settings_json(cursor, school_name: str) -> Optional[str]:
    if not school_name:
        return None
    cursor.execute("SELECT settings_json FROM school_point_settings WHERE school_name = %s", (school_name,))
    row = cursor.fetchone()
    return row['settings_json'] if row else None


def save_school_settings_json(cursor, school_name: str, settings_json: str):
    cursor.execute("""
        INSERT INTO school_point_settings (school_name, settings_json)
        VALUES (%s, %s)
        ON DUPLICATE KEY UPDATE settings_json = VALUES(settings_json)
    """, (school_name, settings_json))


def fetch_mileage_entries(cursor, email: str) -> List[dict]:
    cursor.execute("""
        SELECT id, user_email, content, category, created_at, updated_at
        FROM mileage_entries
        WHERE user_email = %s
        ORDER BY created_at DESC, id DESC
    """, (email,))
    return [convert_datetime(row) for row in cursor.fetchall()]


def fetch_latest_diagnosis(cursor, email: str, diagnosis_type: str) -> Optional[dict]:
    """최근 진단 결과. 사전검사는 유형이 비어있는 기존 기록도 포함"""
    query = "SELECT * FROM diagnosis_results WHERE user_email = %s"
    if diagnosis_type == 'post':
        query += " AND diagnosis_type = 'post'"
    else:
        query += " AND (diagnosis_type IS NULL OR diagnosis_type = 'pre')"
    query += " ORDER BY created_at DESC, id DESC LIMIT 1"
    cursor.execute(query, (email,))
    result = cursor.fetchone()
    if not result:
        return None
    decode_json_fields(result, ['raw_answers', 'category_scores'], dict)
    return convert_datetime(result)


def fetch_user_points(cursor, email: str) -> Optional[dict]:
    cursor.execute("SELECT * FROM user_points WHERE user_email = %s", (email,))
    row = cursor.fetchone()
    return convert_datetime(row) if row else None


def fetch_reflection_draft(cursor, email: str) -> Optional[dict]:
    cursor.execute("""
        SELECT goal_achievement_text, reflection_text, updated_at
        FROM reflection_drafts WHERE user_email = %s
    """, (email,))
    row = cursor.fetchone()
    return convert_datetime(row) if row else None


def fetch_preference(cursor, email: str, pref_key: str) -> Optional[str]:
    cursor.execute("""
        SELECT pref_value FROM user_preferences
        WHERE user_email = %s AND pref_key = %s
    """, (email, pref_key))
    row = cursor.fetchone()
    if not row or row.get('pref_value') is None:
        return None
    return str(row['pref_value'])


def fetch_owned_row(cursor, table: str, row_id: int, email: str) -> Optional[dict]:
    """본인 소유 행 조회 (table 은 코드에서 지정한 값만 사용)"""
    cursor.execute(f"SELECT * FROM {table} WHERE id = %s AND user_email = %s", (row_id, email))
    return cursor.fetchone()


def load_school_context(cursor, school_name: str):
    """학교 설정 → (포인트 설정, 영역 설정, 영역 이름 dict)"""
    points, categories = parse_stored(fetch_school_settings_json(cursor, school_name))
    labels = {c['key']: c['label'] for c in categories}
    return points, categories, labels


# ==================== 인증 헬퍼 ====================

def get_current_user(request: Request) -> dict:
    """Bearer 토큰으로 로그인 사용자 확인"""
    token = extract_bearer_token(request.headers.get('authorization'))
    if not token:
        raise HTTPException(status_code=401, detail="인증이 필요합니다.")
    try:
        user = auth_client.get_user(token)
    except (AuthServiceError, requests.RequestException) as e:
        print(f"[ERROR] 사용자 확인 실패: {e}")
        raise HTTPException(status_code=503, detail="인증 서버에 연결할 수 없습니다.")
    if not user or not user.get('email'):
        raise HTTPException(status_code=401, detail="사용자를 확인할 수 없습니다.")
    return user


def require_teacher(request: Request) -> dict:
    user = get_current_user(request)
    if not is_teacher(metadata_of(user)):
        raise HTTPException(status_code=403, detail="교원만 이용할 수 있습니다.")
    return user


def require_admin(request: Request) -> dict:
    user = get_current_user(request)
    if not is_admin(metadata_of(user)):
        raise HTTPException(status_code=403, detail="관리자만 이용할 수 있습니다.")
    return user


def require_admin_school(request: Request):
    """관리자 + 소속 학교 확인 → (user, school_name)"""
    user = require_admin(request)
    school_name = school_of(user)
    if not school_name:
        raise HTTPException(status_code=403, detail="학교 정보가 없는 관리자는 조회할 수 없습니다.")
    return user, school_name


def list_all_users() -> List[dict]:
    try:
        return auth_client.list_users(page=1, per_page=1000)
    except (AuthServiceError, requests.RequestException) as e:
        print(f"[ERROR] 회원 목록 조회 실패: {e}")
        raise HTTPException(status_code=500, detail="교원 목록을 불러올 수 없습니다.")


def list_school_teachers(school_name: str) -> List[dict]:
    return [
        u for u in list_all_users()
        if has_role(metadata_of(u), 'teacher') and school_of(u) == school_name
    ]


def find_school_teacher(email: str, school_name: str) -> dict:
    """같은 학교 교원을 이메일(대소문자 무시)로 찾기"""
    if not email or not isinstance(email, str):
        raise HTTPException(status_code=400, detail="email이 필요합니다.")
    target = email.strip().lower()
    teacher = next(
        (u for u in list_all_users()
         if (u.get('email') or '').lower() == target and has_role(metadata_of(u), 'teacher')),
        None
    )
    if not teacher:
        raise HTTPException(status_code=404, detail="해당 교원을 찾을 수 없습니다.")
    if school_of(teacher) != school_name:
        raise HTTPException(status_code=403, detail="같은 학교 소속만 조회할 수 있습니다.")
    return teacher


# ==================== AI 헬퍼 ====================

def generate_text(prompt: str, **kwargs) -> str:
    """Gemini 호출 (오류는 500 응답으로 변환)"""
    if not gemini_client.has_keys():
        raise HTTPException(status_code=500, detail="GEMINI_API_KEY 또는 GEMINI_API_KEY_1~5 중 하나 이상 설정해주세요.")
    try:
        return gemini_client.generate(prompt, **kwargs)
    except (GeminiAPIError, requests.RequestException) as e:
        print(f"[ERROR] Gemini API 호출 실패: {e}")
        raise HTTPException(status_code=500, detail=f"Gemini API 호출 실패: {e}")


def today_label() -> str:
    weekdays = ['월', '화', '수', '목', '금', '토', '일']
    now = datetime.now()
    return f"{now.strftime('%y.%m.%d')}({weekdays[now.weekday()]})"


# ==================== 헬스 체크 ====================

@app.get("/health")
async def health_check():
    """헬스 체크"""
    try:
        conn = get_db_connection()
        conn.close()
        return {"status": "healthy", "database": "connected"}
    except HTTPException as e:
        return {"status": "unhealthy", "error": str(e.detail)}


# ==================== 프로필 API ====================

@app.post("/api/auth/complete-profile")
async def complete_profile(data: dict, request: Request):
    """
    최초 로그인 후 역할/이름/학교 설정
    - 이미 역할이 설정된 사용자는 변경 불가
    """
    user = get_current_user(request)
    if metadata_of(user).get('role'):
        raise HTTPException(status_code=400, detail="이미 프로필이 완성된 사용자입니다.")

    role = data.get('role')
    name = (data.get('name') or '').strip() if isinstance(data.get('name'), str) else ''
    school_name = (data.get('schoolName') or '').strip() if isinstance(data.get('schoolName'), str) else ''
    grade_class = data.get('gradeClass')
    grade_class = grade_class.strip() if isinstance(grade_class, str) else ''

    if not role or not name or not school_name:
        raise HTTPException(status_code=400, detail="role, name, schoolName은 필수입니다.")
    if role not in ('teacher', 'admin'):
        raise HTTPException(status_code=400, detail="role은 'teacher' 또는 'admin'이어야 합니다.")

    try:
        auth_client.update_user_by_id(user['id'], user_metadata={
            'role': role,
            'name': name,
            'schoolName': school_name,
            'gradeClass': grade_class,
        })
    except (AuthServiceError, requests.RequestException) as e:
        print(f"[ERROR] 프로필 저장 실패: {e}")
        raise HTTPException(status_code=500, detail="프로필 저장에 실패했습니다.")

    print(f"[OK] 프로필 설정 완료: {user.get('email')} ({role}, {school_name})")
    return {"success": True}


# ==================== 학교 설정 API ====================

@app.get("/api/school-category-settings")
async def get_school_category_settings(request: Request):
    """소속 학교의 6가지 영역(이름·단위) 조회"""
    user = get_current_user(request)
    school_name = school_of(user)
    if not school_name:
        return {"categories": default_categories()}

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_school_point_settings_table(cursor)
        _, categories = parse_stored(fetch_school_settings_json(cursor, school_name))
        return {"categories": categories}
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 영역 설정 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.get("/api/points/school-settings")
async def get_point_school_settings(request: Request):
    """학교별 포인트 설정 + 6가지 영역 조회 (관리자)"""
    user = require_admin(request)
    school_name = school_of(user)
    if not school_name:
        return {"settings": default_points(), "categories": default_categories()}

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_school_point_settings_table(cursor)
        points, categories = parse_stored(fetch_school_settings_json(cursor, school_name))
        return {"settings": points, "categories": categories}
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 포인트 설정 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.post("/api/points/school-settings")
async def save_point_school_settings(data: dict, request: Request):
    """학교별 포인트 설정 + 6가지 영역 저장 (관리자, 검사 문항 설정은 유지)"""
    user = require_admin(request)
    school_name = school_of(user)
    if not school_name:
        raise HTTPException(status_code=400, detail="학교 정보가 없습니다.")

    points_input = data.get('settings') if isinstance(data.get('settings'), dict) else data
    points = normalize_points_input(points_input)
    categories = normalize_categories_input(data.get('categories'))

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_school_point_settings_table(cursor)
        existing = fetch_school_settings_json(cursor, school_name)
        save_school_settings_json(cursor, school_name, merge_settings(existing, points=points, categories=categories))
        conn.commit()
        print(f"[OK] 포인트 설정 저장: {school_name}")
        return {"ok": True, "settings": points, "categories": categories}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 포인트 설정 저장 실패: {e}")
        raise HTTPException(status_code=500, detail="저장에 실패했습니다.")
    finally:
        cursor.close()
        conn.close()


# ==================== 역량 진단 API ====================

def load_diagnosis_domains(school_name: str):
    """소속 학교 검사 문항 (학교가 없으면 기본 문항)"""
    if not school_name:
        return DEFAULT_DIAGNOSIS_DOMAINS, ""
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_school_point_settings_table(cursor)
        return parse_diagnosis_settings(fetch_school_settings_json(cursor, school_name))
    finally:
        cursor.close()
        conn.close()


@app.get("/api/diagnosis-settings")
async def get_diagnosis_settings(request: Request):
    """소속 학교의 사전/사후검사 영역·문항 조회 (교원·관리자)"""
    user = require_teacher(request)
    domains, title = load_diagnosis_domains(school_of(user))
    return {"domains": domains, "title": title}


@app.get("/api/diagnosis-questions")
async def get_diagnosis_questions(request: Request):
    """소속 학교의 30개 검사 문항 조회"""
    user = require_teacher(request)
    domains, title = load_diagnosis_domains(school_of(user))
    return {"domains": domains, "title": title, "questions": domains_to_questions(domains)}


def run_diagnosis_analysis(result_id: int, analysis_body: dict):
    """진단 결과 AI 분석 생성 후 저장 (백그라운드)"""
    try:
        text = gemini_client.generate(build_recommend_prompt(analysis_body))
    except (GeminiAPIError, PromptInputError, requests.RequestException) as e:
        print(f"[WARN] 진단 AI 분석 생성 실패 (id={result_id}): {e}")
        return
    if not text:
        print(f"[WARN] 진단 AI 분석 결과가 비어있습니다 (id={result_id})")
        return

    try:
        conn = get_db_connection()
    except HTTPException as e:
        print(f"[WARN] 진단 AI 분석 저장 실패 (id={result_id}): {e.detail}")
        return
    cursor = conn.cursor()
    try:
        cursor.execute("UPDATE diagnosis_results SET ai_analysis = %s WHERE id = %s", (text, result_id))
        conn.commit()
        print(f"[OK] 진단 AI 분석 저장 완료 (id={result_id})")
    except Exception as e:
        conn.rollback()
        print(f"[WARN] 진단 AI 분석 저장 실패 (id={result_id}): {e}")
    finally:
        cursor.close()
        conn.close()


@app.post("/api/diagnosis-results")
async def submit_diagnosis(data: dict, request: Request, background_tasks: BackgroundTasks):
    """
    사전/사후 검사 제출
    - 30개 문항 모두 응답해야 저장
    - 저장 후 AI 분석은 백그라운드에서 생성
    """
    user = require_teacher(request)
    email = user['email']
    school_name = school_of(user)
    if not school_name:
        raise HTTPException(status_code=400, detail="로그인 정보가 올바르지 않습니다. 다시 로그인해 주세요.")

    diagnosis_type = data.get('diagnosis_type') or 'pre'
    if diagnosis_type not in DIAGNOSIS_TYPES:
        raise HTTPException(status_code=400, detail="diagnosis_type은 'pre' 또는 'post'여야 합니다.")

    domains, _ = load_diagnosis_domains(school_name)
    answers = data.get('answers')
    try:
        scores = score_answers(answers, domains_to_questions(domains))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_diagnosis_results_table(cursor)
        cursor.execute("""
            INSERT INTO diagnosis_results
            (user_email, school_name, domain1, domain2, domain3, domain4, domain5, domain6,
             total_score, raw_answers, category_scores, diagnosis_type)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, (
            email, school_name,
            scores['domain1'], scores['domain2'], scores['domain3'],
            scores['domain4'], scores['domain5'], scores['domain6'],
            scores['total_score'], to_json_text(answers), to_json_text(category_scores(scores)),
            diagnosis_type,
        ))
        result_id = cursor.lastrowid
        pre_result = fetch_latest_diagnosis(cursor, email, 'pre') if diagnosis_type == 'post' else None
        conn.commit()
        print(f"[OK] {diagnosis_type} 검사 저장: {email} (총점 {scores['total_score']})")
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 검사 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()

    labels = labels_from_domains(domains)
    summary = summarize_strengths(scores, labels)
    if gemini_client.has_keys():
        if diagnosis_type == 'post' and pre_result:
            analysis_body = {
                "type": "analysis_post",
                "preScores": {k: pre_result.get(k) for k in DOMAIN_KEYS},
                "postScores": {k: scores[k] for k in DOMAIN_KEYS},
                "preTotal": pre_result.get('total_score'),
                "postTotal": scores['total_score'],
                "domainLabels": labels,
            }
        else:
            analysis_body = build_diagnosis_analysis_body(
                summary, format_domain_scores(domain_averages(scores, labels)), scores['total_score']
            )
        background_tasks.add_task(run_diagnosis_analysis, result_id, analysis_body)

    return {"id": result_id, "diagnosis_type": diagnosis_type, **scores, **summary}


@app.get("/api/diagnosis-results/latest")
async def get_latest_diagnosis(request: Request, type: str = Query('pre')):
    """최근 사전(pre) 또는 사후(post) 검사 결과"""
    if type not in DIAGNOSIS_TYPES:
        raise HTTPException(status_code=400, detail="type은 'pre' 또는 'post'여야 합니다.")
    user = require_teacher(request)
    domains, _ = load_diagnosis_domains(school_of(user))

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_diagnosis_results_table(cursor)
        result = fetch_latest_diagnosis(cursor, user['email'], type)
        if not result:
            return {"result": None, "summary": None}
        return {"result": result, "summary": summarize_strengths(result, labels_from_domains(domains))}
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 검사 결과 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


# ==================== 자기역량 개발 계획서 API ====================

@app.get("/api/development-plans/latest")
async def get_latest_development_plan(request: Request):
    """가장 최근 계획서 + 작성률"""
    user = require_teacher(request)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_development_plans_table(cursor)
        plan = fetch_latest_plan(cursor, user['email'])
        return {
            "plan": plan,
            "fill_ratio": plan_fill_ratio(plan),
            "completed": is_plan_completed(plan),
        }
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 계획서 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


def insert_plan(cursor, record: dict) -> int:
    columns = list(record.keys())
    values = [to_json_text(record[c]) if c in LIST_FIELDS else record[c] for c in columns]
    cursor.execute(
        f"INSERT INTO development_plans ({', '.join(columns)}) VALUES ({', '.join(['%s'] * len(columns))})",
        values
    )
    return cursor.lastrowid


@app.post("/api/development-plans")
async def save_development_plan(data: dict, request: Request):
    """
    계획서 저장 (새 버전으로 추가)
    - 연간목표가 비어있으면 저장은 하되 경고 메시지 반환
    """
    user = require_teacher(request)
    email = user['email']
    school_name = school_of(user)
    if not school_name:
        raise HTTPException(status_code=400, detail="로그인 정보가 올바르지 않습니다.")

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_development_plans_table(cursor)
        ensure_school_point_settings_table(cursor)
        _, categories, labels = load_school_context(cursor, school_name)
        health_unit = next((c['unit'] for c in categories if c['key'] == 'health'), None)

        record = build_plan_record(data, email, school_name, health_unit)
        plan_id = insert_plan(cursor, record)
        conn.commit()

        missing = missing_annual_goals(record, labels)
        warning = missing_goals_warning(missing)
        if warning:
            print(f"[WARN] 계획서 연간목표 누락: {email} ({', '.join(missing)})")
        print(f"[OK] 계획서 저장: {email} (id={plan_id})")
        return {
            "id": plan_id,
            "missing_goals": missing,
            "warning": warning,
            "fill_ratio": plan_fill_ratio(record),
        }
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 계획서 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.patch("/api/development-plans/draft")
async def save_development_plan_draft(data: dict, request: Request):
    """AI 추천/수정 내용 임시 저장 (최근 계획서 갱신, 없으면 새로 생성)"""
    user = require_teacher(request)
    email = user['email']
    updates = draft_updates(data)
    if not updates:
        raise HTTPException(status_code=400, detail="저장할 내용이 없습니다.")

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_development_plans_table(cursor)
        existing = fetch_latest_plan(cursor, email)
        if existing:
            set_clause = ', '.join(f"{field} = %s" for field in updates)
            cursor.execute(
                f"UPDATE development_plans SET {set_clause} WHERE id = %s",
                list(updates.values()) + [existing['id']]
            )
            plan_id = existing['id']
        else:
            plan_id = insert_plan(cursor, build_plan_record(updates, email, school_of(user)))
        conn.commit()
        return {"id": plan_id, "updated": list(updates.keys())}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 계획서 임시 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


# ==================== 마일리지 API ====================

def validate_mileage_input(content, category) -> tuple:
    if category not in CATEGORY_KEYS:
        raise HTTPException(status_code=400, detail="올바른 영역(category)을 선택해주세요.")
    content = content.strip() if isinstance(content, str) else ''
    if not content:
        raise HTTPException(status_code=400, detail="내용을 입력해주세요.")
    return content, category


@app.get("/api/mileage-entries")
async def get_mileage_entries(request: Request):
    """마일리지 기록 목록 (기재양식 확인 결과 포함)"""
    user = require_teacher(request)
    email = user['email']
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        ensure_development_plans_table(cursor)
        ensure_school_point_settings_table(cursor)
        _, categories, _ = load_school_context(cursor, school_of(user))
        units = {c['key']: c['unit'] for c in categories}
        health_unit = health_goal_unit_of(fetch_latest_plan(cursor, email))

        entries = fetch_mileage_entries(cursor, email)
        for entry in entries:
            entry['valid_format'] = has_valid_mileage_format(
                entry.get('content'), entry.get('category'), health_unit, units.get(entry.get('category'))
            )
        return entries
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 마일리지 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.post("/api/mileage-entries")
async def create_mileage_entry(data: dict, request: Request):
    """마일리지 기록 추가"""
    user = require_teacher(request)
    content, category = validate_mileage_input(data.get('content'), data.get('category'))

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        cursor.execute("""
            INSERT INTO mileage_entries (user_email, content, category)
            VALUES (%s, %s, %s)
        """, (user['email'], content, category))
        entry_id = cursor.lastrowid
        conn.commit()
        return {"id": entry_id, "content": content, "category": category}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 마일리지 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.post("/api/mileage-entries/batch")
async def create_mileage_entries_batch(data: dict, request: Request):
    """AI 분류 결과 등 여러 건 일괄 추가 (잘못된 항목은 건너뜀)"""
    user = require_teacher(request)
    raw_entries = data.get('entries') if isinstance(data.get('entries'), list) else []
    valid = []
    for item in raw_entries:
        if not isinstance(item, dict):
            continue
        content = item.get('content')
        if item.get('category') in CATEGORY_KEYS and isinstance(content, str) and content.strip():
            valid.append((content.strip(), item['category']))
    if not valid:
        raise HTTPException(status_code=400, detail="저장할 마일리지 기록이 없습니다.")

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        ids = []
        for content, category in valid:
            cursor.execute("""
                INSERT INTO mileage_entries (user_email, content, category)
                VALUES (%s, %s, %s)
            """, (user['email'], content, category))
            ids.append(cursor.lastrowid)
        conn.commit()
        print(f"[OK] 마일리지 {len(ids)}건 일괄 저장: {user['email']}")
        return {"ids": ids, "saved": len(ids), "skipped": len(raw_entries) - len(ids)}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 마일리지 일괄 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.put("/api/mileage-entries/{entry_id}")
async def update_mileage_entry(entry_id: int, data: dict, request: Request):
    """마일리지 기록 수정"""
    user = require_teacher(request)
    content, category = validate_mileage_input(data.get('content'), data.get('category'))

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        if not fetch_owned_row(cursor, 'mileage_entries', entry_id, user['email']):
            raise HTTPException(status_code=404, detail="마일리지 기록을 찾을 수 없습니다.")
        cursor.execute("""
            UPDATE mileage_entries SET content = %s, category = %s WHERE id = %s
        """, (content, category, entry_id))
        conn.commit()
        return {"id": entry_id, "content": content, "category": category}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 마일리지 수정 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.put("/api/mileage-entries/{entry_id}/category")
async def move_mileage_entry(entry_id: int, data: dict, request: Request):
    """마일리지 기록을 다른 영역으로 이동"""
    user = require_teacher(request)
    category = data.get('category')
    if category not in CATEGORY_KEYS:
        raise HTTPException(status_code=400, detail="올바른 영역(category)을 선택해주세요.")

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        if not fetch_owned_row(cursor, 'mileage_entries', entry_id, user['email']):
            raise HTTPException(status_code=404, detail="마일리지 기록을 찾을 수 없습니다.")
        cursor.execute("UPDATE mileage_entries SET category = %s WHERE id = %s", (category, entry_id))
        conn.commit()
        return {"id": entry_id, "category": category}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 마일리지 영역 이동 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.delete("/api/mileage-entries/{entry_id}")
async def delete_mileage_entry(entry_id: int, request: Request):
    """마일리지 기록 삭제"""
    user = require_teacher(request)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        if not fetch_owned_row(cursor, 'mileage_entries', entry_id, user['email']):
            raise HTTPException(status_code=404, detail="마일리지 기록을 찾을 수 없습니다.")
        cursor.execute("DELETE FROM mileage_entries WHERE id = %s", (entry_id,))
        conn.commit()
        return {"message": "마일리지 기록이 삭제되었습니다"}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 마일리지 삭제 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.get("/api/mileage-progress")
async def get_mileage_progress(request: Request):
    """영역별 마일리지 진행률 + 직무연수·수업공개 난이도"""
    user = require_teacher(request)
    email = user['email']
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_mileage_entries_table(cursor)
        ensure_development_plans_table(cursor)
        ensure_school_point_settings_table(cursor)
        _, categories, _ = load_school_context(cursor, school_of(user))
        plan = fetch_latest_plan(cursor, email)
        plan_goals = plan_goals_from_row(plan)
        health_unit = health_goal_unit_of(plan)

        progress = compute_mileage_progress(fetch_mileage_entries(cursor, email), plan_goals, health_unit, categories)
        training_level = training_difficulty_level(plan_goals['training'])
        class_open_level = class_open_difficulty_level(plan_goals['class_open'])
        progress['health_goal_unit'] = health_unit
        progress['difficulty'] = {
            'training': {'level': training_level, 'stars': difficulty_stars(training_level)},
            'class_open': {'level': class_open_level, 'stars': difficulty_stars(class_open_level)},
        }
        return progress
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 마일리지 진행률 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


def collect_peer_goals(school_name: str) -> Dict[str, Dict[str, float]]:
    """같은 학교 교사별 최근 계획서 연간목표"""
    teachers = list_school_teachers(school_name)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_development_plans_table(cursor)
        peer_goals = {}
        for teacher in teachers:
            email = teacher.get('email') or ''
            goals = plan_goals_from_row(fetch_latest_plan(cursor, email))
            peer_goals[email] = {key: goals[key] for key in RELATIVE_DIFFICULTY_KEYS}
        return peer_goals
    finally:
        cursor.close()
        conn.close()


@app.post("/api/mileage-relative-difficulty")
async def get_mileage_relative_difficulty(request: Request):
    """
    같은 학교 교사 목표 대비 상대 난이도 (1=쉬움, 2=보통, 3=어려움)
    - 조회 중 오류가 나면 모두 보통(2)
    """
    user = require_teacher(request)
    school_name = school_of(user)
    if not school_name:
        levels = uniform_difficulty(2)
    else:
        try:
            levels = compute_relative_difficulty(collect_peer_goals(school_name), user['email'])
        except Exception as e:
            print(f"[ERROR] 상대 난이도 계산 실패, 기본값 사용: {e}")
            levels = uniform_difficulty(2)

    return {
        **levels,
        "stars": {key: relative_difficulty_stars(level) for key, level in levels.items()},
    }


# ==================== 일일 성찰 API ====================

def parse_reflection_date(value) -> str:
    try:
        return datetime.strptime(str(value or ''), '%Y-%m-%d').date().isoformat()
    except ValueError:
        raise HTTPException(status_code=400, detail="reflection_date는 YYYY-MM-DD 형식이어야 합니다.")


@app.get("/api/daily-reflections")
async def get_daily_reflections(request: Request):
    """일일 성찰 목록 (날짜 최신순)"""
    user = require_teacher(request)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_daily_reflections_table(cursor)
        cursor.execute("""
            SELECT id, reflection_date, content, created_at
            FROM daily_reflections
            WHERE user_email = %s
            ORDER BY reflection_date DESC, created_at DESC
        """, (user['email'],))
        return [convert_datetime(row) for row in cursor.fetchall()]
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 일일 성찰 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.post("/api/daily-reflections")
async def create_daily_reflection(data: dict, request: Request):
    """일일 성찰 추가 (내용 앞의 날짜 표기는 제거)"""
    user = require_teacher(request)
    reflection_date = parse_reflection_date(data.get('reflection_date'))
    content = strip_leading_date_prefix(data.get('content') if isinstance(data.get('content'), str) else '')
    if not content:
        raise HTTPException(status_code=400, detail="성찰 내용을 입력해주세요.")

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_daily_reflections_table(cursor)
        cursor.execute("""
            INSERT INTO daily_reflections (user_email, reflection_date, content)
            VALUES (%s, %s, %s)
        """, (user['email'], reflection_date, content))
        reflection_id = cursor.lastrowid
        conn.commit()
        return {"id": reflection_id, "reflection_date": reflection_date, "content": content}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 일일 성찰 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.put("/api/daily-reflections/{reflection_id}")
async def update_daily_reflection(reflection_id: int, data: dict, request: Request):
    """일일 성찰 수정"""
    user = require_teacher(request)
    reflection_date = parse_reflection_date(data.get('reflection_date'))
    content = strip_leading_date_prefix(data.get('content') if isinstance(data.get('content'), str) else '')
    if not content:
        raise HTTPException(status_code=400, detail="성찰 내용을 입력해주세요.")

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_daily_reflections_table(cursor)
        if not fetch_owned_row(cursor, 'daily_reflections', reflection_id, user['email']):
            raise HTTPException(status_code=404, detail="성찰 기록을 찾을 수 없습니다.")
        cursor.execute("""
            UPDATE daily_reflections SET reflection_date = %s, content = %s WHERE id = %s
        """, (reflection_date, content, reflection_id))
        conn.commit()
        return {"id": reflection_id, "reflection_date": reflection_date, "content": content}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 일일 성찰 수정 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.delete("/api/daily-reflections/{reflection_id}")
async def delete_daily_reflection(reflection_id: int, request: Request):
    """일일 성찰 삭제"""
    user = require_teacher(request)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_daily_reflections_table(cursor)
        if not fetch_owned_row(cursor, 'daily_reflections', reflection_id, user['email']):
            raise HTTPException(status_code=404, detail="성찰 기록을 찾을 수 없습니다.")
        cursor.execute("DELETE FROM daily_reflections WHERE id = %s", (reflection_id,))
        conn.commit()
        return {"message": "성찰 기록이 삭제되었습니다"}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 일일 성찰 삭제 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


# ==================== 결과 보고서 API ====================

@app.get("/api/reflection-drafts")
async def get_reflection_draft(request: Request):
    """목표 달성도/성찰 임시 저장본"""
    user = require_teacher(request)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_reflection_drafts_table(cursor)
        draft = fetch_reflection_draft(cursor, user['email']) or {}
        return {
            "goal_achievement_text": draft.get('goal_achievement_text') or '',
            "reflection_text": draft.get('reflection_text') or '',
            "updated_at": draft.get('updated_at'),
        }
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 성찰 임시 저장본 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.put("/api/reflection-drafts")
async def save_reflection_draft(data: dict, request: Request):
    """목표 달성도/성찰 임시 저장 (사용자당 1건)"""
    user = require_teacher(request)
    goal_text = str(data.get('goal_achievement_text') or '')
    reflection_text = str(data.get('reflection_text') or '')

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_reflection_drafts_table(cursor)
        cursor.execute("""
            INSERT INTO reflection_drafts (user_email, goal_achievement_text, reflection_text)
            VALUES (%s, %s, %s)
            ON DUPLICATE KEY UPDATE
                goal_achievement_text = VALUES(goal_achievement_text),
                reflection_text = VALUES(reflection_text)
        """, (user['email'], goal_text, reflection_text))
        conn.commit()
        return {"ok": True}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 성찰 임시 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


def validate_preference_key(pref_key: str):
    if pref_key not in PREFERENCE_KEYS:
        raise HTTPException(status_code=400, detail=f"지원하지 않는 설정 키입니다: {pref_key}")


@app.get("/api/user-preferences/{pref_key}")
async def get_user_preference(pref_key: str, request: Request):
    """보고서 근거 자료/내년 목표 등 사용자별 텍스트 조회"""
    validate_preference_key(pref_key)
    user = require_teacher(request)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_user_preferences_table(cursor)
        return {"pref_key": pref_key, "pref_value": fetch_preference(cursor, user['email'], pref_key) or ''}
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 사용자 설정 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.put("/api/user-preferences/{pref_key}")
async def save_user_preference(pref_key: str, data: dict, request: Request):
    """사용자별 텍스트 저장"""
    validate_preference_key(pref_key)
    user = require_teacher(request)
    value = str(data.get('value') or '')

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_user_preferences_table(cursor)
        cursor.execute("""
            INSERT INTO user_preferences (user_email, pref_key, pref_value)
            VALUES (%s, %s, %s)
            ON DUPLICATE KEY UPDATE pref_value = VALUES(pref_value)
        """, (user['email'], pref_key, value))
        conn.commit()
        return {"ok": True, "pref_key": pref_key}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 사용자 설정 저장 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


@app.get("/api/reflection/context")
async def get_reflection_context(request: Request):
    """결과 보고서 AI 요청에 쓰는 계획서 요약과 마일리지 기록 텍스트"""
    user = require_teacher(request)
    email = user['email']
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_development_plans_table(cursor)
        ensure_mileage_entries_table(cursor)
        ensure_school_point_settings_table(cursor)
        _, _, labels = load_school_context(cursor, school_of(user))
        return {
            "plan_summary": format_plan_summary(fetch_latest_plan(cursor, email)),
            "mileage_text": format_mileage_text(fetch_mileage_entries(cursor, email), labels),
        }
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 보고서 자료 조회 실패: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        cursor.close()
        conn.close()


# ==================== 열정 포인트 API ====================

@app.post("/api/points/init")
async def init_points(request: Request):
    """가입 시 기본 100점 부여"""
    user = get_current_user(request)
    row = initial_points_row(user['email'])

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_user_points_table(cursor)
        cursor.execute("""
            INSERT INTO user_points (user_email, base_points, login_points, last_login_date, login_points_that_day)
            VALUES (%s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE
                base_points = VALUES(base_points),
                login_points = VALUES(login_points),
                last_login_date = VALUES(last_login_date),
                login_points_that_day = VALUES(login_points_that_day)
        """, (row['user_email'], row['base_points'], row['login_points'],
              row['last_login_date'], row['login_points_that_day']))
        conn.commit()
        return {"ok": True, "base_points": row['base_points']}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 포인트 초기화 실패: {e}")
        raise HTTPException(status_code=500, detail="포인트 초기화에 실패했습니다.")
    finally:
        cursor.close()
        conn.close()


@app.post("/api/points/login")
async def add_login_points(request: Request):
    """하루 첫 로그인 시 학교 설정 점수만큼 포인트 추가 (날짜 기준: UTC)"""
    user = get_current_user(request)
    email = user['email']
    today = datetime.now(timezone.utc).date().isoformat()

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_user_points_table(cursor)
        ensure_school_point_settings_table(cursor)
        row = fetch_user_points(cursor, email)
        points_settings, _, _ = load_school_context(cursor, school_of(user))

        added, new_row = apply_daily_login(row, email, today, login_points_per_day(points_settings))
        if new_row is None:
            return {"added": 0, "login_points": (row or {}).get('login_points') or 0, "message": None}

        cursor.execute("""
            INSERT INTO user_points (user_email, base_points, login_points, last_login_date, login_points_that_day)
            VALUES (%s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE
                base_points = VALUES(base_points),
                login_points = VALUES(login_points),
                last_login_date = VALUES(last_login_date),
                login_points_that_day = VALUES(login_points_that_day)
        """, (email, new_row['base_points'], new_row['login_points'],
              new_row['last_login_date'], new_row['login_points_that_day']))
        conn.commit()
        return {"added": added, "login_points": new_row['login_points'], "message": login_message(added)}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 로그인 포인트 반영 실패: {e}")
        raise HTTPException(status_code=500, detail="포인트 반영에 실패했습니다.")
    finally:
        cursor.close()
        conn.close()


@app.get("/api/points/me")
async def get_my_points(request: Request):
    """내 열정 포인트 (기본 + 로그인 + 마일리지)"""
    user = get_current_user(request)
    email = user['email']
    school_name = school_of(user)

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_user_points_table(cursor)
        row = fetch_user_points(cursor, email)
        breakdown = []
        if school_name:
            ensure_school_point_settings_table(cursor)
            ensure_mileage_entries_table(cursor)
            ensure_development_plans_table(cursor)
            points_settings, categories, _ = load_school_context(cursor, school_name)
            health_unit = health_goal_unit_of(fetch_latest_plan(cursor, email))
            breakdown = mileage_breakdown(fetch_mileage_entries(cursor, email), points_settings, categories, health_unit)
        return points_summary(row, breakdown)
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 포인트 조회 실패: {e}")
        raise HTTPException(status_code=500, detail="처리 중 오류가 발생했습니다.")
    finally:
        cursor.close()
        conn.close()


# ==================== AI API ====================

@app.post("/api/ai-recommend")
async def ai_recommend(data: dict, request: Request):
    """
    유형별 AI 추천 문장 생성
    - goal / effect / analysis / analysis_post / mentor / result_report / plan_outline / plan_fill_rows
    - plan_fill_rows 는 {"rows": [...]} 반환
    """
    get_current_user(request)
    try:
        prompt = build_recommend_prompt(data)
    except PromptInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if data.get('type') == 'effect' and not is_plan_sufficient_for_effect(data):
        return {"recommendation": EFFECT_INSUFFICIENT_MESSAGE}

    text = generate_text(prompt)
    if not text:
        raise HTTPException(status_code=500, detail="AI 추천 결과가 비어있습니다.")

    if data.get('type') == 'plan_fill_rows':
        try:
            return {"rows": parse_fill_rows(text)}
        except ValueError as e:
            print(f"[ERROR] plan_fill_rows 파싱 실패: {e}")
            raise HTTPException(status_code=500, detail="AI가 반환한 형식을 파싱할 수 없습니다.")
    return {"recommendation": text}


@app.post("/api/ai-classify-mileage")
async def ai_classify_mileage(data: dict, request: Request):
    """자유 입력 텍스트를 활동별로 나누어 6개 영역으로 분류"""
    get_current_user(request)
    text = data.get('text').strip() if isinstance(data.get('text'), str) else ''
    if not text:
        raise HTTPException(status_code=400, detail="입력할 내용(text)을 입력해주세요.")

    raw = generate_text(build_classify_prompt(text, today_label()), temperature=0.2)
    try:
        return {"entries": parse_classified_entries(raw)}
    except ValueError as e:
        print(f"[ERROR] 마일리지 분류 결과 파싱 실패: {e}")
        raise HTTPException(status_code=500, detail=f"분류 실패: {e}")


@app.post("/api/ai-refine-mileage")
async def ai_refine_mileage(data: dict, request: Request):
    """마일리지 기록 원문을 한 줄에 한 건씩 정리"""
    get_current_user(request)
    text = data.get('text').strip() if isinstance(data.get('text'), str) else ''
    if not text:
        raise HTTPException(status_code=400, detail="정리할 내용(text)을 입력해주세요.")

    raw = generate_text(build_refine_prompt(text, today_label()), temperature=0.2)
    return {"refined": parse_refined_lines(raw, text)}


@app.post("/api/ai-summarize-reflections")
async def ai_summarize_reflections(data: dict, request: Request):
    """일일 성찰 기록 요약"""
    get_current_user(request)
    reflections = data.get('reflections')
    if not isinstance(reflections, str) or not reflections.strip():
        raise HTTPException(status_code=400, detail="일일성찰 기록 내용을 제공해주세요.")

    summary = generate_text(build_reflection_summary_prompt(reflections))
    if not summary:
        raise HTTPException(status_code=500, detail="AI 요약 결과가 비어있습니다.")
    return {"summary": summary}


# ==================== 관리자 API ====================

@app.post("/api/admin/verify-code")
async def verify_admin_code(data: dict):
    """관리자 가입 인증코드 확인"""
    code = data.get('code')
    code = code.strip() if isinstance(code, str) else ''
    if not code or code != ADMIN_CODE:
        return JSONResponse(status_code=401, content={"ok": False, "error": "관리자 인증코드가 올바르지 않습니다."})
    return {"ok": True}


@app.post("/api/admin/count-by-school")
async def count_admins_by_school(data: dict):
    """학교별 관리자 수 (가입 시 중복 관리자 확인용)"""
    school_name = data.get('schoolName')
    if not school_name or not isinstance(school_name, str):
        raise HTTPException(status_code=400, detail="schoolName은 필수입니다.")
    trimmed = school_name.strip()
    admin_count = sum(
        1 for u in list_all_users()
        if has_role(metadata_of(u), 'admin') and school_of(u) == trimmed
    )
    return {"adminCount": admin_count}


def admin_school_from_body(request: Request, data: dict) -> str:
    """관리자 소속 학교 (요청 schoolName 이 다르면 거부)"""
    _, school_name = require_admin_school(request)
    requested = data.get('schoolName')
    if isinstance(requested, str) and requested.strip() and requested.strip() != school_name:
        raise HTTPException(status_code=403, detail="같은 학교 소속만 조회할 수 있습니다.")
    return school_name


@app.post("/api/admin/teachers")
async def list_teachers(data: dict, request: Request):
    """소속 학교 교원 목록"""
    school_name = admin_school_from_body(request, data)
    teachers = [
        {
            "id": u.get('id'),
            "email": u.get('email'),
            "name": metadata_of(u).get('name') or '',
            "school_name": school_of(u),
            "created_at": u.get('created_at'),
        }
        for u in list_school_teachers(school_name)
    ]
    return {"teachers": teachers}


def build_teacher_summary(cursor, teacher: dict, categories: List[dict]) -> dict:
    """교원 1명의 진행 현황 (검사/계획서/성찰/마일리지 진행률)"""
    email = teacher.get('email') or ''
    meta = metadata_of(teacher)
    plan = fetch_latest_plan(cursor, email)
    progress = compute_mileage_progress(
        fetch_mileage_entries(cursor, email),
        plan_goals_from_row(plan),
        health_goal_unit_of(plan),
        categories,
    )
    return {
        "id": teacher.get('id'),
        "email": email,
        "name": meta.get('name') or '',
        "school_name": school_of(teacher),
        "created_at": teacher.get('created_at') or '',
        "grade_class": meta.get('gradeClass') or meta.get('schoolLevel') or '',
        "has_pre_diagnosis": fetch_latest_diagnosis(cursor, email, 'pre') is not None,
        "has_post_diagnosis": fetch_latest_diagnosis(cursor, email, 'post') is not None,
        "plan_completed": is_plan_completed(plan),
        "reflection_done": fetch_reflection_draft(cursor, email) is not None,
        "mileage_summary": {
            "overall_progress": progress['overall_progress'],
            "categories": [
                {"key": c['key'], "label": c['label'], "progress": c['progress']}
                for c in progress['categories']
            ],
        },
    }


def collect_teacher_summaries(school_name: str) -> List[dict]:
    teachers = list_school_teachers(school_name)
    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_all_tables(cursor)
        _, categories, _ = load_school_context(cursor, school_name)
        return [build_teacher_summary(cursor, t, categories) for t in teachers]
    finally:
        cursor.close()
        conn.close()


@app.post("/api/admin/teacher-summaries")
async def get_teacher_summaries(data: dict, request: Request):
    """소속 학교 교원별 진행 현황"""
    school_name = admin_school_from_body(request, data)
    try:
        return {"teachers": collect_teacher_summaries(school_name)}
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 교원 현황 조회 실패: {e}")
        raise HTTPException(status_code=500, detail="요청 처리 중 오류가 발생했습니다.")


def summaries_to_dataframe(summaries: List[dict]) -> pd.DataFrame:
    """교원 현황 → 엑셀 출력용 DataFrame"""
    rows = []
    for s in summaries:
        row = {
            '이름': s['name'],
            '이메일': s['email'],
            '학년/반': s['grade_class'],
            '사전검사': 'O' if s['has_pre_diagnosis'] else 'X',
            '사후검사': 'O' if s['has_post_diagnosis'] else 'X',
            '계획서 완료': 'O' if s['plan_completed'] else 'X',
            '성찰 작성': 'O' if s['reflection_done'] else 'X',
            '전체 진행률(%)': s['mileage_summary']['overall_progress'],
        }
        for c in s['mileage_summary']['categories']:
            row[f"{c['label']}(%)"] = round(c['progress'], 1)
        rows.append(row)
    return pd.DataFrame(rows)


@app.get("/api/admin/teacher-summaries/export")
async def export_teacher_summaries(request: Request):
    """소속 학교 교원별 진행 현황 엑셀 다운로드"""
    _, school_name = require_admin_school(request)
    try:
        df = summaries_to_dataframe(collect_teacher_summaries(school_name))
        output = io.BytesIO()
        df.to_excel(output, index=False, sheet_name='교원현황', engine='openpyxl')
        output.seek(0)
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 교원 현황 엑셀 생성 실패: {e}")
        raise HTTPException(status_code=500, detail=f"내보내기 실패: {str(e)}")

    print(f"[OK] 교원 현황 엑셀 생성: {school_name} ({len(df)}명)")
    return StreamingResponse(
        output,
        media_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        headers={
            'Content-Disposition': f'attachment; filename=teacher_summaries_{datetime.now().strftime("%Y%m%d_%H%M%S")}.xlsx'
        }
    )


@app.post("/api/admin/verify-teacher-email")
async def verify_teacher_email(data: dict, request: Request):
    """같은 학교 교원 이메일 확인"""
    _, school_name = require_admin_school(request)
    teacher = find_school_teacher(data.get('email'), school_name)
    return {
        "ok": True,
        "email": teacher.get('email'),
        "name": metadata_of(teacher).get('name') or '',
        "school_name": school_name,
    }


@app.post("/api/admin/plan-by-email")
async def get_plan_by_email(data: dict, request: Request):
    """같은 학교 교원의 최근 계획서 + 사전검사 강점/약점"""
    _, school_name = require_admin_school(request)
    teacher = find_school_teacher(data.get('email'), school_name)
    email = teacher['email']
    domains, _ = load_diagnosis_domains(school_name)

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_development_plans_table(cursor)
        ensure_diagnosis_results_table(cursor)
        plan = fetch_latest_plan(cursor, email)
        pre = fetch_latest_diagnosis(cursor, email, 'pre')
        return {
            "ok": True,
            "name": metadata_of(teacher).get('name') or '',
            "school_name": school_name,
            "plan": plan,
            "diagnosis_summary": summarize_strengths(pre, labels_from_domains(domains)) if pre else None,
        }
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 교원 계획서 조회 실패: {e}")
        raise HTTPException(status_code=500, detail="요청 처리 중 오류가 발생했습니다.")
    finally:
        cursor.close()
        conn.close()


@app.post("/api/admin/result-report-by-email")
async def get_result_report_by_email(data: dict, request: Request):
    """같은 학교 교원의 결과 보고서 자료"""
    _, school_name = require_admin_school(request)
    teacher = find_school_teacher(data.get('email'), school_name)
    email = teacher['email']

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_all_tables(cursor)
        draft = fetch_reflection_draft(cursor, email) or {}
        return {
            "ok": True,
            "email": email,
            "name": metadata_of(teacher).get('name') or '',
            "school_name": school_name,
            "pre_result": fetch_latest_diagnosis(cursor, email, 'pre'),
            "post_result": fetch_latest_diagnosis(cursor, email, 'post'),
            "mileage_entries": fetch_mileage_entries(cursor, email),
            "goal_achievement_text": draft.get('goal_achievement_text') or '',
            "reflection_text": draft.get('reflection_text') or '',
            "evidence_text": fetch_preference(cursor, email, 'reflection_evidence_text') or '',
            "next_year_goal_text": fetch_preference(cursor, email, 'reflection_next_year_goal') or '',
        }
    except HTTPException:
        raise
    except Exception as e:
        print(f"[ERROR] 결과 보고서 조회 실패: {e}")
        raise HTTPException(status_code=500, detail="요청 처리 중 오류가 발생했습니다.")
    finally:
        cursor.close()
        conn.close()


@app.post("/api/admin/reset-password")
async def reset_password(data: dict, request: Request):
    """같은 학교 회원 비밀번호 초기화"""
    _, school_name = require_admin_school(request)
    user_id = data.get('userId')
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(status_code=400, detail="userId가 필요합니다.")

    try:
        target = auth_client.get_user_by_id(user_id)
    except (AuthServiceError, requests.RequestException) as e:
        print(f"[ERROR] 회원 조회 실패: {e}")
        raise HTTPException(status_code=500, detail="요청 처리 중 오류가 발생했습니다.")
    if not target:
        raise HTTPException(status_code=404, detail="해당 회원을 찾을 수 없습니다.")
    if school_of(target) != school_name:
        raise HTTPException(status_code=403, detail="같은 학교 소속 회원만 초기화할 수 있습니다.")

    try:
        auth_client.update_user_by_id(user_id, password=RESET_PASSWORD)
    except (AuthServiceError, requests.RequestException) as e:
        print(f"[ERROR] 비밀번호 초기화 실패: {e}")
        raise HTTPException(status_code=500, detail="비밀번호 초기화에 실패했습니다.")

    print(f"[OK] 비밀번호 초기화: {target.get('email')}")
    return {"ok": True, "message": f"비밀번호가 {RESET_PASSWORD}으로 초기화되었습니다."}


@app.get("/api/admin/diagnosis-settings")
async def get_admin_diagnosis_settings(request: Request):
    """우리 학교 사전/사후검사 문항 조회 (관리자)"""
    user = require_admin(request)
    domains, title = load_diagnosis_domains(school_of(user))
    return {"domains": domains, "title": title}


@app.post("/api/admin/diagnosis-settings")
async def save_admin_diagnosis_settings(data: dict, request: Request):
    """우리 학교 사전/사후검사 문항 저장 (포인트 설정은 유지)"""
    user = require_admin(request)
    school_name = school_of(user)
    if not school_name:
        raise HTTPException(status_code=400, detail="학교 정보가 없습니다.")

    title = data.get('title').strip() if isinstance(data.get('title'), str) else ''
    try:
        domains = normalize_diagnosis_domains_input(data.get('domains'))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    conn = get_db_connection()
    cursor = conn.cursor(pymysql.cursors.DictCursor)
    try:
        ensure_school_point_settings_table(cursor)
        existing = fetch_school_settings_json(cursor, school_name)
        save_school_settings_json(
            cursor, school_name,
            merge_settings(existing, diagnosisDomains=domains, diagnosisTitle=title)
        )
        conn.commit()
        print(f"[OK] 검사 문항 저장: {school_name}")
        return {"ok": True, "domains": domains, "title": title}
    except HTTPException:
        raise
    except Exception as e:
        conn.rollback()
        print(f"[ERROR] 검사 문항 저장 실패: {e}")
        raise HTTPException(status_code=500, detail="저장에 실패했습니다.")
    finally:
        cursor.close()
        conn.close()


# ==================== 개발 환경 점검 API ====================

@app.get("/api/check-env")
async def check_env():
    """환경 변수 설정·연결 상태 확인 (개발 환경 전용, 키 값은 반환하지 않음)"""
    if APP_ENV != 'development':
        raise HTTPException(status_code=404, detail="Not available")

    env_keys = [
        'DB_HOST', 'DB_USER', 'DB_NAME',
        'SUPABASE_URL', 'SUPABASE_ANON_KEY', 'SUPABASE_SERVICE_ROLE_KEY',
        'GEMINI_API_KEY', 'GEMINI_API_KEY_1', 'ADMIN_CODE',
    ]
    status = {key: '설정됨' if (os.getenv(key) or '').strip() else '비어있음' for key in env_keys}
    key_count = len(load_gemini_keys())
    status['GEMINI(사용가능)'] = '설정됨' if key_count else '비어있음'
    status['GEMINI_로테이션키수'] = f"{key_count}개 (로테이션 적용)" if key_count >= 2 else f"{key_count}개"

    connectivity = {}
    try:
        conn = get_db_connection()
        conn.close()
        connectivity['database'] = 'ok'
    except HTTPException:
        connectivity['database'] = 'fail'
    connectivity['supabase'] = ('ok' if auth_client.check_health() else 'fail') if auth_client.is_configured() else 'skip'
    if gemini_client.has_keys():
        try:
            gemini_client.generate("1", max_tokens=8)
            connectivity['gemini'] = 'ok'
        except (GeminiAPIError, requests.RequestException) as e:
            print(f"[WARN] Gemini 연결 확인 실패: {e}")
            connectivity['gemini'] = 'fail'
    else:
        connectivity['gemini'] = 'skip'

    return {
        "env": status,
        "connectivity": connectivity,
        "note": "키 값은 반환되지 않으며, 개발 환경에서만 동작합니다.",
    }


@app.on_event("startup")
async def startup_event():
    """서버 시작 시 실행"""
    print("\n" + "="*60)
    print("🚀 교원성장메이트 백엔드 서버 시작")
    print("="*60)

    try:
        conn = get_db_connection()
        cursor = conn.cursor()
        ensure_all_tables(cursor)
        conn.commit()
        cursor.close()
        conn.close()
    except HTTPException as e:
        print(f"[WARN] 시작 시 테이블 확인 실패: {e.detail}")

    groups = {'👩‍🏫 교원 API': [], '🛠 관리자 API': [], '🤖 AI API': []}
    for route in app.routes:
        if hasattr(route, 'path') and hasattr(route, 'methods') and route.path.startswith('/api'):
            line = f"  {', '.join(sorted(route.methods))} {route.path}"
            if route.path.startswith('/api/admin'):
                groups['🛠 관리자 API'].append(line)
            elif route.path.startswith('/api/ai-'):
                groups['🤖 AI API'].append(line)
            else:
                groups['👩‍🏫 교원 API'].append(line)

    print("\n📋 등록된 API 엔드포인트:")
    for title, lines in groups.items():
        print(f"\n{title}:")
        for line in sorted(lines):
            print(line)

    if not auth_client.is_configured():
        print("\n⚠️  SUPABASE_URL / SUPABASE_ANON_KEY 미설정: 인증이 필요한 API는 503을 반환합니다.")
    if not gemini_client.has_keys():
        print("⚠️  GEMINI_API_KEY 미설정: AI 기능이 비활성화됩니다.")
    print("="*60 + "\n")


if __name__ == "__main__":
    import uvicorn

    print("\n" + "="*60)
    print("✅ 서버 URL: http://localhost:8000")
    print("📚 API 문서: http://localhost:8000/docs")
    print("="*60 + "\n")

    uvicorn.run(app, host="0.0.0.0", port=8000)
