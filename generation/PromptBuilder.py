# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-07
# Description: PromptBuilder
# -----------------------------------------------------------------------------
import json
from typing import Iterable, List, Optional, Sequence, Tuple

import settings
from model.EmbeddingRecord import CategoryLevel, path_to_string
from userprofile.ProfileProvider import UserProfile

INTEREST_SYSTEM_PROMPT = """
당신은 사용자의 관심사를 분석하고 개인화된 추천을 제공하는 전문가입니다.
사용자의 프로필 정보와 이미 선택한 관심사를 종합적으로 분석하여,
해당 사용자에게 가장 적합하고 연관성 높은 관심사를 정확하게 추천해야 합니다.

## 추천 규칙
1. 사용자 맞춤형: 사용자의 나이, 성별, 직업에 적합한 관심사를 추천합니다.
2. 연관성: 제공된 관심사와 명확한 연관성이 있어야 합니다.
3. 중복 제거: 제외 목록에 있는 항목은 절대 추천하지 않습니다.
4. 정확한 개수: 요청된 개수만큼 정확히 추천합니다.
5. 명확성: 각 추천 항목은 간결하고 명확해야 합니다 (2-10자).
6. 다양성: 비슷한 항목은 피하고 다양하게 추천합니다.

## 응답 형식
반드시 JSON 객체 하나로만 응답하세요.
형식: {"interests": [{"name": "항목1"}, {"name": "항목2"}]}
""".strip()

MISSION_SYSTEM_PROMPT = """
당신은 미션 추천 AI입니다.

【필수 규칙】
1. 요청된 difficulty 각각에 대해 정확히 1개씩만 생성 (중복 금지)
2. content는 10-30자
3. JSON만 출력 (마크다운, 설명 금지)

【출력 형식】
{"missions":[{"content":"미션","relatedInterest":["대","중","소"],"difficulty":1}]}
""".strip()

LABEL_SYSTEM_PROMPT = "당신은 미션 내용을 분석하여 대표 라벨(그룹명)을 생성하는 전문가입니다."

DIFFICULTY_RUBRIC = """
===== 난이도 기준 (하루 안에 완료 가능해야 함) =====
- 난이도 1 (초등학생): 5-10분, 아주 간단한 활동
- 난이도 2 (중학생): 15-30분, 기본적인 노력 필요
- 난이도 3 (고등학생): 30분-1시간, 집중력과 계획 필요
- 난이도 4 (대학생): 1-2시간, 전문 지식/기술 필요
- 난이도 5 (직장인): 2-3시간, 높은 전문성 필요
""".strip()

MISSION_QUALITY_RULES = """
===== 좋은 미션 (필수) =====
- 구체적이고 측정 가능 (횟수, 시간, 개수 등 수치 포함)
- 하루 안에 완료 가능
예: "영어 단어 20개 암기", "스쿼트 3세트×15회", "책 50페이지 읽기"

===== 나쁜 미션 (금지) =====
- 모호함: "운동하기", "공부하기"
- 장기 목표: "한 달간 다이어트"
- 일회성: "헬스장 등록하기"
- 측정 불가: "건강해지기"
""".strip()

_LEVEL_NAMES = {
    CategoryLevel.MAIN: "대분류",
    CategoryLevel.MIDDLE: "중분류",
    CategoryLevel.SUB: "소분류(세부 활동)",
}


def _unique_texts(texts: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for t in texts:
        t = (t or "").strip()
        if t and t not in seen:
            seen.add(t)
            out.append(t)
    return out


class PromptBuilder:
    """Builds (system, user) prompt pairs for the three generation contracts."""

    @staticmethod
    def exclusion_block(exclusions: Sequence[str], tag: str = "EXCLUDED") -> str:
        items = _unique_texts(exclusions)
        if not items:
            return ""
        listing = "\n".join(f"- {t}" for t in items)
        return (
            "###############################################\n"
            "# 중요: 아래 항목들은 절대 추천하지 마세요 #\n"
            "###############################################\n"
            f"<{tag}>\n{listing}\n</{tag}>\n"
            "위 목록과 동일하거나 유사한 항목은 제외하세요."
        )

    @staticmethod
    def interest_prompt(
            selected_paths: Sequence[Tuple[str, ...]],
            level: int,
            exclusions: Sequence[str],
            count: int,
            profile: Optional[UserProfile],
    ) -> Tuple[str, str]:
        lines: List[str] = list(profile.to_prompt_lines()) if profile else []

        level_name = _LEVEL_NAMES.get(CategoryLevel(level), str(level))
        if selected_paths:
            lines.append("")
            lines.append("사용자가 선택한 관심사:")
            lines.extend(f"- {path_to_string(p)}" for p in selected_paths)
            parent = path_to_string(selected_paths[0][:max(level - 1, 0)])
            lines.append("")
            if parent:
                lines.append(f"추천 요청: '{parent}'의 {level_name} 관심사")
            else:
                lines.append(f"추천 요청: {level_name} 관심사")
            if level == CategoryLevel.SUB:
                lines.append("중요: 소분류는 구체적인 활동이나 목표여야 합니다.")
        else:
            lines.append("")
            lines.append(f"추천 요청: {level_name} 관심사")

        block = PromptBuilder.exclusion_block(exclusions, tag="EXCLUDED_INTERESTS")
        if block:
            lines.append("")
            lines.append(block)

        lines.append("")
        lines.append(f"정확히 {count}개만 추천해주세요.")
        return INTEREST_SYSTEM_PROMPT, "\n".join(lines).strip()

    @staticmethod
    def mission_prompt(
            category_path: Tuple[str, ...],
            difficulties: Sequence[int],
            exclusions: Sequence[str],
            profile: Optional[UserProfile],
            *,
            retry: bool = False,
    ) -> Tuple[str, str]:
        difficulties = sorted(set(difficulties))
        lines: List[str] = list(profile.to_prompt_lines()) if profile else []
        lines.append(f"관심사: [{path_to_string(category_path)}]")
        lines.append("")
        lines.append("===== 생성 요청 =====")
        lines.append(
            f"난이도 {', '.join(str(d) for d in difficulties)} 각각 1개씩, "
            f"총 {len(difficulties)}개의 미션을 생성하세요."
        )
        if retry:
            lines.append("이전 응답에서 난이도가 빠지거나 중복되었습니다. 각 난이도가 정확히 1번씩만 나오도록 하세요!")

        block = PromptBuilder.exclusion_block(exclusions, tag="EXCLUDED_MISSIONS")
        if block:
            lines.append("")
            lines.append(block)

        example = {
            "missions": [
                {"content": "미션내용", "relatedInterest": list(category_path), "difficulty": d}
                for d in difficulties
            ]
        }
        lines.append("")
        lines.append(DIFFICULTY_RUBRIC)
        lines.append("")
        lines.append(MISSION_QUALITY_RULES)
        lines.append("")
        lines.append("===== 응답 형식 (JSON만 출력) =====")
        lines.append(json.dumps(example, ensure_ascii=False))
        return MISSION_SYSTEM_PROMPT, "\n".join(lines).strip()

    @staticmethod
    def label_prompt(context_path: Sequence[str], content: str) -> Tuple[str, str]:
        path_text = path_to_string(context_path) if context_path else "없음"
        user = f"""
미션 내용을 분석하여 대표 라벨(그룹명)을 생성해주세요.

[규칙]
- 구체적인 숫자, 시간, 횟수는 제외하고 핵심 행동만 추출
- 하나의 활동만 (쉼표나 나열 금지)
- 동의어는 가장 일반적인 하나의 표현으로 통일
- {settings.LABEL_MAX_CHARS}자 이내의 간결한 명사형으로 작성

[예시]
- "영어 단어 20개 외우기" → 영어 단어 외우기
- "30분 조깅하기" → 조깅하기
- "물 2L 마시기" → 물 마시기

[관심사 경로]
{path_text}

[미션 내용]
{content}

응답 형식: {{"label": "라벨"}}
""".strip()
        return LABEL_SYSTEM_PROMPT, user
