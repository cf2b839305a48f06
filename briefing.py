"""Personalized coin briefings: prompt and response schema for Gemini.

The client posts ``{"lang": "ko" | "en", "coins": [...]}``. The gateway turns
that into a Gemini request that uses Google Search for current news and asks
for JSON matching :func:`build_response_schema`.
"""
import logging
from typing import Any, Dict, List, Optional

from flask import jsonify

from gateway import ConfigLookup, MISSING_KEY_MESSAGE, forward, redact, resolve_api_key

logger = logging.getLogger("oracoin-gateway")

# ----------------------
# Prompt data
# ----------------------
DISCLAIMERS = {
    "ko": "면책 조항: 본 분석은 정보 제공 목적으로만 제공되며, 투자 조언이 아닙니다. 모든 투자 결정에 대한 책임은 본인에게 있습니다.",
    "en": "Disclaimer: This analysis is for informational purposes only and does not constitute financial advice. You are solely responsible for your own investment decisions.",
}

RECOMMENDATIONS = {
    "ko": ("매수 고려", "중립/관망", "매도/주의"),
    "en": ("Consider Buying", "Neutral/Watch", "Sell/Caution"),
}

PROMPT_TEMPLATES = {
    "ko": (
        "당신은 'Oracoin' 서비스의 수석 금융 분석 AI입니다. "
        "사용자가 선택한 다음 암호화폐에 대한 개인화된 뉴스레터 분석을 생성해야 합니다: {coins}. "
        "각 코인에 대해, 반드시 제공된 JSON 스키마 구조에 따라 응답을 생성해주세요. "
        "분석 내용은 최신 뉴스와 시장 데이터를 기반으로 해야 하며, 구체적이고 데이터 중심적이어야 합니다. "
        "일반적인 내용은 피해주세요. "
        "'recommendation'은 '{rec[0]}', '{rec[1]}', '{rec[2]}' 중 하나여야 합니다. "
        "'priceTarget'은 단기적인 관점에서 현실적인 목표 가격 또는 범위를 제시해야 합니다. "
        "모든 분석의 'opinion' 필드 끝에는 \"{disclaimer}\" 라는 문구를 반드시 포함시켜 주세요."
    ),
    "en": (
        "You are a senior financial analyst AI for a service called 'Oracoin'. "
        "You must generate a personalized newsletter analysis for the following cryptocurrencies "
        "selected by the user: {coins}. "
        "For each coin, you MUST generate a response following the provided JSON schema. "
        "Your analysis must be based on the latest news and market data, be specific, and data-driven. "
        "Avoid generic statements. "
        "The 'recommendation' must be one of: '{rec[0]}', '{rec[1]}', or '{rec[2]}'. "
        "The 'priceTarget' should provide a realistic short-term target price or range. "
        "At the end of the 'opinion' field for every analysis, you MUST include the disclaimer: "
        "\"{disclaimer}\""
    ),
}

COINS_REQUIRED_MESSAGE = "Coin list is required for analysis."
UPSTREAM_FAILED_MESSAGE = "Failed to fetch from Gemini API."
INTERNAL_ERROR_MESSAGE = "Internal server error."


# ----------------------
# Request shaping
# ----------------------
def resolve_lang(lang: Any) -> str:
    # Anything but the literal Korean code gets the English prompt.
    return "ko" if lang == "ko" else "en"


def _coin_text(coin: Any) -> str:
    """Render a coin entry the way the browser client would join it."""
    if coin is None:
        return ""
    if isinstance(coin, bool):
        return "true" if coin else "false"
    if isinstance(coin, float) and coin.is_integer():
        return str(int(coin))
    return str(coin)


def build_prompt(lang: Any, coins: List[Any]) -> str:
    lang = resolve_lang(lang)
    coin_list = ", ".join(_coin_text(coin) for coin in coins)
    return PROMPT_TEMPLATES[lang].format(
        coins=coin_list,
        rec=RECOMMENDATIONS[lang],
        disclaimer=DISCLAIMERS[lang],
    )


def build_response_schema() -> Dict[str, Any]:
    """Shape Gemini must answer in: one analysis object per coin."""
    return {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": {
                "coinName": {"type": "STRING", "description": "암호화폐의 이름 (예: Bitcoin)"},
                "analysis": {
                    "type": "OBJECT",
                    "properties": {
                        "opinion": {
                            "type": "STRING",
                            "description": "뉴스 및 시장 데이터에 기반한 전문가 의견 및 면책 조항.",
                        },
                        "recommendation": {
                            "type": "STRING",
                            "description": "'매수 고려', '중립/관망', '매도/주의' 중 하나.",
                        },
                        "priceTarget": {"type": "STRING", "description": "단기 목표 가격 또는 가격 범위."},
                    },
                },
                "relatedNews": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "title": {"type": "STRING", "description": "관련 뉴스 기사의 제목"},
                            "url": {"type": "STRING", "description": "뉴스 원문 링크"},
                        },
                    },
                },
            },
            "required": ["coinName", "analysis", "relatedNews"],
        },
    }


def build_payload(lang: Any, coins: List[Any]) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": build_prompt(lang, coins)}]}],
        "tools": [{"google_search": {}}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": build_response_schema(),
        },
    }


def validate_coins(body: Any) -> Optional[List[Any]]:
    """Return the coin list if the body carries a non-empty one."""
    if not isinstance(body, dict):
        return None
    coins = body.get("coins")
    if not isinstance(coins, list) or not coins:
        return None
    return coins


# ----------------------
# Error mapping
# ----------------------
def _error(message: str, status: int):
    return jsonify({"error": message}), status


def hide_upstream_error(resp):
    logger.error("Gemini API Error: %s", resp.text)
    return _error(UPSTREAM_FAILED_MESSAGE, resp.status_code)


# ----------------------
# Handler
# ----------------------
def handle_briefing(request, get_config: ConfigLookup, *, url: str, timeout: Optional[float] = None):
    """Build a coin briefing request and relay Gemini's answer."""
    body = request.get_json(force=True, silent=True)

    coins = validate_coins(body)
    if coins is None:
        return _error(COINS_REQUIRED_MESSAGE, 400)

    api_key = resolve_api_key(get_config)
    if not api_key:
        return _error(MISSING_KEY_MESSAGE, 500)

    def internal_error(exc: Exception):
        logger.error("Error in API gateway: %s: %s", type(exc).__name__, redact(str(exc), api_key))
        return _error(INTERNAL_ERROR_MESSAGE, 500)

    try:
        payload = build_payload(body.get("lang"), coins)
    except Exception as e:
        return internal_error(e)

    return forward(
        payload,
        api_key,
        url=url,
        on_upstream_error=hide_upstream_error,
        on_failure=internal_error,
        timeout=timeout,
    )
