"""
ai/gemini_parser.py
-------------------
Uses Google Gemini 2.5 Flash to parse free-text payment descriptions
into structured payment data.

Responsibilities:
    - Understand Portuguese (and English) billing phrases.
    - Extract: title, amount, currency, due_date, is_recurring, recurring_day.
    - Return a clean dict ready for the Service layer.
"""

import json
from datetime import date

import google.generativeai as genai

from config import DEFAULT_CURRENCY, GEMINI_API_KEY
from utils.logger import get_logger

logger = get_logger(__name__)

# Configure the Gemini client once at module level
genai.configure(api_key=GEMINI_API_KEY)

_model = genai.GenerativeModel("gemini-2.5-flash")

# ── System prompt for the AI ─────────────────────────────

_PAYMENT_PROMPT = """Você é o assistente financeiro de uma pequena consultoria de software.
Converta a mensagem do usuário em JSON descrevendo um pagamento de projeto.

Data de hoje: {today}
Moeda padrão: {currency}

## Regras:

1. **title:** nome curto do pagamento (ex: "Hospedagem", "Parcela 2 do contrato")
2. **amount:** número, ou null se não informado
3. **currency:** código ISO (BRL, USD, EUR); use a moeda padrão se não informada
4. **is_recurring:** true para "todo mês", "mensal", "mensalidade", "todo dia X"
5. **recurring_day:** dia do mês (1-31) se recorrente, senão null
6. **due_date:** YYYY-MM-DD para pagamentos avulsos; null se recorrente

## Exemplos:
- "hospedagem 120 todo dia 4" → {{"title":"Hospedagem","amount":120,"currency":"{currency}","is_recurring":true,"recurring_day":4,"due_date":null}}
- "segunda parcela 3500 dia 30/05/2024" → {{"title":"Segunda parcela","amount":3500,"currency":"{currency}","is_recurring":false,"recurring_day":null,"due_date":"2024-05-30"}}
- "domain renewal 15 USD next friday" → {{"title":"Domain renewal","amount":15,"currency":"USD","is_recurring":false,"recurring_day":null,"due_date":"<data calculada>"}}

## Formato:
Retorne somente JSON, sem explicação nem markdown.

Se não estiver claro: {{"error":"unclear","question":"<pergunta curta em português>"}}
"""


def _strip_fences(raw: str) -> str:
    """Remove markdown code fences around a JSON answer."""
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else raw[3:]
    if raw.endswith("```"):
        raw = raw[:-3]
    return raw.strip()


def parse_payment(text: str, today: date | None = None) -> dict:
    """
    Send a free-text payment description to Gemini and get structured data back.

    Args:
        text: e.g. "hospedagem 120 todo dia 4".
        today: Reference date used to resolve relative dates.

    Returns:
        A dict with keys: title, amount, currency, is_recurring, recurring_day, due_date.
        OR a dict with keys: error, question (if the message is unclear).
    """
    today = today or date.today()
    prompt = _PAYMENT_PROMPT.format(today=today.isoformat(), currency=DEFAULT_CURRENCY)

    raw = ""
    try:
        response = _model.generate_content(
            [
                {"role": "user", "parts": [{"text": prompt}]},
                {"role": "user", "parts": [{"text": text}]},
            ],
            generation_config=genai.GenerationConfig(
                temperature=0.1,
                max_output_tokens=300,
            ),
        )
        raw = _strip_fences(response.text)
        result = json.loads(raw)
        logger.info(f"Gemini parsed payment: {result}")
        return result

    except json.JSONDecodeError:
        logger.warning(f"Gemini returned non-JSON for payment: {raw!r}")
        return {"error": "parse_failed", "question": "Não entendi. Informe título, valor e vencimento (ou 'todo dia X')."}
    except Exception as e:
        logger.error(f"Gemini API error (payment): {e}")
        return {"error": "api_error", "question": "Falha ao interpretar a mensagem. Tente de novo."}
