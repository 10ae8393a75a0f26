"""Service naming for recurring-charge groups.

Two interchangeable classifiers return the same label shape:

    {"service_name": str, "description": str, "original_comments": [str, ...]}

`KeywordServiceClassifier` is deterministic and offline.
`PerplexityServiceClassifier` asks an external chat-completions API to group
and name the memos. `FallbackServiceClassifier` tries one and degrades to the
other, so callers never see a collaborator failure.
"""

import json
import logging
import re
from typing import Any, Protocol

import httpx


logger = logging.getLogger(__name__)

PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"
PERPLEXITY_MODEL = "sonar"

DEFAULT_DESCRIPTION = "Servicio de suscripción"
BLANK_MEMO_NAME = "Sin descripción"
MAX_FALLBACK_NAME_LENGTH = 20

# Ordered: the first matching keyword wins
KEYWORD_RULES: list[tuple[tuple[str, ...], str, str]] = [
    (("netflix",), "Netflix", "Plataforma de streaming de video"),
    (("spotify",), "Spotify", "Plataforma de streaming de música"),
    (("openai", "chatgpt"), "ChatGPT", "Asistente de inteligencia artificial"),
    (("disney",), "Disney+", "Plataforma de streaming de video"),
    (("hbo", "hbomax"), "Max", "Plataforma de streaming de video"),
    (("youtube",), "YouTube Premium", "Plataforma de streaming de video"),
    (("apple", "itunes"), "Apple", "Servicios de Apple"),
    (("amazon", "prime video"), "Amazon", "Servicios de Amazon"),
    (("google",), "Google", "Servicios de Google"),
    (("microsoft", "xbox", "office 365"), "Microsoft", "Servicios de Microsoft"),
    (("adobe",), "Adobe", "Software de diseño"),
    (("uber",), "Uber", "Transporte y entregas"),
    (("rotoplas",), "Rotoplas", "Servicio de agua"),
    (("telmex", "infinitum"), "Telmex", "Internet y telefonía"),
    (("izzi",), "Izzi", "Internet y televisión"),
    (("totalplay",), "Totalplay", "Internet y televisión"),
    (("telcel",), "Telcel", "Telefonía móvil"),
    (("cfe",), "CFE", "Servicio de electricidad"),
    (("smart fit", "smartfit", "gym", "gimnasio"), "Gimnasio", "Membresía de gimnasio"),
]

_FENCE_RE = re.compile(r"```(?:json)?\n?")


class ServiceClassificationError(Exception):
    """External service classifier failed or returned an unusable answer."""

    pass


class ServiceClassifier(Protocol):
    """Groups and names distinct transaction memos."""

    async def classify_services(self, memos: list[str]) -> list[dict[str, Any]]:
        ...


def _distinct(memos: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for memo in memos:
        if memo not in seen:
            seen.add(memo)
            result.append(memo)
    return result


class KeywordServiceClassifier:
    """Deterministic brand lookup with a first-token fallback."""

    def label_for(self, memo: str) -> dict[str, Any]:
        """Name a single memo."""
        if not memo.strip():
            return {
                "service_name": BLANK_MEMO_NAME,
                "description": DEFAULT_DESCRIPTION,
                "original_comments": [memo],
            }

        lowered = memo.lower()
        for keywords, service_name, description in KEYWORD_RULES:
            if any(keyword in lowered for keyword in keywords):
                return {
                    "service_name": service_name,
                    "description": description,
                    "original_comments": [memo],
                }

        tokens = memo.split()
        name = tokens[0] if tokens else memo
        return {
            "service_name": name.title()[:MAX_FALLBACK_NAME_LENGTH],
            "description": DEFAULT_DESCRIPTION,
            "original_comments": [memo],
        }

    def classify(self, memos: list[str]) -> list[dict[str, Any]]:
        """Synchronous form of `classify_services`: one label per distinct memo."""
        return [self.label_for(memo) for memo in _distinct(memos)]

    async def classify_services(self, memos: list[str]) -> list[dict[str, Any]]:
        return self.classify(memos)


def build_prompt(memos: list[str]) -> str:
    """Build the grouping prompt for the chat model."""
    return f"""Analiza estos comentarios de transacciones y agrúpalos por servicio/empresa.

Comentarios: {json.dumps(memos, ensure_ascii=False)}

Instrucciones:
1. Identifica qué empresa/servicio representa cada comentario
2. Agrupa comentarios que sean del mismo servicio (ej: "Netflix Mexico", "NETFLIX.COM" → "Netflix")
3. Para servicios poco claros, mantén el nombre original
4. Cada comentario debe aparecer exactamente en un grupo
5. Devuelve SOLO un JSON con este formato:
{{
  "groups": [
    {{
      "serviceName": "Netflix",
      "description": "Plataforma de streaming de video",
      "originalComments": ["Netflix Mexico", "NETFLIX.COM"]
    }}
  ]
}}

NO agregues texto adicional, solo el JSON."""


def parse_classification(content: str, memos: list[str]) -> list[dict[str, Any]]:
    """Parse and validate the model's JSON answer.

    Every input memo must appear in exactly one group. Comments the model
    invented are dropped.

    Raises:
        ServiceClassificationError: If the answer is not valid JSON or breaks
            the one-group-per-memo contract.
    """
    cleaned = _FENCE_RE.sub("", content).strip()
    try:
        payload = json.loads(cleaned)
    except ValueError as e:
        raise ServiceClassificationError(f"Invalid JSON from classifier: {e}") from e

    groups = payload.get("groups") if isinstance(payload, dict) else None
    if not isinstance(groups, list):
        raise ServiceClassificationError("Classifier answer has no 'groups' list")

    expected = set(memos)
    seen: dict[str, int] = {}
    labels = []
    for group in groups:
        if not isinstance(group, dict):
            raise ServiceClassificationError(f"Malformed group: {group!r}")
        service_name = group.get("serviceName")
        comments = group.get("originalComments")
        if not isinstance(service_name, str) or not isinstance(comments, list):
            raise ServiceClassificationError(f"Malformed group: {group!r}")

        kept = [c for c in comments if c in expected]
        for comment in kept:
            seen[comment] = seen.get(comment, 0) + 1
        if not kept:
            continue

        labels.append({
            "service_name": service_name,
            "description": group.get("description") or DEFAULT_DESCRIPTION,
            "original_comments": kept,
        })

    missing = expected - seen.keys()
    duplicated = [c for c, n in seen.items() if n > 1]
    if missing or duplicated:
        raise ServiceClassificationError(
            f"Classifier broke memo contract: missing={sorted(missing)}, "
            f"duplicated={sorted(duplicated)}"
        )

    return labels


class PerplexityServiceClassifier:
    """Groups memos with the Perplexity chat-completions API."""

    def __init__(self, api_key: str, model: str = PERPLEXITY_MODEL, timeout: float = 30.0):
        """Initialize classifier.

        Args:
            api_key: Perplexity API key.
            model: Chat model name.
            timeout: HTTP timeout in seconds.
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def classify_services(self, memos: list[str]) -> list[dict[str, Any]]:
        """Ask the model to group and name memos.

        Raises:
            ServiceClassificationError: On any transport, status or content problem.
        """
        memos = _distinct(memos)
        if not memos:
            return []

        request_body = {
            "model": self.model,
            "messages": [
                {
                    "role": "system",
                    "content": (
                        "Eres un experto en identificar empresas y servicios a partir de "
                        "descripciones de transacciones bancarias. Responde solo con JSON válido."
                    ),
                },
                {"role": "user", "content": build_prompt(memos)},
            ],
            "temperature": 0.1,
            "max_tokens": 2000,
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    PERPLEXITY_API_URL,
                    json=request_body,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                raise ServiceClassificationError(f"HTTP error: {e}") from e

        if response.status_code != 200:
            raise ServiceClassificationError(
                f"Classifier API returned status {response.status_code}"
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ServiceClassificationError(f"Unexpected classifier response: {e}") from e

        logger.debug("Classifier answered for %d memos", len(memos))
        return parse_classification(content, memos)


class FallbackServiceClassifier:
    """Try `primary`; on any failure answer with `fallback` instead."""

    def __init__(self, primary: ServiceClassifier, fallback: ServiceClassifier | None = None):
        self.primary = primary
        self.fallback = fallback or KeywordServiceClassifier()

    async def classify_services(self, memos: list[str]) -> list[dict[str, Any]]:
        try:
            return await self.primary.classify_services(memos)
        except Exception as e:
            logger.warning("Service classifier failed, using keyword fallback: %s", e)
            return await self.fallback.classify_services(memos)
