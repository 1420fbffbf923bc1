from __future__ import annotations

import logging
import os
from typing import Callable

from openai import OpenAI

from .settings import ModelSettings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Tu es un expert des jeux de société. Réponds en français, uniquement à partir "
    "des extraits de règles fournis. Si la réponse n'y figure pas, dis que les règles "
    "fournies ne permettent pas de répondre. Cite les extraits utilisés, par exemple [Chunk 1]."
)

AnswerFn = Callable[[str, str], tuple[str, str, bool]]


def build_prompt(question: str, context: str, document_name: str = "") -> str:
    game = f" du jeu « {document_name} »" if document_name else ""
    return (
        f"Extraits des règles{game} :\n{context}\n\n"
        f"Question : {question}\n\n"
        "Réponds de façon concise et précise."
    )


def answer_with_context(
    question: str,
    context: str,
    model: str = "gpt-4.1-mini",
    document_name: str = "",
    temperature: float = 0.2,
    max_output_tokens: int = 700,
) -> str:
    client = OpenAI()
    response = client.responses.create(
        model=model,
        instructions=SYSTEM_PROMPT,
        input=build_prompt(question, context, document_name),
        temperature=temperature,
        max_output_tokens=max_output_tokens,
    )
    return response.output_text


def generation_available() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


def build_answer_fn(settings: ModelSettings | None = None) -> AnswerFn | None:
    """OpenAI-backed ``(question, context) -> (answer, model, used_generation)``.

    Returns ``None`` when no API key is configured, in which case callers fall
    back to returning the retrieved context itself.
    """
    settings = settings or ModelSettings()
    if not generation_available():
        logger.info("OPENAI_API_KEY not set, answers will be the raw retrieved context")
        return None

    def _answer(question: str, context: str) -> tuple[str, str, bool]:
        text = answer_with_context(
            question,
            context,
            model=settings.chat_model,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )
        return text, settings.chat_model, True

    return _answer
