"""Gemini-backed suggestions for the daily log.

Both calls are best-effort: a missing API key, a network/API failure or an
unreadable photo degrades to "no suggestion" and never blocks task entry.
"""

import asyncio
import logging
import mimetypes
import re
from pathlib import Path
from typing import List, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from sitelog.core.config import settings
from sitelog.schemas.log import ImageAttachment, Suggestion, TaskEntry

logger = logging.getLogger(__name__)

UNIDENTIFIED_MARKER = "Não foi possível identificar"

IMAGE_PROMPT = (
    "Analise esta imagem de uma obra. Descreva em uma frase curta e objetiva uma "
    "atividade de construção civil que está sendo realizada ou que é representada na "
    "imagem. Foque em ações e objetos. Exemplo: \"Instalação de formas para viga\". "
    "Se a imagem não for clara ou não representar uma atividade, retorne "
    f"\"{UNIDENTIFIED_MARKER}\". Histórico de tarefas recentes para evitar duplicatas: "
    "{history}"
)

LOCATION_PROMPT = """Baseado no histórico de tarefas e seus locais, sugira um local provável para a nova tarefa. Retorne apenas o nome do local (ex: "Térreo", "1º Andar - Apartamento 101", "Fachada Leste"). Se não tiver certeza, retorne uma string vazia.

Histórico:
{history}

Nova Tarefa: "{task}"

Local Sugerido:"""


def clean_suggestion(text: str) -> str:
    return re.sub(r'[".]', '', text).strip()


class ImageAnalyzer:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        upload_dir: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _image_part(self, image: ImageAttachment) -> types.Part:
        path = self.upload_dir / image.file_path.lstrip("/")
        mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        return types.Part.from_bytes(data=path.read_bytes(), mime_type=mime_type)

    async def analyze_images(
        self, images: Sequence[ImageAttachment], history: Sequence[str]
    ) -> List[Suggestion]:
        """Suggest one task description per photo; unusable answers are dropped."""
        if not self.available:
            logger.warning("GEMINI_API_KEY is not set; skipping image analysis")
            return []

        client = self._get_client()
        prompt = IMAGE_PROMPT.format(history=", ".join(list(history)[:5]))
        results = []

        for image in images:
            try:
                part = self._image_part(image)
                response = await asyncio.to_thread(
                    client.models.generate_content,
                    model=self.model,
                    contents=[part, prompt],
                )
            except OSError as e:
                logger.warning(f"Could not read image {image.id} ({image.file_path}): {e}")
                continue
            except (genai_errors.APIError, httpx.HTTPError) as e:
                logger.error(f"Image analysis failed for {image.id}: {e}")
                continue

            text = (response.text or "").strip()
            if not text or UNIDENTIFIED_MARKER in text:
                logger.debug(f"No activity identified in image {image.id}")
                continue

            results.append(Suggestion(
                id=f"result-{image.id}",
                image_id=image.id,
                suggestion=clean_suggestion(text),
            ))

        logger.info(f"Image analysis produced {len(results)} suggestion(s) for {len(images)} image(s)")
        return results

    async def suggest_location(self, task_text: str, task_history: Sequence[TaskEntry]) -> str:
        if not self.available:
            logger.warning("GEMINI_API_KEY is not set; skipping location suggestion")
            return ""

        history = "\n".join(
            f'- "{t.text}" no local "{t.location}"'
            for t in list(task_history)[:10]
        )
        prompt = LOCATION_PROMPT.format(history=history, task=task_text)

        try:
            response = await asyncio.to_thread(
                self._get_client().models.generate_content,
                model=self.model,
                contents=prompt,
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Location suggestion failed: {e}")
            return ""

        return (response.text or "").strip()
