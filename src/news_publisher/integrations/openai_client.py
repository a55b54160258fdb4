"""OpenAI-backed vision selection, image edit and SEO rewrite clients."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

import openai
from openai import OpenAI

from news_publisher.config import ImageSettings, LlmSettings
from news_publisher.errors import ImageEditTimeoutError, IntegrationError
from news_publisher.models import DownloadedImage, ImageSelection, SeoMeta

logger = logging.getLogger(__name__)

SERVICE = "openai"
SEO_TITLE_MAX_CHARS = 60
SEO_DESCRIPTION_MAX_CHARS = 160
SEO_CONTENT_MAX_CHARS = 2_000

SEO_SYSTEM_PROMPT = (
    "You are an SEO editor. Respond with a JSON object containing exactly the keys "
    '"metatitle", "metadescription" and "keyword". The metatitle must be at most '
    f"{SEO_TITLE_MAX_CHARS} characters, the metadescription at most "
    f"{SEO_DESCRIPTION_MAX_CHARS} characters, and the keyword a short focus phrase."
)


def build_openai_client(settings: LlmSettings) -> OpenAI:
    return OpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.request_timeout_seconds,
        max_retries=0,
    )


def to_data_uri(image: DownloadedImage) -> str:
    encoded = base64.b64encode(image.data).decode("ascii")
    return f"data:{image.mime_type};base64,{encoded}"


class OpenAiImageSelector:
    """Sends candidate images inline as data URIs and parses the JSON choice."""

    def __init__(self, client: OpenAI, *, model: str) -> None:
        self._client = client
        self._model = model

    def select(
        self,
        images: list[DownloadedImage],
        *,
        system_prompt: str,
        user_prompt: str,
    ) -> ImageSelection:
        content: list[dict[str, Any]] = [{"type": "text", "text": user_prompt}]
        content.extend(
            {"type": "image_url", "image_url": {"url": to_data_uri(image)}} for image in images
        )
        payload = _chat_json(
            self._client,
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content},
            ],
        )
        try:
            selected_index = int(payload.get("selectedIndex", payload.get("selected_index", 0)))
        except (TypeError, ValueError) as exc:
            raise IntegrationError(SERVICE, f"invalid selected index in {payload!r}") from exc
        return ImageSelection(
            selected_index=selected_index,
            reason=str(payload.get("reason") or ""),
            subject_description=str(
                payload.get("subjectDescription") or payload.get("subject_description") or "",
            ),
            color_target=str(payload.get("colorTarget") or payload.get("color_target") or ""),
        )


class OpenAiImageEditor:
    """Image edit with a long, dedicated timeout."""

    def __init__(
        self,
        client: OpenAI,
        *,
        llm_settings: LlmSettings,
        image_settings: ImageSettings,
    ) -> None:
        self._client = client
        self._model = llm_settings.image_model
        self._size = llm_settings.image_size
        self._timeout_seconds = image_settings.edit_timeout_seconds

    def edit(self, image: DownloadedImage, prompt: str) -> bytes:
        extension = image.mime_type.split("/")[-1] or "png"
        try:
            response = self._client.images.edit(
                model=self._model,
                image=(f"source.{extension}", image.data, image.mime_type),
                prompt=prompt,
                size=self._size,  # type: ignore[arg-type]
                quality="high",
                timeout=self._timeout_seconds,
            )
        except openai.APITimeoutError as exc:
            raise ImageEditTimeoutError(
                SERVICE,
                f"image edit timed out after {self._timeout_seconds:.0f}s",
                timeout_seconds=self._timeout_seconds,
            ) from exc
        except openai.APIStatusError as exc:
            raise IntegrationError(SERVICE, exc.message, status_code=exc.status_code) from exc
        except openai.APIError as exc:
            raise IntegrationError(SERVICE, str(exc)) from exc

        if not response.data or not response.data[0].b64_json:
            raise IntegrationError(SERVICE, "image edit returned no image")
        return base64.b64decode(response.data[0].b64_json)


class OpenAiSeoRewriter:
    def __init__(self, client: OpenAI, *, model: str) -> None:
        self._client = client
        self._model = model

    def rewrite(
        self,
        *,
        site_name: str,
        headline: str,
        content: str,
        category: str,
        sibling_titles: list[str],
    ) -> SeoMeta:
        lines = [
            f"Site: {site_name}",
            f"Category: {category}",
            f"Article headline: {headline}",
            "",
            "Write SEO metadata unique to this site.",
        ]
        if sibling_titles:
            lines.append("The metatitle must differ from these titles used on other sites:")
            lines.extend(f"- {title}" for title in sibling_titles)
        lines.extend(["", "Article content:", content[:SEO_CONTENT_MAX_CHARS]])

        payload = _chat_json(
            self._client,
            model=self._model,
            messages=[
                {"role": "system", "content": SEO_SYSTEM_PROMPT},
                {"role": "user", "content": "\n".join(lines)},
            ],
        )
        metatitle = str(payload.get("metatitle") or "").strip()
        if not metatitle:
            raise IntegrationError(SERVICE, "SEO rewrite returned no metatitle")
        return SeoMeta(
            metatitle=clamp_text(metatitle, SEO_TITLE_MAX_CHARS),
            metadescription=clamp_text(
                str(payload.get("metadescription") or ""),
                SEO_DESCRIPTION_MAX_CHARS,
            ),
            keyword=str(payload.get("keyword") or "").strip(),
        )


def clamp_text(value: str, limit: int) -> str:
    """Trim to ``limit`` characters, preferring a word boundary."""

    value = " ".join(value.split())
    if len(value) <= limit:
        return value
    cut = value[:limit]
    boundary = cut.rfind(" ")
    if boundary >= limit // 2:
        cut = cut[:boundary]
    return cut.rstrip(" ,;:-")


def _chat_json(client: OpenAI, *, model: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
    try:
        response = client.chat.completions.create(
            model=model,
            messages=messages,  # type: ignore[arg-type]
            response_format={"type": "json_object"},
        )
    except openai.APIStatusError as exc:
        raise IntegrationError(SERVICE, exc.message, status_code=exc.status_code) from exc
    except openai.APIError as exc:
        raise IntegrationError(SERVICE, str(exc)) from exc

    raw = response.choices[0].message.content if response.choices else None
    if not raw:
        raise IntegrationError(SERVICE, "empty completion")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise IntegrationError(SERVICE, f"completion is not JSON: {raw[:200]}") from exc
    if not isinstance(payload, dict):
        raise IntegrationError(SERVICE, "completion JSON is not an object")
    return payload
