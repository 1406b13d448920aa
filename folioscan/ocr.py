"""
Page recognition against a vision LLM.

The recognizer is an OpenAI-compatible chat completions endpoint that reads
a page image and returns its text, the printed page number and a confidence
score. Calls go through RecognitionInvoker, which retries transient upstream
failures with exponential backoff.
"""

import asyncio
import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal

import httpx
from PIL import Image
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import RecognitionError, RecognitionPermanentError, RecognitionTransientError
from .models import FormattingBlock

logger = logging.getLogger(__name__)

# Constants
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0  # seconds, doubled after each failed attempt
TRANSIENT_STATUS_CODES = {429}  # plus every 5xx

SYSTEM_PROMPT = """You are an OCR system specialized in book pages.

1. Extract ALL text from the image exactly as printed.
2. Report the printed page number, if any, exactly as it appears (Arabic or Roman numerals).
3. Describe the structure as blocks: headings (with level 1-6), paragraphs, lists and quotes.

Respond with a JSON object:
{"pageNumber": string or null, "text": string, "confidence": integer 0-100, "blocks": [...]}

Set pageNumber to null when no page number is visible."""

USER_PROMPT = "Extract all text from this book page, detect the page number, and preserve formatting structure."

RESPONSE_SCHEMA = {
    "name": "ocr_result",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "pageNumber": {"type": ["string", "null"]},
            "text": {"type": "string"},
            "confidence": {"type": "integer", "minimum": 0, "maximum": 100},
            "blocks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string", "enum": ["heading", "paragraph", "list", "quote"]},
                        "level": {"type": ["integer", "null"]},
                        "content": {"type": "string"},
                        "formatting": {
                            "type": "object",
                            "properties": {
                                "bold": {"type": "boolean"},
                                "italic": {"type": "boolean"},
                            },
                            "required": ["bold", "italic"],
                            "additionalProperties": False,
                        },
                    },
                    "required": ["type", "content", "formatting"],
                    "additionalProperties": False,
                },
            },
        },
        "required": ["pageNumber", "text", "confidence", "blocks"],
        "additionalProperties": False,
    },
}


class TextFormatting(BaseModel):
    bold: bool = False
    italic: bool = False


class BlockPayload(BaseModel):
    type: Literal["heading", "paragraph", "list", "quote"]
    level: int | None = None
    content: str
    formatting: TextFormatting = Field(default_factory=TextFormatting)


class RecognizerPayload(BaseModel):
    """JSON object the vision model is asked to produce."""

    page_number: str | None = Field(default=None, alias="pageNumber")
    text: str
    confidence: float = Field(ge=0, le=100)
    blocks: list[BlockPayload] = []

    model_config = {"populate_by_name": True}


@dataclass
class RecognizerOutput:
    """What a recognizer returns for one image."""

    text: str
    raw_label: str | None
    confidence: float  # normalized to [0, 1]
    formatting: list[FormattingBlock] = field(default_factory=list)


@dataclass
class OCRResult:
    """Successful recognition of a single page."""

    text: str
    raw_label: str | None
    confidence: float
    formatting: list[FormattingBlock] = field(default_factory=list)
    attempts: int = 1

    @property
    def label_source(self) -> str:
        """Text the page number is read from: the raw label, else the full text."""
        return self.raw_label if self.raw_label else self.text


class Recognizer(ABC):
    """Something that turns a page image into text.

    Implementations raise RecognitionError with transient=True for failures
    worth retrying.
    """

    @abstractmethod
    async def invoke(self, image_ref: str) -> RecognizerOutput:
        pass


def encode_image(path: Path) -> str:
    """Read a local image into a data URL.

    Raises:
        RecognitionPermanentError: If the file is missing or not an image
    """
    try:
        with Image.open(path) as img:
            image_format = img.format
            img.verify()
    except (OSError, SyntaxError, ValueError) as e:
        raise RecognitionPermanentError(f"Unreadable image {path.name}: {e}") from e

    mime_type = Image.MIME.get(image_format or "", "application/octet-stream")
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{data}"


class HTTPRecognizer(Recognizer):
    """Recognizer backed by an OpenAI-compatible vision endpoint.

    Usage:
        async with HTTPRecognizer("http://localhost:8080/v1/chat/completions", "model") as r:
            output = await r.invoke("scans/page_001.jpg")
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the recognizer.

        Args:
            api_url: Chat completions URL
            model: Model name sent with each request
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            client: Preconfigured client (tests pass one with a mock transport)
        """
        self.api_url = api_url
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized httpx client."""
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def invoke(self, image_ref: str) -> RecognizerOutput:
        image_url = await self._image_url(image_ref)

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                    ],
                },
            ],
            "response_format": {"type": "json_schema", "json_schema": RESPONSE_SCHEMA},
            "temperature": 0.0,
        }

        try:
            response = await self.client.post(self.api_url, json=body)
        except httpx.TimeoutException as e:
            raise RecognitionTransientError(f"Recognizer request timed out: {e}") from e
        except httpx.TransportError as e:
            raise RecognitionTransientError(f"Recognizer connection failed: {e}") from e

        self._check_status(response)
        return self._parse_response(response)

    async def _image_url(self, image_ref: str) -> str:
        """URLs pass through; local files are inlined as data URLs."""
        if image_ref.startswith(("http://", "https://", "data:")):
            return image_ref

        path = Path(image_ref.removeprefix("file://"))
        return await asyncio.to_thread(encode_image, path)

    def _check_status(self, response: httpx.Response) -> None:
        """Map HTTP errors to recognition errors.

        Raises:
            RecognitionTransientError: For 5xx and 429 responses
            RecognitionPermanentError: For other non-2xx responses
        """
        if response.is_success:
            return

        status_code = response.status_code
        message = f"Recognizer error {status_code} {response.reason_phrase}: {response.text[:200]}"

        if status_code >= 500 or status_code in TRANSIENT_STATUS_CODES:
            raise RecognitionTransientError(message)
        raise RecognitionPermanentError(message)

    def _parse_response(self, response: httpx.Response) -> RecognizerOutput:
        """Extract and validate the model's JSON answer."""
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RecognitionPermanentError(f"Malformed recognizer response: {e}") from e

        if not content:
            raise RecognitionPermanentError("No response from recognizer")

        try:
            parsed: Any = json.loads(content) if isinstance(content, str) else content
            payload = RecognizerPayload.model_validate(parsed)
        except json.JSONDecodeError as e:
            raise RecognitionPermanentError(f"Recognizer returned invalid JSON: {e}") from e
        except PydanticValidationError as e:
            raise RecognitionPermanentError(
                f"Recognizer response failed validation: {e.error_count()} errors"
            ) from e

        return RecognizerOutput(
            text=payload.text,
            raw_label=payload.page_number,
            confidence=min(max(payload.confidence / 100, 0.0), 1.0),
            formatting=[
                FormattingBlock(
                    type=b.type,
                    content=b.content,
                    level=b.level,
                    bold=b.formatting.bold,
                    italic=b.formatting.italic,
                )
                for b in payload.blocks
            ],
        )


class RecognitionInvoker:
    """Calls a recognizer with retry and exponential backoff.

    Transient failures are retried up to max_attempts total attempts, waiting
    initial_delay * 2**attempt seconds between them. Anything else fails
    immediately. The invoker keeps no page state.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        timeout: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the invoker.

        Args:
            recognizer: Recognizer to call
            max_attempts: Total attempts for transient failures
            initial_delay: Seconds before the first retry
            timeout: Per-attempt time limit in seconds (None = no limit)
            sleep: Awaitable used for backoff waits
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        self.recognizer = recognizer
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the zero-based attempt number."""
        return self.initial_delay * (2 ** attempt)

    async def recognize(self, image_ref: str) -> OCRResult:
        """Recognize one page image.

        Returns:
            OCRResult with the number of attempts used

        Raises:
            RecognitionError: When a permanent failure occurs or transient
                failures exhaust the attempts
        """
        for attempt in range(self.max_attempts):
            try:
                output = await self._call(image_ref)
            except RecognitionError as e:
                e.attempts = attempt + 1

                if not e.transient:
                    logger.error(f"Recognition failed permanently for {_short(image_ref)}: {e.message}")
                    raise

                if attempt == self.max_attempts - 1:
                    logger.error(
                        f"Recognition failed after {self.max_attempts} attempts "
                        f"for {_short(image_ref)}: {e.message}"
                    )
                    raise RecognitionTransientError(
                        f"Recognition failed after {self.max_attempts} attempts: {e.message}",
                        attempts=self.max_attempts,
                    ) from e

                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Recognition attempt {attempt + 1}/{self.max_attempts} failed: "
                    f"{e.message}, retrying in {delay:.1f}s"
                )
                await self.sleep(delay)
                continue

            return OCRResult(
                text=output.text,
                raw_label=output.raw_label,
                confidence=output.confidence,
                formatting=output.formatting,
                attempts=attempt + 1,
            )

        # Unreachable: the loop either returns or raises
        raise RecognitionPermanentError("Recognition was not attempted")

    async def _call(self, image_ref: str) -> RecognizerOutput:
        """Run one attempt, folding timeouts and stray errors into RecognitionError."""
        try:
            if self.timeout is None:
                return await self.recognizer.invoke(image_ref)
            return await asyncio.wait_for(self.recognizer.invoke(image_ref), self.timeout)
        except RecognitionError:
            raise
        except asyncio.TimeoutError as e:
            raise RecognitionTransientError(f"Recognizer timed out after {self.timeout}s") from e
        except Exception as e:
            raise RecognitionPermanentError(f"Recognizer raised {type(e).__name__}: {e}") from e


def _short(image_ref: str) -> str:
    """Image reference trimmed for log lines (data URLs are huge)."""
    if image_ref.startswith("data:"):
        return image_ref[:30] + "..."
    return image_ref
