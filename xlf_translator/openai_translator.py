"""Machine translation through the OpenAI chat completions API."""
import logging
import time
from typing import Dict, Iterable, List, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
    OpenAIError,
    RateLimitError,
)
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from xlf_translator.exceptions import UnsupportedLocaleError
from xlf_translator.machine_translator import (
    DEFAULT_PLACEHOLDER_PATTERNS,
    MachineTranslator,
    compute_retry_delay,
    contains_html,
    parse_retry_after,
    protect_placeholders,
    restore_placeholders,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "gpt-4o-mini"

# Languages offered when no supported_locales are configured.
DEFAULT_LANGUAGE_CODES: Dict[str, str] = {
    'ar': 'Arabic',
    'ca': 'Catalan',
    'cs': 'Czech',
    'de': 'German',
    'en': 'English',
    'es': 'Spanish',
    'fr': 'French',
    'he': 'Hebrew',
    'it': 'Italian',
    'ja': 'Japanese',
    'ko': 'Korean',
    'nl': 'Dutch',
    'pl': 'Polish',
    'pt': 'Portuguese',
    'ru': 'Russian',
    'sv': 'Swedish',
    'tr': 'Turkish',
    'zh-Hans': 'Chinese Simplified',
    'zh-Hant': 'Chinese Traditional',
}

SYSTEM_PROMPT = """
You are an expert translator specializing in software localization. Translate the text from {source_language} to {target_language}.

**Instructions**:
- **Do not translate or modify placeholder tokens**: tokens such as `%1%` or `%2%` must remain exactly as they are.
- **Preserve markup**: keep HTML tags and their attributes unchanged, translate only the text between them.
- **Do not add** any additional characters or punctuation (e.g., no square brackets, quotation marks, etc.).
- **Provide only** the translated text.
"""

DETECT_PROMPT = (
    "Identify the language of the user's text. Reply with the ISO 639-1 language code only, "
    "for example: en"
)


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Cleans the translated text by removing leading/trailing quotes and brackets
    the model added around it.

    Args:
        translated_text (str): The translated text.
        original_text (str): The original text.

    Returns:
        str: The cleaned translated text.
    """
    if translated_text.startswith('"') and translated_text.endswith('"') and not (
            original_text.startswith('"') and original_text.endswith('"')):
        translated_text = translated_text[1:-1]
    if translated_text.startswith('[') and translated_text.endswith(']') and not (
            original_text.startswith('[') and original_text.endswith(']')):
        translated_text = translated_text[1:-1]
    return translated_text


class OpenAITranslator(MachineTranslator):
    """Translates text with an OpenAI chat model."""

    PROVIDER = "OpenAI"

    def __init__(
            self,
            client: OpenAI,
            model_name: str = DEFAULT_MODEL_NAME,
            language_codes: Optional[Dict[str, str]] = None,
            max_retries: int = 5,
            base_delay: float = 1.0,
            temperature: float = 0.3,
            timeout: float = 60.0
    ):
        self.client = client
        self.model_name = model_name
        self.language_codes = dict(language_codes or DEFAULT_LANGUAGE_CODES)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.temperature = temperature
        self.timeout = timeout
        self.locale_map: Dict[str, str] = {}
        self.placeholder_patterns: List[str] = list(DEFAULT_PLACEHOLDER_PATTERNS)

    @property
    def provider(self) -> str:
        return self.PROVIDER

    def set_locale_map(self, locale_map: Dict[str, str]) -> "OpenAITranslator":
        self.locale_map = dict(locale_map)
        return self

    def set_placeholder_patterns(self, patterns: Iterable[str]) -> "OpenAITranslator":
        self.placeholder_patterns = list(patterns)
        return self

    def normalize_locale(self, code: str) -> str:
        if code in self.language_codes:
            return code

        if self.locale_map:
            return self.locale_map.get(code, '')

        lowered = {known.lower(): known for known in self.language_codes}
        normalized = code.lower().replace('_', '-')
        if normalized in lowered:
            return lowered[normalized]

        base_language = normalized.split('-')[0]
        return lowered.get(base_language, '')

    def language_name(self, code: str) -> str:
        return self.language_codes.get(self.normalize_locale(code), code)

    def translate(self, text: str, from_locale: str, to_locale: str, options: Optional[Dict] = None) -> str:
        if not text or not text.strip():
            logger.warning("No text was given for translation.")
            return ''

        from_code = self.normalize_locale(from_locale)
        to_code = self.normalize_locale(to_locale)
        if not from_code:
            raise UnsupportedLocaleError(f"Unsupported or unrecognized language: {from_locale}")
        if not to_code:
            raise UnsupportedLocaleError(f"Unsupported or unrecognized language: {to_locale}")
        if from_code == to_code:
            raise UnsupportedLocaleError(f"Locales '{from_locale}' and '{to_locale}' resolve to the same language.")

        processed_text, placeholder_mapping = protect_placeholders(text, self.placeholder_patterns)

        system_prompt = SYSTEM_PROMPT.format(
            source_language=self.language_codes[from_code],
            target_language=self.language_codes[to_code]
        )
        if contains_html(processed_text):
            system_prompt += "- The text is an HTML fragment.\n"

        response_text = self._complete(system_prompt, processed_text, options)
        if not response_text:
            return ''

        translated_text = restore_placeholders(response_text, placeholder_mapping)
        return clean_translated_text(translated_text, text)

    def detect_language(self, text: str) -> str:
        return self._complete(DETECT_PROMPT, text).lower()

    def _complete(self, system_prompt: str, user_text: str, options: Optional[Dict] = None) -> str:
        """Run a chat completion with retries. Returns '' if every attempt failed."""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                        ChatCompletionUserMessageParam(role="user", content=user_text)
                    ],
                    temperature=self.temperature,
                    timeout=self.timeout,
                    **(options or {})
                )
                content = response.choices[0].message.content
                return content.strip() if content else ''
            except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError) as api_exc:
                logger.error("API error occurred: %s - %s", api_exc.__class__.__name__, api_exc)
                if attempt >= self.max_retries:
                    break
                retry_after = None
                if isinstance(api_exc, APIStatusError):
                    retry_after = parse_retry_after(api_exc.response.headers.get("Retry-After"))
                delay = compute_retry_delay(attempt, self.base_delay, retry_after)
                logger.info("Retrying in %.2f seconds (attempt %s/%s).", delay, attempt, self.max_retries)
                time.sleep(delay)
            except OpenAIError as api_exc:
                logger.error("OpenAI request failed: %s", api_exc)
                return ''

        logger.error("Translation request failed after %s attempts.", self.max_retries)
        return ''
