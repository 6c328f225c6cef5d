"""Microsoft Translator (Azure Cognitive Services, API v3) provider."""
import json
import logging
import os
import time
from typing import Dict, Iterable, List, Optional

import jsonschema
import requests

from xlf_translator.exceptions import ConfigurationError, UnsupportedLocaleError
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

API_VERSION = "3.0"

GLOBAL_BASE_URL = "api.cognitive.microsofttranslator.com"
US_BASE_URL = "api-nam.cognitive.microsofttranslator.com"
EUROPE_BASE_URL = "api-eur.cognitive.microsofttranslator.com"
ASIA_BASE_URL = "api-apc.cognitive.microsofttranslator.com"

# Subscription regions accepted in the Ocp-Apim-Subscription-Region header.
REGIONS = (
    "global", "australiaeast", "brazilsouth", "canadacentral", "centralindia",
    "centralus", "centraluseuap", "eastasia", "eastus", "eastus2",
    "francecentral", "japaneast", "japanwest", "koreacentral", "northcentralus",
    "northeurope", "southcentralus", "southeastasia", "uksouth", "westcentralus",
    "westeurope", "westus", "westus2", "southafricanorth",
)

# Custom Translator categories. The general model is used when none is sent.
CATEGORY_GENERAL = "general"
CATEGORY_TECHNOLOGY = "tech"

# Locales the API supports for translation.
MICROSOFT_TRANSLATION_LOCALES: Dict[str, str] = {
    'af': 'Afrikaans',
    'am': 'Amharic',
    'ar': 'Arabic',
    'as': 'Assamese',
    'az': 'Azerbaijani',
    'bg': 'Bulgarian',
    'bn': 'Bangla',
    'bs': 'Bosnian',
    'ca': 'Catalan',
    'cs': 'Czech',
    'cy': 'Welsh',
    'da': 'Danish',
    'de': 'German',
    'el': 'Greek',
    'en': 'English',
    'es': 'Spanish',
    'et': 'Estonian',
    'fa': 'Persian',
    'fi': 'Finnish',
    'fil': 'Filipino',
    'fj': 'Fijian',
    'fr': 'French',
    'fr-CA': 'French (Canada)',
    'ga': 'Irish',
    'gu': 'Gujarati',
    'he': 'Hebrew',
    'hi': 'Hindi',
    'hr': 'Croatian',
    'ht': 'Haitian Creole',
    'hu': 'Hungarian',
    'hy': 'Armenian',
    'id': 'Indonesian',
    'is': 'Icelandic',
    'it': 'Italian',
    'iu': 'Inuktitut',
    'ja': 'Japanese',
    'kk': 'Kazakh',
    'km': 'Khmer',
    'kmr': 'Kurdish (Northern)',
    'kn': 'Kannada',
    'ko': 'Korean',
    'ku': 'Kurdish (Central)',
    'lo': 'Lao',
    'lt': 'Lithuanian',
    'lv': 'Latvian',
    'lzh': 'Chinese (Literary)',
    'mg': 'Malagasy',
    'mi': 'Māori',
    'ml': 'Malayalam',
    'mr': 'Marathi',
    'ms': 'Malay',
    'mt': 'Maltese',
    'mww': 'Hmong Daw',
    'my': 'Myanmar (Burmese)',
    'nb': 'Norwegian',
    'ne': 'Nepali',
    'nl': 'Dutch',
    'or': 'Odia',
    'otq': 'Querétaro Otomi',
    'pa': 'Punjabi',
    'pl': 'Polish',
    'prs': 'Dari',
    'ps': 'Pashto',
    'pt': 'Portuguese (Brazil)',
    'pt-PT': 'Portuguese (Portugal)',
    'ro': 'Romanian',
    'ru': 'Russian',
    'sk': 'Slovak',
    'sl': 'Slovenian',
    'sm': 'Samoan',
    'sq': 'Albanian',
    'sr-Cyrl': 'Serbian (Cyrillic)',
    'sr-Latn': 'Serbian (Latin)',
    'sv': 'Swedish',
    'sw': 'Swahili',
    'ta': 'Tamil',
    'te': 'Telugu',
    'th': 'Thai',
    'ti': 'Tigrinya',
    'tlh-Latn': 'Klingon (Latin)',
    'tlh-Piqd': 'Klingon (pIqaD)',
    'to': 'Tongan',
    'tr': 'Turkish',
    'ty': 'Tahitian',
    'uk': 'Ukrainian',
    'ur': 'Urdu',
    'vi': 'Vietnamese',
    'yua': 'Yucatec Maya',
    'yue': 'Cantonese (Traditional)',
    'zh-Hans': 'Chinese Simplified',
    'zh-Hant': 'Chinese Traditional',
}

# Regional suffixes rewritten to the script subtags the API expects.
_REGION_ALIASES = (('-cn', '-hans'), ('-tw', '-hant'))

TRANSLATE_RESPONSE_SCHEMA = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "object",
        "required": ["translations"],
        "properties": {
            "translations": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "required": ["text"],
                    "properties": {"text": {"type": "string"}}
                }
            }
        }
    }
}

DETECT_RESPONSE_SCHEMA = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "object",
        "required": ["language"],
        "properties": {"language": {"type": "string"}}
    }
}

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class MicrosoftTranslator(MachineTranslator):
    """
    Translate text via the Microsoft Translator API.

    See https://learn.microsoft.com/azure/ai-services/translator/reference/v3-0-reference
    """

    PROVIDER = "Microsoft"

    def __init__(
            self,
            subscription_key: str,
            region: str = "global",
            base_url: str = GLOBAL_BASE_URL,
            session: Optional[requests.Session] = None,
            max_retries: int = 3,
            base_delay: float = 1.0,
            timeout: float = 30.0,
            category: str = CATEGORY_GENERAL
    ):
        """
        Args:
            subscription_key: The secret key of the Translator subscription (not the subscription id).
            region: The subscription region, e.g. ``global`` or ``northeurope``.
            base_url: The API host, e.g. ``api.cognitive.microsofttranslator.com``.
            session: Optional requests session used for API communication.
            max_retries: Attempts per request for throttled or failing calls.
            base_delay: Base delay in seconds for exponential backoff.
            timeout: Request timeout in seconds.
            category: The translation model category, e.g. ``tech`` or a Custom Translator category id.
        """
        if region not in REGIONS:
            raise ConfigurationError(f"Unknown Microsoft Translator region '{region}'.")

        self.subscription_key = subscription_key
        self.region = region
        self.base_url = base_url
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self.category = category
        self.locale_map: Dict[str, str] = {}
        self.placeholder_patterns: List[str] = list(DEFAULT_PLACEHOLDER_PATTERNS)
        self.excluded_words: List[str] = []
        self.response: Optional[requests.Response] = None

    @property
    def provider(self) -> str:
        return self.PROVIDER

    def set_locale_map(self, locale_map: Dict[str, str]) -> "MicrosoftTranslator":
        """Set explicit local code to Microsoft code mappings, e.g. ``{'es_LA': 'es'}``."""
        self.locale_map = dict(locale_map)
        return self

    def set_placeholder_patterns(self, patterns: Iterable[str]) -> "MicrosoftTranslator":
        self.placeholder_patterns = list(patterns)
        return self

    def add_placeholder_pattern(self, pattern: str) -> "MicrosoftTranslator":
        self.placeholder_patterns.append(pattern)
        return self

    def set_excluded_words(self, excluded_words: Iterable[str]) -> "MicrosoftTranslator":
        self.excluded_words = list(excluded_words)
        return self

    def set_excluded_words_from_file(self, file_path: str) -> "MicrosoftTranslator":
        """
        Load words and phrases that must not be machine translated from a JSON array file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file does not contain a JSON array.
        """
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"Excluded words JSON file '{file_path}' not found.")

        with open(file_path, 'r', encoding='utf-8') as f:
            try:
                excluded_words = json.load(f)
            except json.JSONDecodeError as json_exc:
                raise ValueError(f"Failed to parse excluded words JSON file '{file_path}': {json_exc}") from json_exc

        if not isinstance(excluded_words, list):
            raise ValueError(f"Excluded words JSON file '{file_path}' must contain an array.")

        self.excluded_words = excluded_words
        return self

    def normalize_locale(self, code: str) -> str:
        if code in MICROSOFT_TRANSLATION_LOCALES:
            return code

        if self.locale_map:
            return self.locale_map.get(code, '')

        normalized = code.lower().replace('_', '-')
        for find, replace in _REGION_ALIASES:
            normalized = normalized.replace(find, replace)

        for locale in MICROSOFT_TRANSLATION_LOCALES:
            if normalized == locale.lower():
                return locale

        # Regional variants without a dedicated code fall back to the base language, e.g. en-gb -> en.
        base_language = normalized.split('-')[0]
        if base_language in MICROSOFT_TRANSLATION_LOCALES:
            return base_language

        return ''

    def translate(self, text: str, from_locale: str, to_locale: str, options: Optional[Dict] = None) -> str:
        if not text or not text.strip():
            logger.warning("No text was given for translation.")
            return ''

        if self.excluded_words and text in self.excluded_words:
            return text

        from_code = self.normalize_locale(from_locale)
        to_code = self.normalize_locale(to_locale)

        if not from_code:
            raise UnsupportedLocaleError(f"No Microsoft locale code could be resolved for '{from_locale}'.")
        if not to_code:
            raise UnsupportedLocaleError(f"No Microsoft locale code could be resolved for '{to_locale}'.")
        if from_code == to_code:
            raise UnsupportedLocaleError(f"Locales '{from_locale}' and '{to_locale}' resolve to the same language.")

        processed_text, placeholder_mapping = protect_placeholders(text, self.placeholder_patterns)

        params = {
            'api-version': API_VERSION,
            'from': from_code,
            'to': to_code,
        }
        if self.category and self.category != CATEGORY_GENERAL:
            params['category'] = self.category
        if contains_html(processed_text):
            params['textType'] = 'html'
        if options:
            params.update(options)

        contents = self._post('/translate', params, [{'Text': processed_text}])
        if contents is None:
            return ''

        try:
            jsonschema.validate(instance=contents, schema=TRANSLATE_RESPONSE_SCHEMA)
        except jsonschema.ValidationError as schema_exc:
            logger.error("Unexpected translate response from %s: %s", self.PROVIDER, schema_exc.message)
            return ''

        translated = contents[0]['translations'][0]['text']
        return restore_placeholders(translated, placeholder_mapping)

    def detect_language(self, text: str, normalize_locale_code: bool = False) -> str:
        """
        Detect the language of ``text``.

        Args:
            text: The text to detect the language of.
            normalize_locale_code: Map the Microsoft code back to a local code via the locale map.

        Returns:
            The detected language code, or '' if detection failed.
        """
        contents = self._post('/detect', {'api-version': API_VERSION}, [{'Text': text}])
        if contents is None:
            return ''

        try:
            jsonschema.validate(instance=contents, schema=DETECT_RESPONSE_SCHEMA)
        except jsonschema.ValidationError as schema_exc:
            logger.error("Unexpected detect response from %s: %s", self.PROVIDER, schema_exc.message)
            return ''

        language = contents[0]['language']

        if normalize_locale_code and self.locale_map:
            inverse_map = {provider_code: local_code for local_code, provider_code in self.locale_map.items()}
            language = inverse_map.get(language, language)

        return language

    def get_languages(self, scopes: Iterable[str] = ("translation",)) -> Dict[str, dict]:
        """Get the languages the API supports for the given scopes (translation, transliteration, dictionary)."""
        response = self.session.get(
            f"https://{GLOBAL_BASE_URL}/languages",
            params={'api-version': API_VERSION},
            timeout=self.timeout
        )
        response.raise_for_status()
        contents = response.json()
        return {scope: contents[scope] for scope in scopes if scope in contents}

    def _default_headers(self) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            'Ocp-Apim-Subscription-Region': self.region,
            'Ocp-Apim-Subscription-Key': self.subscription_key,
        }

    def _post(self, uri: str, params: Dict, body: list):
        """POST to the API with retries. Returns the decoded JSON or None on failure."""
        url = f"https://{self.base_url}{uri}"

        for attempt in range(1, self.max_retries + 1):
            try:
                self.response = self.session.post(
                    url,
                    params=params,
                    headers=self._default_headers(),
                    json=body,
                    timeout=self.timeout
                )
            except requests.RequestException as request_exc:
                logger.error("Request to %s failed: %s - %s", url, request_exc.__class__.__name__, request_exc)
                retry_after = None
            else:
                status = self.response.status_code
                if status < 400:
                    try:
                        return self.response.json()
                    except ValueError as json_exc:
                        logger.error("Invalid JSON returned by %s: %s", url, json_exc)
                        return None
                if status not in RETRYABLE_STATUS_CODES:
                    logger.error("%s returned HTTP %s: %s", url, status, self.response.text)
                    return None
                logger.warning("%s returned HTTP %s (attempt %s/%s).", url, status, attempt, self.max_retries)
                retry_after = parse_retry_after(self.response.headers.get('Retry-After'))

            if attempt < self.max_retries:
                delay = compute_retry_delay(attempt, self.base_delay, retry_after)
                logger.debug("Retrying %s in %.2f seconds.", url, delay)
                time.sleep(delay)

        logger.error("Request to %s failed after %s attempts.", url, self.max_retries)
        return None
