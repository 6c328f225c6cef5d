"""Translator port shared by all machine translation providers."""
import random
import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

# Matches variable placeholders such as 'Hello %name%'.
DEFAULT_PLACEHOLDER_PATTERNS = [r'%([^%\s]+)%']

_TAG_PATTERN = re.compile(r'<[^<>]*>')
_INDEX_TOKEN_PATTERN = re.compile(r'%(\d+)%')


def strip_tags(text: str) -> str:
    """Remove anything that looks like an HTML/XML tag from ``text``."""
    return _TAG_PATTERN.sub('', text)


def contains_html(text: str) -> bool:
    """Return True if ``text`` contains markup."""
    return text != strip_tags(text)


def find_placeholders(text: str, patterns: Iterable[str]) -> List[str]:
    """
    Find placeholder strings in ``text`` in the order they first appear.

    Args:
        text: The text to search.
        patterns: Regular expressions identifying placeholders.

    Returns:
        A list of unique placeholder strings, ordered by first occurrence.
    """
    found = []
    for pattern in patterns:
        for match in re.finditer(pattern, text):
            found.append((match.start(), match.group(0)))
    found.sort(key=lambda item: item[0])
    return list(dict.fromkeys(placeholder for _, placeholder in found))


def protect_placeholders(text: str, patterns: Optional[Iterable[str]] = None) -> Tuple[str, Dict[str, str]]:
    """
    Replace placeholders in the text with index tokens (%1%, %2%, ...).

    Index tokens are assigned in first-seen order. A placeholder occurring more
    than once shares the token of its first occurrence.

    Args:
        text: The text to process.
        patterns: Placeholder patterns, defaults to ``%token%``.

    Returns:
        Tuple[str, Dict[str, str]]: The processed text and a token to placeholder mapping.
    """
    if not isinstance(text, str):
        raise ValueError("Input text must be a string.")

    patterns = list(patterns) if patterns is not None else list(DEFAULT_PLACEHOLDER_PATTERNS)
    # Literal index tokens in the text are always masked.
    patterns.append(_INDEX_TOKEN_PATTERN.pattern)
    placeholders = find_placeholders(text, patterns)
    if not placeholders:
        return text, {}

    to_token = {placeholder: f"%{index}%" for index, placeholder in enumerate(placeholders, start=1)}
    # Longest first so that overlapping placeholders resolve to the widest match.
    alternation = '|'.join(re.escape(p) for p in sorted(to_token, key=len, reverse=True))
    processed_text = re.sub(alternation, lambda match: to_token[match.group(0)], text)
    return processed_text, {token: placeholder for placeholder, token in to_token.items()}


def restore_placeholders(text: str, placeholder_mapping: Dict[str, str]) -> str:
    """
    Restore placeholders in the text from the placeholder mapping.

    Args:
        text (str): The text with index tokens.
        placeholder_mapping (Dict[str, str]): The mapping returned by ``protect_placeholders``.

    Returns:
        str: The text with placeholders restored.
    """
    if not placeholder_mapping:
        return text
    return _INDEX_TOKEN_PATTERN.sub(
        lambda match: placeholder_mapping.get(match.group(0), match.group(0)),
        text
    )


def parse_retry_after(header_value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds or milliseconds."""
    if not header_value:
        return None
    header_value = header_value.strip()
    if header_value.isdigit():
        return float(header_value)
    if header_value.endswith("ms") and header_value[:-2].isdigit():
        return float(header_value[:-2]) / 1000
    return None


def compute_retry_delay(attempt: int, base_delay: float, retry_after: Optional[float] = None) -> float:
    """
    Compute how long to wait before the next attempt.

    A server provided Retry-After value wins; otherwise exponential backoff
    with up to one second of jitter is used.
    """
    if retry_after is not None:
        return retry_after
    return base_delay * (2 ** (attempt - 1)) + random.uniform(0, 1)


class MachineTranslator(ABC):
    """
    Capability contract consumed by the XLF scanner.

    Providers translate text between locales given in local codes
    (e.g. ``en_GB``) which they resolve to their own vocabulary via
    ``normalize_locale``.
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        """The provider display name."""

    @abstractmethod
    def normalize_locale(self, code: str) -> str:
        """Resolve a local locale code to a provider code, or '' if unsupported."""

    @abstractmethod
    def translate(self, text: str, from_locale: str, to_locale: str, options: Optional[Dict] = None) -> str:
        """
        Translate ``text`` from one locale to another.

        Returns an empty string when the text could not be translated. Raises
        ``UnsupportedLocaleError`` when a locale cannot be resolved.
        """

    @abstractmethod
    def detect_language(self, text: str) -> str:
        """Detect the language of ``text``."""

    def contains_html(self, text: str) -> bool:
        return contains_html(text)
