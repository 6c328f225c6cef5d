import re
from collections import Counter
from typing import Iterable, Optional, Tuple

from xlf_translator.exceptions import FilenameParseError
from xlf_translator.machine_translator import DEFAULT_PLACEHOLDER_PATTERNS

DEFAULT_FILE_EXTENSION = '.xlf'


def parse_catalog_filename(filename: str, extension: str = DEFAULT_FILE_EXTENSION) -> Tuple[str, str]:
    """
    Splits a catalogue file name of the form ``catalogue.locale.xlf``.

    Args:
        filename: The bare file name, e.g. ``messages.de.xlf``.
        extension: The expected file extension including the leading dot.

    Returns:
        A tuple of (catalogue, locale).

    Raises:
        FilenameParseError: If the name does not end with the extension or does
            not split into exactly three non-empty dot-separated parts.
    """
    if not filename.endswith(extension):
        raise FilenameParseError(filename, f"not a '{extension}' file")

    parts = filename.split('.')
    if len(parts) != 3 or not all(parts):
        raise FilenameParseError(filename, f"expected file in format catalogue.locale{extension}")

    return parts[0], parts[1]


def check_placeholder_parity(base_string: str, target_string: str,
                             patterns: Optional[Iterable[str]] = None) -> bool:
    """
    Checks if the placeholders are identical between a source and a translated string.
    Placeholders are expected in the ``%name%`` format unless other patterns are given.
    Reordering is allowed; the multiset of placeholders must match.

    Args:
        base_string: The source string.
        target_string: The translated string.
        patterns: Regular expressions identifying placeholders.

    Returns:
        True if both strings carry the same placeholders, False otherwise.
    """
    patterns = list(patterns) if patterns is not None else DEFAULT_PLACEHOLDER_PATTERNS

    def collect(text: str) -> Counter:
        found = Counter()
        for pattern in patterns:
            found.update(match.group(0) for match in re.finditer(pattern, text))
        return found

    return collect(base_string) == collect(target_string)
