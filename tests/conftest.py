import os
import textwrap
from typing import Callable, Dict, List, Optional

import pytest

from xlf_translator.machine_translator import MachineTranslator, protect_placeholders, restore_placeholders


class FakeTranslator(MachineTranslator):
    """
    In-memory translator used by the scanner tests.

    ``responses`` maps source text to the translated text; a callable is used
    for anything not in the mapping. Every call is recorded in ``calls``.
    """

    def __init__(self, responses: Optional[Dict[str, str]] = None,
                 default: Optional[Callable[[str, str], str]] = None,
                 supported: tuple = ('en', 'es', 'de', 'fr', 'it')):
        self.responses = responses or {}
        self.default = default
        self.supported = supported
        self.calls: List[tuple] = []

    @property
    def provider(self) -> str:
        return "Fake"

    def normalize_locale(self, code: str) -> str:
        base = code.lower().replace('_', '-').split('-')[0]
        return base if base in self.supported else ''

    def translate(self, text, from_locale, to_locale, options=None):
        self.calls.append((text, from_locale, to_locale, options))
        if text in self.responses:
            return self.responses[text]
        if self.default is not None:
            processed, mapping = protect_placeholders(text)
            return restore_placeholders(self.default(processed, to_locale), mapping)
        return ''

    def detect_language(self, text):
        return 'en'


@pytest.fixture
def fake_translator():
    """Factory for FakeTranslator instances."""
    return FakeTranslator


XLIFF_TEMPLATE = """\
<?xml version="1.0" encoding="utf-8"?>
<xliff xmlns="urn:oasis:names:tc:xliff:document:1.2" version="1.2">
  <file source-language="en" target-language="{locale}" datatype="plaintext" original="file.ext">
    <body>
{units}
    </body>
  </file>
</xliff>
"""


def build_xliff(units: List[dict], locale: str = 'es') -> str:
    """
    Build an XLIFF 1.2 document.

    Each unit dict takes ``source``, ``target`` and optionally ``id``,
    ``state`` (target attribute) and ``attributes`` (raw trans-unit attributes).
    """
    rendered = []
    for index, unit in enumerate(units, start=1):
        unit_id = unit.get('id', str(index))
        attributes = unit.get('attributes', '')
        state = f' state="{unit["state"]}"' if 'state' in unit else ''
        rendered.append(textwrap.indent(
            f'<trans-unit id="{unit_id}" resname="{unit_id}"{attributes}>\n'
            f'  <source>{unit["source"]}</source>\n'
            f'  <target{state}>{unit["target"]}</target>\n'
            f'</trans-unit>',
            ' ' * 6
        ))
    return XLIFF_TEMPLATE.format(locale=locale, units='\n'.join(rendered))


@pytest.fixture
def write_xliff(tmp_path):
    """Write an XLIFF file into the temporary catalogue directory and return its path."""
    def _write(filename: str, units: List[dict], locale: str = 'es') -> str:
        path = os.path.join(str(tmp_path), filename)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(build_xliff(units, locale))
        return path
    return _write


@pytest.fixture
def catalog_dir(tmp_path):
    return str(tmp_path)
