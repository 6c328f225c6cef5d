"""
Translates XLIFF catalogues in a directory using a MachineTranslator.

File names are expected in the format ``catalogue.locale.xlf``, e.g.
``messages.de.xlf`` or ``validators.de.xlf``. Only trans-units whose target
still equals the source are sent for translation; anything that already
diverged from the source is left alone.
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from lxml import etree
from tqdm import tqdm

from xlf_translator.exceptions import (
    DocumentParseError,
    FilenameParseError,
    UnsupportedLocaleError,
)
from xlf_translator.machine_translator import DEFAULT_PLACEHOLDER_PATTERNS, MachineTranslator
from xlf_translator.translation_validator import (
    DEFAULT_FILE_EXTENSION,
    check_placeholder_parity,
    parse_catalog_filename,
)
from xlf_translator.xliff_document import XliffDocument

logger = logging.getLogger(__name__)

FILENAME_POLICY_STRICT = "strict"
FILENAME_POLICY_TOLERANT = "tolerant"
FILENAME_POLICIES = (FILENAME_POLICY_STRICT, FILENAME_POLICY_TOLERANT)

FAILURE_BUDGET_CUMULATIVE = "cumulative"
FAILURE_BUDGET_CONSECUTIVE = "consecutive"
FAILURE_BUDGETS = (FAILURE_BUDGET_CUMULATIVE, FAILURE_BUDGET_CONSECUTIVE)

DEFAULT_MAX_FAILURES = 10

# Custom trans-unit attributes written by the process.
MACHINE_TRANSLATED_ATTRIBUTE = "machinetranslated"
MACHINE_TRANSLATED_DATE_ATTRIBUTE = "datemachinetranslated"
MACHINE_TRANSLATED_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NEW_STATE = "new"


@dataclass(frozen=True)
class TranslationJob:
    """Settings for a single translation run."""
    source_locale: str = "en_GB"
    locales: Tuple[str, ...] = ()
    # None excludes every regional variant of the source locale.
    excluded_locales: Optional[Tuple[str, ...]] = None
    catalogues: Tuple[str, ...] = ()
    new_only: bool = False
    commit: bool = True
    memory: bool = False
    output_translated: bool = False
    filename_policy: str = FILENAME_POLICY_STRICT
    max_failures: int = DEFAULT_MAX_FAILURES
    failure_budget: str = FAILURE_BUDGET_CUMULATIVE
    file_extension: str = DEFAULT_FILE_EXTENSION
    translate_options: Dict[str, str] = field(default_factory=dict)
    placeholder_patterns: Tuple[str, ...] = tuple(DEFAULT_PLACEHOLDER_PATTERNS)
    show_progress: bool = False

    def __post_init__(self):
        if self.filename_policy not in FILENAME_POLICIES:
            raise ValueError(f"filename_policy must be one of {FILENAME_POLICIES}, got '{self.filename_policy}'")
        if self.failure_budget not in FAILURE_BUDGETS:
            raise ValueError(f"failure_budget must be one of {FAILURE_BUDGETS}, got '{self.failure_budget}'")
        if self.max_failures < 1:
            raise ValueError("max_failures must be at least 1")


@dataclass
class RunStatistics:
    """Counters accumulated over one directory walk."""
    strings_requested: int = 0
    strings_translated: int = 0
    files_written: int = 0
    locales_translated: List[str] = field(default_factory=list)
    locales_skipped: List[str] = field(default_factory=list)
    catalogues_translated: List[str] = field(default_factory=list)
    catalogues_skipped: List[str] = field(default_factory=list)
    files_skipped: Dict[str, str] = field(default_factory=dict)
    file_errors: Dict[str, str] = field(default_factory=dict)
    parsed: List[str] = field(default_factory=list)

    @staticmethod
    def _add_unique(items: List[str], value: str) -> None:
        if value not in items:
            items.append(value)

    def skip_catalogue(self, catalogue: str) -> None:
        self._add_unique(self.catalogues_skipped, catalogue)

    def skip_locale(self, locale: str) -> None:
        self._add_unique(self.locales_skipped, locale)

    def record_translated_file(self, filename: str, catalogue: str, locale: str) -> None:
        self._add_unique(self.catalogues_translated, catalogue)
        self._add_unique(self.locales_translated, locale)
        self.parsed.append(filename)

    def summary_lines(self) -> List[str]:
        lines = [
            f"Total locales translated: {len(self.locales_translated)}",
            f"Total strings requested: {self.strings_requested}",
            f"Total strings translated: {self.strings_translated}",
            "Catalogues translated: " + (', '.join(self.catalogues_translated) or '0'),
        ]
        if self.catalogues_skipped:
            lines.append("Catalogues skipped: " + ', '.join(self.catalogues_skipped))
        if self.locales_skipped:
            lines.append("Locales skipped: " + ', '.join(self.locales_skipped))
        if self.files_skipped:
            lines.append("Files skipped: " + ', '.join(self.files_skipped))
        if self.file_errors:
            lines.append("Files failed: " + ', '.join(self.file_errors))
        lines.append(f"xlf updated: {self.files_written}")
        return lines


@dataclass
class _FileResult:
    translated: List[Tuple[str, str]] = field(default_factory=list)
    budget_exhausted: bool = False


class XlfTranslator:
    """Walks a directory of XLIFF catalogues and machine translates untranslated units."""

    def __init__(self, translator: MachineTranslator, directory: str, job: Optional[TranslationJob] = None):
        """
        Args:
            translator: The provider used for translation and locale normalization.
            directory: The directory containing the catalogue files.
            job: Run settings, defaults to ``TranslationJob()``.
        """
        self.translator = translator
        self.directory = directory
        self.job = job or TranslationJob()
        # Statistics of the most recent run, kept when a strict run aborts.
        self.stats: Optional[RunStatistics] = None

    def translate(self) -> RunStatistics:
        """
        Translate every admitted catalogue file in the directory.

        Returns:
            The statistics of the run.

        Raises:
            FilenameParseError: On a malformed file name under the strict policy.
            UnsupportedLocaleError: On an unresolvable source locale, or on an unusable
                target locale under the strict policy.
        """
        stats = RunStatistics()
        self.stats = stats

        # An unresolvable source locale is fatal under either policy.
        if not self.translator.normalize_locale(self.job.source_locale):
            raise UnsupportedLocaleError(
                f"No {self.translator.provider} locale could be resolved for the source locale "
                f"'{self.job.source_locale}'."
            )

        logger.info("-----------------------------------------")
        logger.info("XlfTranslator")
        logger.info("-----------------------------------------")
        logger.info("MT provider: %s", self.translator.provider)
        logger.info("Translating xlf in: %s", self.directory)

        try:
            for filename in sorted(os.listdir(self.directory)):
                file_path = os.path.join(self.directory, filename)
                if not os.path.isfile(file_path):
                    continue
                self._process_file(filename, file_path, stats)
        finally:
            # Partial progress is reported even when the run aborts.
            self.log_summary(stats)

        return stats

    def should_parse_catalogue(self, catalogue: str) -> bool:
        return not self.job.catalogues or catalogue in self.job.catalogues

    def should_parse_locale(self, locale: str) -> bool:
        """Apply the allow-list, the deny-list and the source locale rule."""
        if self.job.locales and locale not in self.job.locales:
            return False

        if self.job.excluded_locales is None:
            if self._is_source_variant(locale):
                return False
        elif locale in self.job.excluded_locales:
            return False

        return locale != self.job.source_locale

    def _is_source_variant(self, locale: str) -> bool:
        source_code = self.translator.normalize_locale(self.job.source_locale)
        return bool(source_code) and self.translator.normalize_locale(locale) == source_code

    def is_candidate(self, document: XliffDocument, unit: etree._Element) -> bool:
        """Decide whether a trans-unit still needs machine translation."""
        target_node = document.target_node(unit)
        if target_node is None:
            return False

        if self.job.new_only and document.get_attribute(target_node, 'state') != NEW_STATE:
            return False

        source = document.source_text(unit)
        target = document.target_text(unit)
        if not source or not target:
            return False

        # A target that differs from its source has been translated already.
        if source != target:
            return False

        if self.job.memory and document.get_attribute(unit, MACHINE_TRANSLATED_ATTRIBUTE) is not None:
            return False

        return True

    def _admit(self, filename: str, stats: RunStatistics) -> Optional[Tuple[str, str]]:
        try:
            catalogue, locale = parse_catalog_filename(filename, self.job.file_extension)
        except FilenameParseError as parse_exc:
            if self.job.filename_policy == FILENAME_POLICY_STRICT:
                raise
            logger.warning("%s Skipping.", parse_exc)
            stats.files_skipped[filename] = parse_exc.reason
            return None

        if not self.should_parse_catalogue(catalogue):
            stats.skip_catalogue(catalogue)
            return None

        if not self.should_parse_locale(locale):
            stats.skip_locale(locale)
            return None

        provider_code = self.translator.normalize_locale(locale)
        if not provider_code:
            message = f"No {self.translator.provider} locale could be resolved for '{locale}' ({filename})."
        elif provider_code == self.translator.normalize_locale(self.job.source_locale):
            message = (f"Locale '{locale}' ({filename}) resolves to the same {self.translator.provider} "
                       f"language as the source locale '{self.job.source_locale}'.")
        else:
            return catalogue, locale

        if self.job.filename_policy == FILENAME_POLICY_STRICT:
            raise UnsupportedLocaleError(message)
        logger.warning("%s Skipping.", message)
        stats.skip_locale(locale)
        return None

    def _process_file(self, filename: str, file_path: str, stats: RunStatistics) -> None:
        admitted = self._admit(filename, stats)
        if admitted is None:
            return
        catalogue, locale = admitted

        logger.info("File: %s", filename)
        logger.info("Catalogue: %s", catalogue)
        logger.info("Locale: %s (MT locale: %s)", locale, self.translator.normalize_locale(locale))

        try:
            document = XliffDocument.load(file_path)
        except (OSError, DocumentParseError) as load_exc:
            logger.error("Failed to load '%s': %s", file_path, load_exc)
            stats.file_errors[filename] = str(load_exc)
            return

        result = self._translate_document(document, locale, stats)

        if not result.translated:
            logger.warning("No strings translated")
            return

        logger.info("Strings translated: %s", len(result.translated))

        if self.job.output_translated:
            for index, (source, translated) in enumerate(result.translated, start=1):
                logger.info("[#%s] Source: %s", index, source)
                logger.info("[#%s] Translated: %s", index, translated)

        stats.record_translated_file(filename, catalogue, locale)

        if not self.job.commit:
            logger.info("[Dry Run] Would write %s translated string(s) to '%s'.", len(result.translated), file_path)
            return

        try:
            document.save(file_path)
        except (OSError, ValueError, etree.LxmlError) as write_exc:
            logger.error("Failed to write '%s': %s", file_path, write_exc)
            stats.file_errors[filename] = str(write_exc)
            return

        stats.files_written += 1
        logger.info("Translated file saved to '%s'.", file_path)

    def _translate_document(self, document: XliffDocument, locale: str, stats: RunStatistics) -> _FileResult:
        result = _FileResult()
        fail_count = 0

        units = list(document.trans_units())
        for unit in tqdm(units, desc=locale, unit="unit", disable=not self.job.show_progress, leave=False):
            if fail_count >= self.job.max_failures:
                # The remote service is likely degraded or rate limiting.
                result.budget_exhausted = True
                logger.warning(
                    "Reached %s failed translation requests; skipping the remaining units of this file.",
                    fail_count
                )
                break

            if not self.is_candidate(document, unit):
                continue

            source = document.source_text(unit)
            stats.strings_requested += 1
            translated = self.translator.translate(
                source, self.job.source_locale, locale, dict(self.job.translate_options) or None
            )

            if not translated:
                fail_count += 1
                logger.debug("No translation returned for '%s'.", source)
                continue

            if self.job.failure_budget == FAILURE_BUDGET_CONSECUTIVE:
                fail_count = 0

            if not check_placeholder_parity(source, translated, self.job.placeholder_patterns):
                logger.warning("Placeholder mismatch between '%s' and '%s'.", source, translated)

            self._merge(document, unit, translated)
            result.translated.append((source, translated))
            stats.strings_translated += 1

        return result

    def _merge(self, document: XliffDocument, unit: etree._Element, translated: str) -> None:
        document.set_attribute(unit, MACHINE_TRANSLATED_ATTRIBUTE, '1')
        document.set_attribute(unit, MACHINE_TRANSLATED_DATE_ATTRIBUTE,
                               datetime.now().strftime(MACHINE_TRANSLATED_DATE_FORMAT))

        target_node = document.target_node(unit)
        if self.translator.contains_html(translated):
            document.set_cdata(target_node, translated)
        else:
            document.set_text(target_node, translated)

    @staticmethod
    def log_summary(stats: RunStatistics) -> None:
        logger.info("Summary")
        logger.info("-----------------------------------------")
        for line in stats.summary_lines():
            logger.info(line)
        for filename, error in stats.file_errors.items():
            logger.error("  - %s: %s", filename, error)
        logger.info("Done")
