"""Command line entry point: machine translate the XLIFF catalogues of a directory."""
import argparse
import logging
import os
import sys
from typing import List, Optional

from xlf_translator.app_config import load_app_config
from xlf_translator.exceptions import FilenameParseError, UnsupportedLocaleError
from xlf_translator.xlf_translator import FILENAME_POLICY_TOLERANT, RunStatistics, XlfTranslator

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xlf-translate",
        description="Machine translate untranslated trans-units in catalogue.locale.xlf files."
    )
    parser.add_argument("--config", help="Path to the YAML configuration file")
    parser.add_argument("--source-dir", help="Directory containing the xlf files")
    parser.add_argument("--source-locale", help="Locale of the source strings, e.g. en_GB")
    parser.add_argument("--locale", action="append", dest="locales", metavar="LOCALE",
                        help="Only translate this locale (repeatable)")
    parser.add_argument("--catalogue", action="append", dest="catalogues", metavar="CATALOGUE",
                        help="Only translate this catalogue (repeatable)")
    parser.add_argument("--dry-run", action="store_true", default=None,
                        help="Translate in memory without writing files")
    parser.add_argument("--new-only", action="store_true", default=None,
                        help="Only translate targets with state=\"new\"")
    parser.add_argument("--memory", action="store_true", default=None,
                        help="Skip units already marked as machine translated")
    parser.add_argument("--tolerant", action="store_const", const=FILENAME_POLICY_TOLERANT,
                        dest="filename_policy", help="Skip malformed file names instead of aborting")
    parser.add_argument("--output-translated", action="store_true", default=None,
                        help="Log every translated source/target pair")
    return parser


def write_summary_report(stats: RunStatistics, report_path: str, source_dir: str) -> None:
    """Write the end-of-run summary as Markdown."""
    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)

    with open(report_path, 'w', encoding='utf-8') as f:
        f.write("## XLF Machine Translation Summary\n\n")
        f.write(f"Source directory: `{source_dir}`\n\n")
        for line in stats.summary_lines():
            f.write(f"- {line}\n")
        if stats.files_skipped:
            f.write("\n### Skipped files\n\n")
            for filename, reason in stats.files_skipped.items():
                f.write(f"- `{filename}`: {reason}\n")
        if stats.file_errors:
            f.write("\n### Failed files\n\n")
            for filename, error in stats.file_errors.items():
                f.write(f"- `{filename}`: {error}\n")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to orchestrate the translation process.

    Returns:
        The process exit status: 0 on success, 1 if the run aborted or any file failed.
    """
    args = build_arg_parser().parse_args(argv)
    overrides = {
        'source_dir': args.source_dir,
        'source_locale': args.source_locale,
        'locales': args.locales,
        'catalogues': args.catalogues,
        'dry_run': args.dry_run,
        'new_only': args.new_only,
        'memory': args.memory,
        'filename_policy': args.filename_policy,
        'output_translated': args.output_translated,
    }
    app_config = load_app_config(args.config, overrides)

    xlf_translator = XlfTranslator(app_config.translator, app_config.source_dir, app_config.job)
    exit_status = 0
    try:
        stats = xlf_translator.translate()
    except (FilenameParseError, UnsupportedLocaleError) as run_exc:
        logger.error("Translation run aborted: %s", run_exc)
        stats = xlf_translator.stats
        exit_status = 1

    if stats.file_errors:
        exit_status = 1

    if app_config.summary_report_path:
        write_summary_report(stats, app_config.summary_report_path, app_config.source_dir)
        logger.info("Summary report written to %s", app_config.summary_report_path)

    return exit_status


if __name__ == "__main__":
    sys.exit(main())
