"""End-to-end runs over a catalogue directory, with the HTTP layer mocked."""
import os
from unittest.mock import MagicMock, patch

import pytest

from xlf_translator import translate_xlf_files
from xlf_translator.app_config import AppConfig
from xlf_translator.microsoft_translator import MicrosoftTranslator
from xlf_translator.xlf_translator import TranslationJob, XlfTranslator
from xlf_translator.xliff_document import XliffDocument


def _microsoft_response(text):
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = [{'translations': [{'text': text, 'to': 'es'}]}]
    return response


@pytest.fixture
def microsoft():
    session = MagicMock()
    session.post.return_value = _microsoft_response('Hola %1%')
    return MicrosoftTranslator('secret-key', session=session)


def _read(path):
    with open(path, 'rb') as f:
        return f.read()


def test_end_to_end_translation(catalog_dir, write_xliff, microsoft):
    path = write_xliff('messages.es.xlf', [{'source': 'Hello %name%', 'target': 'Hello %name%'}])

    stats = XlfTranslator(microsoft, catalog_dir, TranslationJob(source_locale='en_GB')).translate()

    document = XliffDocument.load(path)
    unit = next(document.trans_units())
    assert document.target_text(unit) == 'Hola %name%'
    assert unit.get('machinetranslated') == '1'
    assert unit.get('datemachinetranslated')
    assert (stats.strings_requested, stats.strings_translated, stats.files_written) == (1, 1, 1)

    params = microsoft.session.post.call_args.kwargs['params']
    assert (params['from'], params['to']) == ('en', 'es')


def test_dry_run_leaves_files_untouched(catalog_dir, write_xliff, microsoft):
    path = write_xliff('messages.es.xlf', [{'source': 'Hello %name%', 'target': 'Hello %name%'}])
    before = _read(path)

    stats = XlfTranslator(microsoft, catalog_dir, TranslationJob(commit=False)).translate()

    assert _read(path) == before
    assert stats.strings_translated == 1
    assert stats.files_written == 0
    assert stats.catalogues_translated == ['messages']


def test_second_run_is_a_no_op(catalog_dir, write_xliff, microsoft):
    path = write_xliff('messages.es.xlf', [{'source': 'Hello %name%', 'target': 'Hello %name%'}])
    XlfTranslator(microsoft, catalog_dir).translate()
    after_first_run = _read(path)
    microsoft.session.post.reset_mock()

    stats = XlfTranslator(microsoft, catalog_dir).translate()

    microsoft.session.post.assert_not_called()
    assert stats.files_written == 0
    assert _read(path) == after_first_run


def test_untouched_units_keep_their_bytes(catalog_dir, write_xliff, microsoft):
    path = write_xliff('messages.es.xlf', [
        {'source': 'Goodbye', 'target': 'Adiós', 'state': 'translated'},
        {'source': 'Hello %name%', 'target': 'Hello %name%'},
    ])

    XlfTranslator(microsoft, catalog_dir).translate()

    content = _read(path).decode('utf-8')
    assert '<target state="translated">Adiós</target>' in content
    assert 'source-language="en" target-language="es"' in content


def test_placeholder_preserved_when_provider_reorders(catalog_dir, write_xliff, microsoft):
    microsoft.session.post.return_value = _microsoft_response('%2% mensajes para %1%')
    path = write_xliff('messages.es.xlf', [
        {'source': '%name% has %count% messages', 'target': '%name% has %count% messages'}
    ])

    XlfTranslator(microsoft, catalog_dir).translate()

    document = XliffDocument.load(path)
    assert document.target_text(next(document.trans_units())) == '%count% mensajes para %name%'


def test_tolerant_run_skips_locale_sharing_the_source_language(catalog_dir, write_xliff, microsoft):
    write_xliff('messages.en_US.xlf', [{'source': 'Hello %name%', 'target': 'Hello %name%'}], 'en_US')
    spanish = write_xliff('messages.es.xlf', [{'source': 'Hello %name%', 'target': 'Hello %name%'}])

    stats = XlfTranslator(microsoft, catalog_dir, TranslationJob(
        excluded_locales=(), filename_policy='tolerant'
    )).translate()

    assert stats.locales_skipped == ['en_US']
    assert stats.files_written == 1
    document = XliffDocument.load(spanish)
    assert document.target_text(next(document.trans_units())) == 'Hola %name%'
    assert microsoft.session.post.call_count == 1


class TestCommandLine:

    def _app_config(self, translator, source_dir, job=None, report_path=None):
        return AppConfig(
            project_root=source_dir,
            source_dir=source_dir,
            summary_report_path=report_path,
            job=job or TranslationJob(),
            provider=translator.provider,
            translator=translator
        )

    def test_main_writes_report(self, catalog_dir, write_xliff, fake_translator, tmp_path):
        write_xliff('messages.es.xlf', [{'source': 'Hello', 'target': 'Hello'}])
        report_path = str(tmp_path / 'reports' / 'summary.md')
        app_config = self._app_config(fake_translator(responses={'Hello': 'Hola'}), catalog_dir,
                                      report_path=report_path)

        with patch.object(translate_xlf_files, 'load_app_config', return_value=app_config) as mock_load:
            exit_status = translate_xlf_files.main(['--dry-run', '--locale', 'es', '--locale', 'de'])

        assert exit_status == 0
        config_path, overrides = mock_load.call_args.args
        assert config_path is None
        assert overrides['dry_run'] is True
        assert overrides['locales'] == ['es', 'de']
        assert overrides['new_only'] is None
        assert overrides['filename_policy'] is None

        with open(report_path, encoding='utf-8') as f:
            report = f.read()
        assert '- Total strings translated: 1' in report
        assert '- Catalogues translated: messages' in report

    def test_main_strict_abort_exits_nonzero(self, catalog_dir, write_xliff, fake_translator):
        write_xliff('bad.name.es.xlf', [{'source': 'Hello', 'target': 'Hello'}])
        app_config = self._app_config(fake_translator(), catalog_dir)

        with patch.object(translate_xlf_files, 'load_app_config', return_value=app_config):
            assert translate_xlf_files.main([]) == 1

    def test_main_tolerant_flag(self, catalog_dir, write_xliff, fake_translator):
        write_xliff('bad.name.es.xlf', [{'source': 'Hello', 'target': 'Hello'}])
        app_config = self._app_config(fake_translator(), catalog_dir, job=TranslationJob(filename_policy='tolerant'))

        with patch.object(translate_xlf_files, 'load_app_config', return_value=app_config) as mock_load:
            assert translate_xlf_files.main(['--tolerant']) == 0

        assert mock_load.call_args.args[1]['filename_policy'] == 'tolerant'

    def test_main_file_error_exits_nonzero(self, catalog_dir, fake_translator):
        with open(os.path.join(catalog_dir, 'messages.es.xlf'), 'w', encoding='utf-8') as f:
            f.write('not xml')
        app_config = self._app_config(fake_translator(), catalog_dir)

        with patch.object(translate_xlf_files, 'load_app_config', return_value=app_config):
            assert translate_xlf_files.main([]) == 1

    def test_write_summary_report_lists_skipped_and_failed(self, tmp_path):
        from xlf_translator.xlf_translator import RunStatistics

        stats = RunStatistics(files_skipped={'README.md': "not a '.xlf' file"},
                              file_errors={'messages.de.xlf': 'Permission denied'})
        report_path = str(tmp_path / 'summary.md')

        translate_xlf_files.write_summary_report(stats, report_path, '/srv/translations')

        with open(report_path, encoding='utf-8') as f:
            report = f.read()
        assert 'Source directory: `/srv/translations`' in report
        assert "- `README.md`: not a '.xlf' file" in report
        assert '- `messages.de.xlf`: Permission denied' in report
