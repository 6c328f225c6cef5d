"""Exceptions raised by the XLF translator."""


class XlfTranslatorError(Exception):
    """Base class for all errors raised by this package."""


class FilenameParseError(XlfTranslatorError):
    """A catalogue file name does not follow ``catalogue.locale.xlf``."""

    def __init__(self, filename: str, reason: str):
        super().__init__(f"Cannot parse file '{filename}': {reason}")
        self.filename = filename
        self.reason = reason


class UnsupportedLocaleError(XlfTranslatorError, ValueError):
    """A locale code cannot be resolved to a provider locale."""


class DocumentParseError(XlfTranslatorError):
    """An XLIFF document could not be parsed."""


class ConfigurationError(XlfTranslatorError):
    """The translator or job configuration is unusable."""
