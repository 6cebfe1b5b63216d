"""stanfix - automatic PHPDoc fixes for PHPStan diagnostics."""

__version__ = "0.3.0"
