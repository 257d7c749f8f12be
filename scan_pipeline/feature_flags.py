"""
Feature flags for the identification cascade.

Enable/disable stages and tracing via environment variables.

Usage:
    from scan_pipeline.feature_flags import FLAGS

    if FLAGS.verbose:
        print("[CASCADE] ...")
"""
import os


class FeatureFlags:
    """
    Cascade feature flags.

    Set via environment variables or modify defaults here.
    Example: export ENABLE_AI_VISION=false
    """

    # Tagged trace lines on stdout ([CASCADE], [STAGE], [MATCHER], ...)
    verbose: bool = os.getenv("SCAN_VERBOSE", "0") == "1"

    # OCR label reading; when off, OCR and name search are dropped from every profile
    enable_ocr: bool = os.getenv("ENABLE_OCR", "true").lower() == "true"

    # Paid vision model call; when off, AI vision and reconciliation are dropped
    enable_ai_vision: bool = os.getenv("ENABLE_AI_VISION", "true").lower() == "true"

    @classmethod
    def print_status(cls):
        """Print current flag status for debugging."""
        print("\n[FLAGS] ===== Feature Flags Status =====")
        print(f"[FLAGS]   verbose: {cls.verbose}")
        print(f"[FLAGS]   enable_ocr: {cls.enable_ocr}")
        print(f"[FLAGS]   enable_ai_vision: {cls.enable_ai_vision}")


FLAGS = FeatureFlags()


def trace(tag: str, message: str) -> None:
    """Print a tagged trace line when verbose tracing is on."""
    if FLAGS.verbose:
        print(f"[{tag}] {message}")
