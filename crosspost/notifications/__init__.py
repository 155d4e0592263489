"""Human-directed alerts for failed publications."""
from crosspost.notifications.email import EmailNotifier, build_fallback_html, build_fallback_text

__all__ = ["EmailNotifier", "build_fallback_text", "build_fallback_html"]
