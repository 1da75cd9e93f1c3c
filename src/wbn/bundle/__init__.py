from .builder import BundleBuilder
from .bundle import Bundle, Response
from .headers import HeaderMap, validate_exchange_url
from .version import Version

__all__ = ["Bundle", "BundleBuilder", "HeaderMap", "Response", "Version", "validate_exchange_url"]
