import os
from dotenv import load_dotenv

load_dotenv()

# Default container layout for builders and gen-bundle (b1|b2)
WBN_FORMAT_VERSION = os.getenv("WBN_FORMAT_VERSION", "b2")
# Default integrity block layout for signing (v1 = legacy "1b", v2 = current "2b")
WBN_INTEGRITY_BLOCK_VERSION = os.getenv("WBN_INTEGRITY_BLOCK_VERSION", "v2")

# Passphrase for encrypted PEM keys; consulted before any interactive prompt
WEB_BUNDLE_SIGNING_PASSPHRASE = os.getenv("WEB_BUNDLE_SIGNING_PASSPHRASE")

WBN_LOG_LEVEL = os.getenv("WBN_LOG_LEVEL", "INFO").upper()
