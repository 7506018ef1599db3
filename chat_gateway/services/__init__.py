"""
SERVICES PACKAGE
================

Per-request logic; no HTTP server code and no module-level state.

MODULES:
    normalizer   - Any inbound event shape -> CanonicalRequest (never raises)
    dispatcher   - Precedence table: preflight, chat, page, asset, not found
    chat_proxy   - Validation, prompt assembly, single upstream call, response mapping
    static_files - Entry page and assets under the read-only asset root
"""
