"""
UTILITIES PACKAGE
=================

  responses - CanonicalResponse builders (JSON, error envelope, text, binary, empty) with CORS headers.
"""
