"""
CHAT GATEWAY APPLICATION PACKAGE
================================

One request handler for several function runtimes: serves the terminal-style
chat page and its assets, answers CORS preflights, and proxies chat messages to
the upstream chat-completion API.

  from chat_gateway.handler import handler          # FaaS entry point
  from chat_gateway.main import app                 # local development server

FILE STRUCTURE:
  chat_gateway/
    __init__.py   - This file; marks 'chat_gateway' as a package.
    handler.py    - Function entry point: event -> normalizer -> dispatcher -> response mapping.
    main.py       - FastAPI development server feeding the same pipeline.
    models.py     - Pydantic models: canonical request/response, chat body, upstream payload.
    services/     - Normalizer, dispatcher, chat proxy, static files.
    utils/        - Response builders shared by the services.
"""
