"""
RUN SCRIPT - Start the chat gateway development server
======================================================

PURPOSE:
  Runs the same normalizer/dispatcher pipeline as the deployed function behind
  a local HTTP server, so the page, assets and chat route can be tried without
  deploying.

WHAT IT DOES:
  - Imports the FastAPI app from chat_gateway.main.
  - Runs it with uvicorn on host 0.0.0.0 and port 8000.
  - reload=True restarts the server whenever a Python file changes.

USAGE:
  python run.py

  Then open http://localhost:8000 in the browser, or chat from the terminal with:
  python test.py

NOTE:
  Set DEEPSEEK_API_KEY in .env before sending chat messages.
"""

import uvicorn

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "chat_gateway.main:app",   # String path to the FastAPI app instance (module:variable).
        host="0.0.0.0",            # Listen on all interfaces so a phone on the LAN can try the page.
        port=8000,
        reload=True
    )
