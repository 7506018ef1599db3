"""
CHAT GATEWAY TEST CLIENT - Terminal chat against the dev server
===============================================================

PURPOSE:
A command-line client for trying POST /chat without the web page. The gateway
keeps no conversation state, so this client remembers the recent turns itself
and sends them back as recentConversations on every message, exactly like the
browser frontend does.

USAGE:
    python test.py

    Make sure the server is running first: python run.py

COMMANDS:
    /history - Show the turns that will be sent with the next message
    /clear   - Forget the recent turns and start fresh
    /quit or /exit - Exit
"""

import requests

try:
    from config import ASSISTANT_NAME, MAX_CHAT_HISTORY_TURNS
except ImportError:
    ASSISTANT_NAME = "Shier AI"
    MAX_CHAT_HISTORY_TURNS = 20


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
# Dev server URL; change if run.py listens elsewhere or to try a deployed function.
BASE_URL = "http://localhost:8000"
# Client-side memory: list of {"user": ..., "assistant": ...} pairs, oldest first.
RECENT_CONVERSATIONS = []


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header():
    print("\n" + "="*60)
    print(f"💬 {ASSISTANT_NAME} - Terminal Chat")
    print("="*60)
    print("\nCommands:")
    print("  /history - See recent turns")
    print("  /clear - Start over")
    print("  /quit - Exit")
    print("="*60 + "\n")


def get_user_input():
    try:
        return input("\nYou: ").strip()
    except (KeyboardInterrupt, EOFError):
        return None


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def send_message(message):
    """
    POST the message plus recent turns to /chat and return the text to print.

    A successful reply is appended to RECENT_CONVERSATIONS (trimmed to the
    server's turn limit); errors are returned as a printable line and not remembered.
    """
    try:
        response = requests.post(
            f"{BASE_URL}/chat",
            json={
                "message": message,
                "recentConversations": RECENT_CONVERSATIONS,
            },
            timeout=35  # Slightly above the gateway's own 30s upstream timeout.
        )
        data = response.json()
    except requests.exceptions.ConnectionError:
        return "❌ Cannot connect to the gateway. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "❌ Request timed out."
    except ValueError:
        return f"❌ Error: {response.status_code} - {response.text}"

    if response.status_code == 200 and "reply" in data:
        reply = data["reply"]
        RECENT_CONVERSATIONS.append({"user": message, "assistant": reply})
        del RECENT_CONVERSATIONS[:-MAX_CHAT_HISTORY_TURNS]
        return reply
    return f"❌ {data.get('error', response.status_code)}"


def format_history():
    if not RECENT_CONVERSATIONS:
        return "No messages yet"

    output = f"\n📜 Recent turns ({len(RECENT_CONVERSATIONS)}):\n"
    output += "-" * 60 + "\n"
    for i, turn in enumerate(RECENT_CONVERSATIONS, 1):
        output += f"{i}. You: {turn['user']}\n"
        output += f"   {ASSISTANT_NAME}: {turn['assistant']}\n"
    output += "-" * 60 + "\n"
    return output


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    print_header()

    while True:
        user_input = get_user_input()
        if user_input is None or user_input in ["/quit", "/exit"]:
            print("\n👋 Goodbye!")
            break
        if not user_input:
            continue
        if user_input == "/history":
            print(format_history())
            continue
        if user_input == "/clear":
            RECENT_CONVERSATIONS.clear()
            print("\n🔄 Cleared. Starting fresh!")
            continue
        if user_input.startswith("/"):
            print(f"❌ Unknown command: {user_input}")
            continue

        print(f"🤖 {ASSISTANT_NAME}: ", end="", flush=True)
        print(send_message(user_input))


if __name__ == "__main__":
    main()
