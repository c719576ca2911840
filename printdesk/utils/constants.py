"""
printdesk/utils/constants.py

Purpose: Centralized static content

- User-facing messages that are not part of the menu itself
- Special commands
- Messenger platform limits

(Menu texts and options live in printdesk/flow/menu.py)
"""

APP_NAME = "PrintDesk"
APP_VERSION = "1.0.0"

# ============================================================
# CONVERSATION
# ============================================================

UNMATCHED_INPUT_MESSAGE = """Desculpe, não entendi. 🤔
Escolha uma das opções abaixo."""

OPTIONS_PROMPT = "Escolha uma opção:"

ATTACHMENT_RECEIVED_MESSAGE = """Recebemos o seu anexo. 📎
Por enquanto só consigo responder às opções do menu."""

AUTHENTICATION_SUCCESS_MESSAGE = "Autenticação realizada com sucesso."

STORE_FAILURE_MESSAGE = """⚠️ Estamos com uma instabilidade temporária.
Tente novamente em alguns instantes."""

# ============================================================
# SPECIAL COMMANDS (answered without changing state)
# ============================================================

STATUS_COMMAND = "#estado"
VERSION_COMMAND = "#versao"

STATUS_MESSAGE = "📍 Você está em: {state}"
VERSION_MESSAGE = f"🖨️ {APP_NAME} v{APP_VERSION}"

# ============================================================
# MESSENGER PLATFORM LIMITS
# ============================================================

MAX_QUICK_REPLIES = 13
MAX_QUICK_REPLY_TITLE_LENGTH = 20
MAX_TEXT_LENGTH = 2000
