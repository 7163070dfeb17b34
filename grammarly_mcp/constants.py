"""Grammarly URLs, UI instructions, and text limits."""

# ── URLs ─────────────────────────────────────────────────────────────────────

GRAMMARLY_APP_URL = "https://app.grammarly.com"
GRAMMARLY_HOST = "app.grammarly.com"

# URL path fragments Grammarly redirects signed-out users to
SIGNED_OUT_PATHS = ("/signin", "/login", "/signup")

BROWSER_USE_API_BASE = "https://api.browser-use.com/api/v2"

# ── Text Limits ──────────────────────────────────────────────────────────────

MAX_TEXT_LENGTH = 8000  # hard cap before anything is typed
SHORT_TEXT_LIMIT = 500  # at or below: natural-language typing; above: direct fill

EDITOR_SELECTOR = '[contenteditable="true"]'

# ── Observe / Act Instructions ───────────────────────────────────────────────

AUTH_INDICATOR_INSTRUCTION = (
    "Find elements that only appear for a signed-in user, such as the user "
    "profile avatar, account menu, or the documents list"
)

NEW_DOCUMENT_OBSERVE = "Find the 'New' button or link that creates a new document"
NEW_DOCUMENT_FALLBACK = "Click on 'New' or 'New document' to create a new blank document"

TYPE_TEXT_INSTRUCTION = "Type the following text exactly: {text}"

AI_DETECTION_OBSERVE = (
    "Find the AI detection or 'Check for AI text & plagiarism' button in the side panel"
)
AI_DETECTION_FALLBACK = (
    "Open the AI detection panel by clicking 'Check for AI text & plagiarism' "
    "or the AI Detector agent in the right-hand panel"
)

EXTRACT_INSTRUCTION = (
    "Extract the AI Detection Percentage (how much of the text appears AI-generated) "
    "and the Plagiarism Percentage from the Grammarly panels. Use null for any value "
    "that is not visible. Include the overall score if shown and any notes about "
    "warnings or unavailable features."
)
PARTIAL_EXTRACT_INSTRUCTION = (
    "Extract whatever AI detection and plagiarism percentages are visible on the page; "
    "use null when a value is not shown"
)

CLEANUP_DOCUMENT_INSTRUCTION = (
    "Delete the current document, or close it and return to the documents list"
)

CLEANUP_DOCUMENT_OBSERVE = "Find the button or menu item that deletes the current document"
