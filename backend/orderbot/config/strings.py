# /orderbot/config/strings.py

# This file contains all user-facing strings, making them easy to manage,
# update, and eventually localize without changing application logic.

# Order message
ORDER_TITLE = "📦 Order check"
ORDER_FOOTER = "Mark item by item or use the page buttons."
LABEL_ORDER = "Order"
LABEL_CUSTOMER = "Customer"
LABEL_MARKETPLACE = "Channel"
LABEL_STATUS = "Order status"
LABEL_ITEMS = "Items"
PAGE_INDICATOR = "Page {page}/{total_pages}"
NO_ITEMS = "_No items_"

# Status labels
ORDER_STATUS_LABELS = {
    "COMPLETE": "COMPLETE",
    "INCOMPLETE": "INCOMPLETE",
    "PENDING": "PENDING",
}

# Buttons
BUTTON_HAVE = "Have {number}"
BUTTON_MISSING = "Missing {number}"
BUTTON_PREVIOUS = "⬅️ Previous page"
BUTTON_NEXT = "Next page ➡️"
BUTTON_PAGE_HAVE = "All have (page)"
BUTTON_PAGE_MISSING = "All missing (page)"

# Missing item prompt
MISSING_PROMPT_TITLE = "Missing item {number}"
MISSING_PROMPT_TITLE_GENERIC = "Missing item"
MISSING_PROMPT_LABEL = "What is missing? (optional)"
MISSING_PROMPT_PLACEHOLDER = "e.g. missing lavender and mint"

# Private notices
PONG = "🏓 Pong! Bot online."
ORDER_NOT_FOUND = (
    "⚠️ I could not find this order in memory (the bot may have restarted). "
    "Run /sync to post it again."
)
LEDGER_UNAVAILABLE = "⚠️ The order sheet is not responding right now. Please try again in a moment."
LEDGER_REJECTED = "❌ The order sheet rejected the update. Check the logs."
UNKNOWN_ACTION = "⚠️ This button is no longer valid. Run /sync to get a fresh message."
GENERIC_ERROR = "❌ An internal error occurred. Check the logs."
BULK_PARTIAL_FAILURE = "⚠️ {failed} of {total} items on this page could not be saved. Try again."
UNKNOWN_COMMAND = "⚠️ Unknown command."

# Job replies
JOB_ALREADY_RUNNING = "⏳ This job is already running. Try again in a moment."
SYNC_DONE = "✅ Sync finished: {posted} new order(s) posted, {skipped} already in the channel, {failed} failed."
CLEANUP_DONE = "🧹 Cleanup finished: {messages_deleted} message(s) and {rows_deleted} row(s) removed, {failed} failed."
