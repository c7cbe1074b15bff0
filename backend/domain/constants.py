"""
Domain constants used across services/routers.
"""

# Placeholders substituted for empty tip form fields
DEFAULT_NAME = "Anonymity"
DEFAULT_MESSAGE = "Enjoy your tea!"

# Contract event carrying new memos
NEW_MEMO_EVENT = "NewMemo"
