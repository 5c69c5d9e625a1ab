"""
Constants
Centralised storage for action kinds, diff kinds, progress stages and
transcript wording.
"""
CREATE_FILE = "CREATE_FILE"
CREATE_DIR = "CREATE_DIR"
UPDATE_FILE = "UPDATE_FILE"
DELETE_FILE = "DELETE_FILE"
DELETE_DIR = "DELETE_DIR"
ACTION_KINDS = [CREATE_FILE, CREATE_DIR, UPDATE_FILE, DELETE_FILE, DELETE_DIR]

DIFF_KINDS = ["create", "update", "delete", "mkdir", "rmdir", "blocked"]
DIFF_KIND_FOR_ACTION = {
    CREATE_FILE: "create",
    CREATE_DIR: "mkdir",
    UPDATE_FILE: "update",
    DELETE_FILE: "delete",
    DELETE_DIR: "rmdir",
}
BLOCKED_PREFIX = "BLOCKED"
BLOCKED_SUMMARY = "BLOCKED: protected or non-text file"

AGENTIC_STAGES = ["analyze", "plan", "preview", "apply", "verify", "revert", "done", "failed"]
TERMINAL_STAGES = {"done", "failed"}

GENERATE_MODE_SAFE = "safe"
GENERATE_MODE_CREATE_ONLY = "safe_create_only"

ELLIPSIS = "…"
SETTINGS_BUNDLE_VERSION = "2.4.4"
