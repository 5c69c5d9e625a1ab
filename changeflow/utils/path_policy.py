"""
Path Policy
===========
Rules deciding which target files are protected from automated changes.

Protected (never written automatically):
    - .env files anywhere in the tree
    - key material: *.pem, *.key, *.p12, id_rsa*
    - anything under a secrets/ directory
    - dependency lock files (Cargo.lock, package-lock.json, yarn.lock, ...)
    - binary artefacts (images, archives, executables, media, wasm)

Text allow-list:
    Only known text extensions may be written. Extension-less files
    (Makefile, LICENSE, ...) are allowed.

The mock backend enforces this at apply time; the preview path uses the
same rules to flag diffs as blocked.
"""
from typing import Tuple

_LOCK_FILES: Tuple[str, ...] = (
    "cargo.lock",
    "package-lock.json",
    "pnpm-lock.yaml",
    "yarn.lock",
    "composer.lock",
    "poetry.lock",
    "pipfile.lock",
)

_BINARY_EXTENSIONS: Tuple[str, ...] = (
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg",
    ".pdf", ".zip", ".7z", ".rar", ".dmg", ".pkg",
    ".exe", ".dll", ".so", ".dylib", ".bin",
    ".mp3", ".mp4", ".mov", ".avi",
    ".wasm", ".class",
)

_TEXT_EXTENSIONS: Tuple[str, ...] = (
    ".ts", ".tsx", ".js", ".jsx", ".json", ".md", ".txt", ".toml", ".yaml", ".yml",
    ".rs", ".py", ".go", ".java", ".kt", ".c", ".cpp", ".h", ".hpp",
    ".css", ".scss", ".html", ".env", ".gitignore", ".editorconfig", ".cfg", ".ini",
)


def _normalise(path: str) -> str:
    return path.replace("\\", "/").lower()


def is_protected_file(path: str) -> bool:
    lower = _normalise(path)
    name = lower.rsplit("/", 1)[-1]
    if name == ".env":
        return True
    if lower.endswith((".pem", ".key", ".p12")):
        return True
    if "id_rsa" in lower:
        return True
    if lower.startswith("secrets/") or "/secrets/" in lower:
        return True
    if lower.endswith(_LOCK_FILES):
        return True
    if lower.endswith(_BINARY_EXTENSIONS):
        return True
    return False


def is_text_allowed(path: str) -> bool:
    lower = _normalise(path)
    name = lower.rsplit("/", 1)[-1]
    return lower.endswith(_TEXT_EXTENSIONS) or "." not in name


def is_blocked(path: str) -> bool:
    """True when automated changes to this path must be refused."""
    return is_protected_file(path) or not is_text_allowed(path)
