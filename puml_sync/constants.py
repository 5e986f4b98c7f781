# puml_sync/constants.py
from __future__ import annotations

# Fence info-string tags recognised as diagram source.
FENCE_LANGUAGES: tuple[str, ...] = ("puml", "plantuml")

# Tag used in emitted fences and in the annotation comment.
ANNOTATION_TAG = "puml"

SOURCE_EXTENSION = ".puml"
OUTPUT_FORMAT = "svg"
OUTPUT_DIR_DEFAULT = "docs/generated-assets"

GLOB_DEFAULT = "**/*.md"

# Never descended into during document discovery.
EXCLUDED_DIRS: tuple[str, ...] = (
    "node_modules",
    ".git",
    ".venv",
    "venv",
    "__pycache__",
    "site-packages",
    ".tox",
)

DEFAULT_CAPTION = "UML"
DEFAULT_TOGGLE = "PlantUML source"

CONFIG_FILENAME = "puml-sync.yaml"

# `{format}` is substituted with the output format.
RENDERER_DEFAULT: tuple[str, ...] = ("plantuml", "-t{format}", "-pipe")
RENDERER_TIMEOUT_DEFAULT = 120.0

# Matched case-insensitively against renderer output on a non-zero exit.
SYNTAX_ERROR_MARKER = "syntax error"
